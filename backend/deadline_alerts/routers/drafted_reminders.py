from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from deadline_alerts.deps import get_db
from deadline_alerts.models import DraftStatus
from deadline_alerts.schemas import DraftedReminderResponse, DraftedReminderUpdate
from deadline_alerts.services import alert_service

router = APIRouter(prefix="/drafted-reminders", tags=["drafted-reminders"])


@router.get("", response_model=List[DraftedReminderResponse])
def list_drafted_reminders(status: Optional[DraftStatus] = None, db: Session = Depends(get_db)):
    """Reminders waiting for (or past) team review, newest first"""
    return alert_service.list_drafts(db, status)


@router.patch("/{draft_id}", response_model=DraftedReminderResponse)
def update_drafted_reminder(draft_id: UUID, data: DraftedReminderUpdate, db: Session = Depends(get_db)):
    return alert_service.update_draft_status(db, draft_id, data.status)
