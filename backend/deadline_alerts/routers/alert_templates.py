from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from deadline_alerts.deps import get_db
from deadline_alerts.exceptions import ValidationError
from deadline_alerts.models import AlertType, DEFAULT_TEMPLATE_KEY
from deadline_alerts.schemas import AlertTemplateResponse, AlertTemplateUpdate
from deadline_alerts.services import alert_service

router = APIRouter(prefix="/settings/alert-templates", tags=["settings"])

TEMPLATE_KEYS = [alert_type.value for alert_type in AlertType] + [DEFAULT_TEMPLATE_KEY]


@router.get("", response_model=List[AlertTemplateResponse])
def list_alert_templates(db: Session = Depends(get_db)):
    return alert_service.list_templates(db)


@router.put("/{alert_type}", response_model=AlertTemplateResponse)
def upsert_alert_template(alert_type: str, data: AlertTemplateUpdate, db: Session = Depends(get_db)):
    """Create or replace the subject/body used for a category (or DEFAULT)"""
    if alert_type not in TEMPLATE_KEYS:
        raise ValidationError(
            f"Unknown alert type: {alert_type}",
            details={"allowed": TEMPLATE_KEYS},
        )
    return alert_service.upsert_template(db, alert_type, data)
