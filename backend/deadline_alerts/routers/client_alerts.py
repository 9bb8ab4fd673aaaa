from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from deadline_alerts.deps import get_db
from deadline_alerts.schemas import (
    ClientAlertCreate,
    ClientAlertResponse,
    ClientAlertUpdate,
    CreateAlertFromTaskRequest,
    CreateAlertFromTaskResponse,
    ReminderScheduleCreate,
    ReminderScheduleResponse,
)
from deadline_alerts.services import alert_service
from deadline_alerts.services.deadline_resolver import friendly_name

router = APIRouter(tags=["client-alerts"])


@router.post("/client-alerts", response_model=ClientAlertResponse, status_code=status.HTTP_201_CREATED)
def create_client_alert(data: ClientAlertCreate, db: Session = Depends(get_db)):
    """Create an alert with optional follow-up schedules"""
    return alert_service.create_alert(db, data)


@router.get("/client-alerts", response_model=List[ClientAlertResponse])
def list_client_alerts(client_id: Optional[UUID] = None, db: Session = Depends(get_db)):
    return alert_service.list_alerts(db, client_id)


@router.get("/client-alerts/{alert_id}", response_model=ClientAlertResponse)
def get_client_alert(alert_id: UUID, db: Session = Depends(get_db)):
    return alert_service.get_alert(db, alert_id)


@router.put("/client-alerts/{alert_id}", response_model=ClientAlertResponse)
def update_client_alert(alert_id: UUID, data: ClientAlertUpdate, db: Session = Depends(get_db)):
    """Update an alert; reminder_schedules, when given, replaces all follow-ups"""
    return alert_service.update_alert(db, alert_id, data)


@router.delete("/client-alerts/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client_alert(alert_id: UUID, db: Session = Depends(get_db)):
    alert_service.delete_alert(db, alert_id)


@router.patch("/client-alerts/{alert_id}/toggle-active", response_model=ClientAlertResponse)
def toggle_client_alert(alert_id: UUID, db: Session = Depends(get_db)):
    return alert_service.toggle_alert_active(db, alert_id)


@router.post(
    "/client-alerts/{alert_id}/schedules",
    response_model=ReminderScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_alert_schedule(alert_id: UUID, data: ReminderScheduleCreate, db: Session = Depends(get_db)):
    return alert_service.add_schedule(db, alert_id, data)


@router.post(
    "/create-alert-from-task",
    response_model=CreateAlertFromTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_alert_from_task(data: CreateAlertFromTaskRequest, db: Session = Depends(get_db)):
    """Create an active draft-for-review alert for a deadline raised by a task"""
    alert = alert_service.create_alert_from_task(db, data)
    return CreateAlertFromTaskResponse(
        message=f"Alert '{friendly_name(alert.alert_type)}' created successfully for {data.client_name}.",
        alert=ClientAlertResponse.model_validate(alert),
    )


@router.post(
    "/clients/{client_id}/alerts/provision",
    response_model=List[ClientAlertResponse],
    status_code=status.HTTP_201_CREATED,
)
def provision_client_alerts(client_id: UUID, db: Session = Depends(get_db)):
    """Create default alerts for every dated deadline the client has no alert for"""
    return alert_service.provision_default_alerts(db, client_id)
