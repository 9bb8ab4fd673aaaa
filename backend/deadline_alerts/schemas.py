from pydantic import BaseModel, EmailStr, Field, ConfigDict, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from uuid import UUID
from deadline_alerts.models import AlertType, NotificationPreference, DraftStatus, TaskStage, TaskAction


def find_duplicate_offsets(offsets: List[int]) -> List[int]:
    seen = set()
    duplicates = []
    for offset in offsets:
        if offset in seen and offset not in duplicates:
            duplicates.append(offset)
        seen.add(offset)
    return duplicates


# ============= Reminder Schedule Schemas =============
class ReminderScheduleCreate(BaseModel):
    days_before_due: int = Field(..., ge=0, description="Days before the due date")
    is_active: bool = True
    alert_message: Optional[str] = None
    use_custom_message: bool = False


class ReminderScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_alert_id: UUID
    days_before_due: int
    is_active: bool
    alert_message: Optional[str] = None
    use_custom_message: bool
    created_at: datetime


# ============= Client Alert Schemas =============
class ClientAlertCreate(BaseModel):
    client_id: UUID
    alert_type: AlertType
    alert_message: Optional[str] = None
    days_before_due: int = Field(30, ge=0, description="Primary reminder offset in days")
    notification_preference: NotificationPreference = NotificationPreference.DRAFT_FOR_TEAM
    is_active: bool = True
    source_task_id: Optional[UUID] = None
    reminder_schedules: List[ReminderScheduleCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_offsets_unique(self):
        offsets = [self.days_before_due] + [s.days_before_due for s in self.reminder_schedules]
        duplicates = find_duplicate_offsets(offsets)
        if duplicates:
            raise ValueError(f"Duplicate days_before_due values are not allowed: {duplicates}")
        return self


class ClientAlertUpdate(BaseModel):
    alert_message: Optional[str] = None
    days_before_due: Optional[int] = Field(None, ge=0)
    notification_preference: Optional[NotificationPreference] = None
    is_active: Optional[bool] = None
    source_task_id: Optional[UUID] = None
    reminder_schedules: Optional[List[ReminderScheduleCreate]] = None


class ClientAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    alert_type: AlertType
    alert_message: Optional[str] = None
    days_before_due: int
    notification_preference: NotificationPreference
    is_active: bool
    source_task_id: Optional[UUID] = None
    last_triggered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    schedules: List[ReminderScheduleResponse] = Field(default_factory=list)


class CreateAlertFromTaskRequest(BaseModel):
    client_id: UUID
    alert_type: AlertType
    due_date: date
    client_name: str = Field(..., min_length=1, max_length=255)
    source_task_id: Optional[UUID] = None


class CreateAlertFromTaskResponse(BaseModel):
    message: str
    alert: ClientAlertResponse


# ============= Alert Template Schemas =============
class AlertTemplateUpdate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    default_days_before_due: Optional[int] = Field(None, ge=0)


class AlertTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    alert_type: str
    subject: str
    body: str
    default_days_before_due: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# ============= Drafted Reminder Schemas =============
class DraftedReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    client_alert_id: UUID
    recipient_email: Optional[str] = None
    cc_email: Optional[str] = None
    email_subject: str
    email_body: str
    status: DraftStatus
    reviewed_at: Optional[datetime] = None
    created_at: datetime


class DraftedReminderUpdate(BaseModel):
    status: DraftStatus


# ============= Client Task Schemas =============
class ClientTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    task_title: str
    task_description: Optional[str] = None
    stage: TaskStage
    due_date: Optional[date] = None
    action_needed: Optional[TaskAction] = None
    action_details: Optional[Dict[str, Any]] = None
    created_at: datetime


# ============= Scheduler Schemas =============
class AlertAnalysisResponse(BaseModel):
    message: str
    processed: int
    errors: int
    skipped: int = 0
    not_due: int = 0


class GapDetectionResponse(BaseModel):
    message: str
    tasks_created: int
    tasks: List[ClientTaskResponse] = Field(default_factory=list)


# ============= Test Trigger Schemas =============
class TriggerSingleAlertRequest(BaseModel):
    client_alert_id: UUID
    test_email: Optional[EmailStr] = None


class TriggerSingleAlertResponse(BaseModel):
    message: str
    sent_count: int
    total_tasks: int
    recipient: str
    errors: List[str] = Field(default_factory=list)
