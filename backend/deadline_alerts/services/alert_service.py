import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from deadline_alerts.exceptions import ConflictError, NotFoundError, ValidationError
from deadline_alerts.models import (
    AlertTemplate,
    AlertType,
    Client,
    ClientAlert,
    ClientTask,
    DraftedReminder,
    DraftStatus,
    FIXED_ALERT_TYPES,
    NotificationPreference,
    ReminderSchedule,
)
from deadline_alerts.schemas import (
    AlertTemplateUpdate,
    ClientAlertCreate,
    ClientAlertUpdate,
    CreateAlertFromTaskRequest,
    ReminderScheduleCreate,
    find_duplicate_offsets,
)
from deadline_alerts.services.deadline_resolver import DEADLINE_FIELDS, ResolvedDeadline, friendly_name
from deadline_alerts.services.template_renderer import (
    TemplateStore,
    build_context,
    substitute_placeholders,
)

logger = logging.getLogger(__name__)

DEFAULT_ALERT_MESSAGE_TEMPLATE = "Reminder: {{alert_type_friendly_name}} for {{client_name}} is due on {{due_date}}."
DEFAULT_DAYS_BEFORE_DUE = 30
DEFAULT_NOTIFICATION_PREFERENCE = NotificationPreference.DRAFT_FOR_TEAM


def _get_client(db: Session, client_id: UUID) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFoundError("Client", str(client_id))
    return client


def _get_task(db: Session, task_id: UUID, client_id: UUID) -> ClientTask:
    task = db.query(ClientTask).filter(ClientTask.id == task_id).first()
    if not task or task.client_id != client_id:
        raise NotFoundError("Client task", str(task_id))
    return task


def _duplicate_active_message(alert_type: AlertType) -> str:
    return f"An alert of type '{friendly_name(alert_type)}' already exists for this client."


def _ensure_no_active_duplicate(
    db: Session, client_id: UUID, alert_type: AlertType, exclude_id: Optional[UUID] = None
) -> None:
    if alert_type == AlertType.CLIENT_TASK:
        return
    query = db.query(ClientAlert).filter(
        ClientAlert.client_id == client_id,
        ClientAlert.alert_type == alert_type,
        ClientAlert.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(ClientAlert.id != exclude_id)
    if query.first():
        raise ConflictError(
            _duplicate_active_message(alert_type),
            details={"client_id": str(client_id), "alert_type": alert_type.value},
        )


def _commit_or_conflict(db: Session, alert_type: AlertType, client_id: UUID) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error saving alert: {e.orig}")
        raise ConflictError(
            _duplicate_active_message(alert_type),
            details={"client_id": str(client_id), "alert_type": alert_type.value},
        ) from e


def validate_schedule_offsets(primary_offset: int, schedules: List[ReminderScheduleCreate]) -> None:
    """Primary offset and follow-up offsets must all differ."""
    offsets = [primary_offset] + [s.days_before_due for s in schedules]
    duplicates = find_duplicate_offsets(offsets)
    if duplicates:
        raise ValidationError(
            "Duplicate days_before_due values are not allowed.",
            details={"duplicates": duplicates},
        )


def _build_schedules(schedules: List[ReminderScheduleCreate]) -> List[ReminderSchedule]:
    return [
        ReminderSchedule(
            days_before_due=s.days_before_due,
            is_active=s.is_active,
            alert_message=s.alert_message or None,
            use_custom_message=s.use_custom_message,
        )
        for s in schedules
    ]


def get_alert(db: Session, alert_id: UUID) -> ClientAlert:
    alert = (
        db.query(ClientAlert)
        .options(selectinload(ClientAlert.schedules))
        .filter(ClientAlert.id == alert_id)
        .first()
    )
    if not alert:
        raise NotFoundError("Client alert", str(alert_id))
    return alert


def list_alerts(db: Session, client_id: Optional[UUID] = None) -> List[ClientAlert]:
    query = db.query(ClientAlert).options(selectinload(ClientAlert.schedules))
    if client_id is not None:
        query = query.filter(ClientAlert.client_id == client_id)
    return query.order_by(ClientAlert.created_at.desc()).all()


def create_alert(db: Session, data: ClientAlertCreate) -> ClientAlert:
    """Create an alert with its follow-up schedules in one transaction"""
    _get_client(db, data.client_id)
    validate_schedule_offsets(data.days_before_due, data.reminder_schedules)

    if data.alert_type == AlertType.CLIENT_TASK:
        if not data.source_task_id:
            raise ValidationError("source_task_id is required for CLIENT_TASK alerts.")
        _get_task(db, data.source_task_id, data.client_id)

    if data.is_active:
        _ensure_no_active_duplicate(db, data.client_id, data.alert_type)

    alert = ClientAlert(
        client_id=data.client_id,
        alert_type=data.alert_type,
        alert_message=data.alert_message or None,
        days_before_due=data.days_before_due,
        notification_preference=data.notification_preference,
        is_active=data.is_active,
        source_task_id=data.source_task_id,
    )
    alert.schedules = _build_schedules(data.reminder_schedules)
    db.add(alert)
    _commit_or_conflict(db, data.alert_type, data.client_id)
    db.refresh(alert)
    return alert


def update_alert(db: Session, alert_id: UUID, data: ClientAlertUpdate) -> ClientAlert:
    """Update an alert; a supplied schedule list replaces the existing one"""
    alert = get_alert(db, alert_id)
    update_data = data.model_dump(exclude_unset=True, exclude={"reminder_schedules"})

    primary_offset = update_data.get("days_before_due", alert.days_before_due)
    if primary_offset is None:
        raise ValidationError("days_before_due cannot be null.")
    if data.reminder_schedules is not None:
        validate_schedule_offsets(primary_offset, data.reminder_schedules)
    else:
        validate_schedule_offsets(
            primary_offset,
            [ReminderScheduleCreate(days_before_due=s.days_before_due) for s in alert.schedules],
        )

    if update_data.get("is_active") and not alert.is_active:
        _ensure_no_active_duplicate(db, alert.client_id, alert.alert_type, exclude_id=alert.id)

    for key, value in update_data.items():
        if key in ("notification_preference", "is_active") and value is None:
            continue
        setattr(alert, key, value)

    if data.reminder_schedules is not None:
        alert.schedules.clear()
        db.flush()
        alert.schedules.extend(_build_schedules(data.reminder_schedules))

    _commit_or_conflict(db, alert.alert_type, alert.client_id)
    db.refresh(alert)
    return alert


def delete_alert(db: Session, alert_id: UUID) -> None:
    alert = get_alert(db, alert_id)
    db.query(DraftedReminder).filter(DraftedReminder.client_alert_id == alert.id).delete()
    db.delete(alert)
    db.commit()


def toggle_alert_active(db: Session, alert_id: UUID) -> ClientAlert:
    alert = get_alert(db, alert_id)
    if not alert.is_active:
        _ensure_no_active_duplicate(db, alert.client_id, alert.alert_type, exclude_id=alert.id)
    alert.is_active = not alert.is_active
    _commit_or_conflict(db, alert.alert_type, alert.client_id)
    db.refresh(alert)
    return alert


def add_schedule(db: Session, alert_id: UUID, data: ReminderScheduleCreate) -> ReminderSchedule:
    """Add one follow-up; its offset must not collide with the primary or another follow-up"""
    alert = get_alert(db, alert_id)
    existing = [alert.days_before_due] + [s.days_before_due for s in alert.schedules]
    if data.days_before_due in existing:
        raise ValidationError(
            "Duplicate days_before_due values are not allowed.",
            details={"duplicates": [data.days_before_due]},
        )
    schedule = _build_schedules([data])[0]
    alert.schedules.append(schedule)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(
            "Duplicate days_before_due values are not allowed.",
            details={"duplicates": [data.days_before_due]},
        ) from e
    db.refresh(schedule)
    return schedule


def create_alert_from_task(db: Session, data: CreateAlertFromTaskRequest) -> ClientAlert:
    """
    Create an active alert for a deadline surfaced by a task.

    The message comes from the stored template for the category, or a
    built-in default, with placeholders filled in for the given client.
    """
    client = _get_client(db, data.client_id)
    if data.source_task_id:
        _get_task(db, data.source_task_id, data.client_id)
    _ensure_no_active_duplicate(db, data.client_id, data.alert_type)

    template = TemplateStore.load(db).get(data.alert_type)
    message_template = template.body if template and template.body else DEFAULT_ALERT_MESSAGE_TEMPLATE
    days_before_due = (
        template.default_days_before_due
        if template and template.default_days_before_due
        else DEFAULT_DAYS_BEFORE_DUE
    )

    deadline = ResolvedDeadline(due_date=data.due_date, title=friendly_name(data.alert_type))
    # The caller's display name wins over the stored one
    context = replace(
        build_context(client, deadline, data.alert_type),
        client_name=data.client_name,
        company_name=client.company_name or data.client_name,
    )
    alert_message = substitute_placeholders(message_template, context)

    alert = ClientAlert(
        client_id=data.client_id,
        alert_type=data.alert_type,
        alert_message=alert_message,
        days_before_due=days_before_due,
        notification_preference=DEFAULT_NOTIFICATION_PREFERENCE,
        is_active=True,
        source_task_id=data.source_task_id,
    )
    db.add(alert)
    _commit_or_conflict(db, data.alert_type, data.client_id)
    db.refresh(alert)
    logger.info(
        f"Alert '{friendly_name(data.alert_type)}' created from task",
        extra={"alert_id": str(alert.id), "client_id": str(data.client_id), "alert_type": data.alert_type.value},
    )
    return alert


def provision_default_alerts(db: Session, client_id: UUID) -> List[ClientAlert]:
    """Create a draft-for-review alert for each dated deadline that has none"""
    client = _get_client(db, client_id)
    active_types = {
        alert_type
        for (alert_type,) in db.query(ClientAlert.alert_type).filter(
            ClientAlert.client_id == client.id,
            ClientAlert.is_active.is_(True),
        )
    }
    store = TemplateStore.load(db)
    created = []
    for alert_type in FIXED_ALERT_TYPES:
        if alert_type in active_types or getattr(client, DEADLINE_FIELDS[alert_type]) is None:
            continue
        template = store.get(alert_type)
        alert = ClientAlert(
            client_id=client.id,
            alert_type=alert_type,
            days_before_due=(template.default_days_before_due if template else None) or DEFAULT_DAYS_BEFORE_DUE,
            notification_preference=DEFAULT_NOTIFICATION_PREFERENCE,
            is_active=True,
        )
        db.add(alert)
        created.append(alert)
    _commit_or_conflict(db, AlertType.NEXT_ACCOUNTS_DUE, client.id)
    for alert in created:
        db.refresh(alert)
    return created


# ============= Templates =============
def list_templates(db: Session) -> List[AlertTemplate]:
    return db.query(AlertTemplate).order_by(AlertTemplate.alert_type).all()


def upsert_template(db: Session, alert_type: str, data: AlertTemplateUpdate) -> AlertTemplate:
    template = db.query(AlertTemplate).filter(AlertTemplate.alert_type == alert_type).first()
    if not template:
        template = AlertTemplate(alert_type=alert_type)
        db.add(template)
    template.subject = data.subject
    template.body = data.body
    if data.default_days_before_due is not None:
        template.default_days_before_due = data.default_days_before_due
    db.commit()
    db.refresh(template)
    return template


# ============= Drafts =============
def list_drafts(db: Session, status: Optional[DraftStatus] = None) -> List[DraftedReminder]:
    query = db.query(DraftedReminder)
    if status is not None:
        query = query.filter(DraftedReminder.status == status)
    return query.order_by(DraftedReminder.created_at.desc()).all()


def update_draft_status(db: Session, draft_id: UUID, status: DraftStatus) -> DraftedReminder:
    draft = db.query(DraftedReminder).filter(DraftedReminder.id == draft_id).first()
    if not draft:
        raise NotFoundError("Drafted reminder", str(draft_id))
    draft.status = status
    draft.reviewed_at = datetime.utcnow()
    db.commit()
    db.refresh(draft)
    return draft
