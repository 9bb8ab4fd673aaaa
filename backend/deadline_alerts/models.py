import enum
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Enum, Text, Integer, Date, Index,
    UniqueConstraint, JSON, text,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from deadline_alerts.db import Base


class AlertType(str, enum.Enum):
    NEXT_ACCOUNTS_DUE = "NEXT_ACCOUNTS_DUE"
    NEXT_CONFIRMATION_STATEMENT_DUE = "NEXT_CONFIRMATION_STATEMENT_DUE"
    NEXT_VAT_DUE = "NEXT_VAT_DUE"
    CORPORATION_TAX_DEADLINE = "CORPORATION_TAX_DEADLINE"
    CLIENT_TASK = "CLIENT_TASK"


# Categories backed by a dated column on the client record
FIXED_ALERT_TYPES = (
    AlertType.NEXT_ACCOUNTS_DUE,
    AlertType.NEXT_CONFIRMATION_STATEMENT_DUE,
    AlertType.NEXT_VAT_DUE,
    AlertType.CORPORATION_TAX_DEADLINE,
)

# Template key used when no category-specific template exists
DEFAULT_TEMPLATE_KEY = "DEFAULT"


class NotificationPreference(str, enum.Enum):
    SEND_DIRECT_TO_CLIENT = "SEND_DIRECT_TO_CLIENT"
    DRAFT_FOR_TEAM = "DRAFT_FOR_TEAM"


class DraftStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    SENT = "SENT"
    DISCARDED = "DISCARDED"


class TaskStage(str, enum.Enum):
    TO_DO = "New Request / To Do"
    WAITING_ON_CLIENT = "Information Gathering / Waiting on Client"
    IN_PROGRESS = "In Progress"
    INTERNAL_REVIEW = "Internal Review"
    PENDING_CLIENT_APPROVAL = "Pending Client Approval"
    READY_TO_FILE = "Ready to File / Submit"
    COMPLETED = "Completed / Filed"
    ON_HOLD = "On Hold / Blocked"


TASK_STAGE_ORDER = list(TaskStage)
TERMINAL_TASK_STAGES = (TaskStage.COMPLETED,)


class TaskAction(str, enum.Enum):
    CREATE_ALERT = "CREATE_ALERT"


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Client(Base):
    __tablename__ = "clients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    automated_emails = Column(Boolean, default=True, nullable=False)

    # Statutory deadlines, one per fixed alert category
    next_accounts_due = Column(Date, nullable=True)
    next_confirmation_statement_due = Column(Date, nullable=True)
    next_vat_due = Column(Date, nullable=True)
    corporation_tax_deadline = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    alerts = relationship("ClientAlert", back_populates="client", cascade="all, delete-orphan")
    tasks = relationship("ClientTask", back_populates="client", cascade="all, delete-orphan")


class ClientTask(Base):
    __tablename__ = "client_tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    task_title = Column(String(500), nullable=False)
    task_description = Column(Text, nullable=True)
    stage = Column(Enum(TaskStage), default=TaskStage.TO_DO, nullable=False)
    due_date = Column(Date, nullable=True)
    action_needed = Column(Enum(TaskAction), nullable=True)
    action_details = Column(JSONType, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    client = relationship("Client", back_populates="tasks")


class ClientAlert(Base):
    __tablename__ = "client_alerts"
    __table_args__ = (
        # One active alert per client per fixed category; task-linked alerts may repeat
        Index(
            "uq_client_alerts_active_type",
            "client_id",
            "alert_type",
            unique=True,
            postgresql_where=text("is_active AND alert_type <> 'CLIENT_TASK'"),
            sqlite_where=text("is_active = 1 AND alert_type <> 'CLIENT_TASK'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    alert_type = Column(Enum(AlertType), nullable=False)
    alert_message = Column(Text, nullable=True)  # custom body, overrides templates
    days_before_due = Column(Integer, nullable=False, default=30)
    notification_preference = Column(
        Enum(NotificationPreference),
        default=NotificationPreference.DRAFT_FOR_TEAM,
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    source_task_id = Column(UUID(as_uuid=True), ForeignKey("client_tasks.id"), nullable=True)
    last_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    client = relationship("Client", back_populates="alerts")
    source_task = relationship("ClientTask")
    schedules = relationship(
        "ReminderSchedule",
        back_populates="alert",
        cascade="all, delete-orphan",
        order_by="ReminderSchedule.days_before_due.desc()",
    )


class ReminderSchedule(Base):
    """Follow-up reminder beyond the alert's primary offset"""
    __tablename__ = "client_alert_schedules"
    __table_args__ = (
        UniqueConstraint("client_alert_id", "days_before_due", name="uq_alert_schedule_offset"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_alert_id = Column(UUID(as_uuid=True), ForeignKey("client_alerts.id"), nullable=False, index=True)
    days_before_due = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    alert_message = Column(Text, nullable=True)
    use_custom_message = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    alert = relationship("ClientAlert", back_populates="schedules")


class AlertTemplate(Base):
    __tablename__ = "alert_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    alert_type = Column(String(100), unique=True, nullable=False)  # AlertType value or DEFAULT
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    default_days_before_due = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class DraftedReminder(Base):
    """Reminder staged for team review instead of being sent directly"""
    __tablename__ = "drafted_reminders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    client_alert_id = Column(UUID(as_uuid=True), ForeignKey("client_alerts.id"), nullable=False, index=True)
    recipient_email = Column(String(255), nullable=True)
    cc_email = Column(String(255), nullable=True)
    email_subject = Column(String(500), nullable=False)
    email_body = Column(Text, nullable=False)
    status = Column(Enum(DraftStatus), default=DraftStatus.PENDING_REVIEW, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    client = relationship("Client")
    alert = relationship("ClientAlert")
