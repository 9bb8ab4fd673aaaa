"""
Preview sends for a single alert.

Renders the main reminder and each follow-up with the same resolver and
renderer the scheduled pass uses, then emails them to a test address (or
the client). Opt-out, notification preference and last_triggered_at are
all left alone.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload, selectinload

from deadline_alerts.config import settings
from deadline_alerts.exceptions import AppException, DeadlineNotFoundError, NoRecipientError, NotFoundError
from deadline_alerts.models import ClientAlert
from deadline_alerts.services.deadline_resolver import ResolvedDeadline, friendly_name, resolve_due_date
from deadline_alerts.services.email_service import email_service
from deadline_alerts.services.template_renderer import (
    TemplateStore,
    build_context,
    follow_up_subject,
    render_for_category,
    with_test_footer,
)
from deadline_alerts.services.trigger_evaluator import today_for_zone

logger = logging.getLogger(__name__)


@dataclass
class TestSendResult:
    sent_count: int
    total_tasks: int
    recipient: str
    errors: List[str] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return bool(self.errors)

    @property
    def message(self) -> str:
        if self.errors:
            return f"Sent {self.sent_count} of {self.total_tasks} test emails to {self.recipient}."
        return f"All {self.total_tasks} test emails sent to {self.recipient}."


def _resolve_for_preview(alert: ClientAlert) -> ResolvedDeadline:
    try:
        return resolve_due_date(alert, alert.client, alert.source_task)
    except DeadlineNotFoundError as e:
        # Previews still render when the deadline is missing
        logger.info(
            f"No due date for test send, using today: {e.reason}",
            extra={"alert_id": str(alert.id)},
        )
        title = alert.source_task.task_title if alert.source_task else friendly_name(alert.alert_type)
        return ResolvedDeadline(due_date=today_for_zone(), title=title)


def trigger_single_alert(db: Session, alert_id: UUID, test_email: Optional[str] = None) -> TestSendResult:
    """
    Send the main alert and every follow-up schedule as test emails.

    Raises:
        NotFoundError: unknown alert
        NoRecipientError: no test address and the client has no email
        ConfigurationError: email transport not configured
    """
    alert = (
        db.query(ClientAlert)
        .options(
            joinedload(ClientAlert.client),
            joinedload(ClientAlert.source_task),
            selectinload(ClientAlert.schedules),
        )
        .filter(ClientAlert.id == alert_id)
        .first()
    )
    if not alert or not alert.client:
        raise NotFoundError("Client alert", str(alert_id))

    client = alert.client
    recipient = test_email or client.client_email
    if not recipient:
        raise NoRecipientError(str(client.id))

    email_service.ensure_configured()

    store = TemplateStore.load(db)
    deadline = _resolve_for_preview(alert)
    context = build_context(client, deadline, alert.alert_type)
    contact_email = test_email or settings.FIRM_CONTACT_EMAIL

    emails = []
    main = render_for_category(alert.alert_type, alert.alert_message, context, store)
    emails.append((f"[TEST - Main Alert] {main.subject}", main.body))

    for index, schedule in enumerate(alert.schedules, start=1):
        custom_body = schedule.alert_message if schedule.use_custom_message else alert.alert_message
        subject = follow_up_subject(context.task_title) if schedule.use_custom_message else None
        rendered = render_for_category(alert.alert_type, custom_body, context, store, subject=subject)
        prefix = f"[TEST - Follow-up {index} ({schedule.days_before_due} days before)]"
        emails.append((f"{prefix} {rendered.subject}", rendered.body))

    result = TestSendResult(sent_count=0, total_tasks=len(emails), recipient=recipient)
    for subject, body in emails:
        try:
            email_service.send_email(
                to=recipient,
                subject=subject,
                html_content=with_test_footer(body, contact_email=contact_email),
            )
            result.sent_count += 1
        except AppException as e:
            logger.error(
                f"Test send failed: {e.message}",
                extra={"alert_id": str(alert.id), "client_id": str(client.id)},
            )
            result.errors.append(f"{subject}: {e.message}")

    logger.info(
        "Test alert emails processed",
        extra={"alert_id": str(alert.id), "processed": result.sent_count, "errors": len(result.errors)},
    )
    return result
