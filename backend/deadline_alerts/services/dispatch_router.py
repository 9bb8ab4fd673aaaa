import enum
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deadline_alerts.config import settings
from deadline_alerts.exceptions import NoRecipientError, TransientDispatchError
from deadline_alerts.models import (
    Client,
    ClientAlert,
    DraftedReminder,
    DraftStatus,
    NotificationPreference,
)
from deadline_alerts.services.email_service import email_service

logger = logging.getLogger(__name__)


class DispatchOutcome(str, enum.Enum):
    SENT = "SENT"
    DRAFTED = "DRAFTED"
    SKIPPED_OPT_OUT = "SKIPPED_OPT_OUT"


def resolve_cc_address() -> Optional[str]:
    return settings.NOTIFICATIONS_ADMIN_EMAIL or None


def dispatch(
    db: Session,
    alert: ClientAlert,
    client: Client,
    subject: str,
    body: str,
    cc_email: Optional[str] = None,
) -> DispatchOutcome:
    """
    Send a rendered reminder to the client, or stage it for review.

    The draft is only flushed; the caller commits it together with the
    alert's last_triggered_at update.

    Raises:
        NoRecipientError: direct send with no client email
        TransientDispatchError: provider or draft write failure
    """
    log_extra = {
        "alert_id": str(alert.id),
        "client_id": str(client.id),
        "alert_type": getattr(alert.alert_type, "value", alert.alert_type),
    }

    if client.automated_emails is False:
        logger.info("Client opted out of automated emails, skipping", extra=log_extra)
        return DispatchOutcome.SKIPPED_OPT_OUT

    preference = NotificationPreference(alert.notification_preference)

    if preference == NotificationPreference.SEND_DIRECT_TO_CLIENT:
        if not client.client_email:
            raise NoRecipientError(str(client.id))
        cc = [cc_email] if cc_email else []
        email_service.send_email(
            to=client.client_email,
            subject=subject,
            html_content=body,
            cc=cc,
        )
        logger.info("Direct reminder sent", extra=log_extra)
        return DispatchOutcome.SENT

    draft = DraftedReminder(
        client_id=client.id,
        client_alert_id=alert.id,
        recipient_email=client.client_email,
        cc_email=cc_email,
        email_subject=subject,
        email_body=body,
        status=DraftStatus.PENDING_REVIEW,
    )
    try:
        db.add(draft)
        db.flush()
    except SQLAlchemyError as e:
        logger.error(f"Failed to write drafted reminder: {e}", extra=log_extra)
        raise TransientDispatchError(f"Draft write failed: {e}") from e
    logger.info("Reminder drafted for review", extra=log_extra)
    return DispatchOutcome.DRAFTED
