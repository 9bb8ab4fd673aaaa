import logging
from typing import List, Optional, Dict, Any

import resend
from resend.exceptions import ResendError

from deadline_alerts.config import settings
from deadline_alerts.exceptions import ConfigurationError, TransientDispatchError
from deadline_alerts.utils.retry import email_retrying

logger = logging.getLogger(__name__)


class EmailService:
    """Outbound email over the Resend API."""

    @staticmethod
    def ensure_configured() -> None:
        """Raise ConfigurationError unless an API key and sender are set."""
        missing = []
        if not settings.RESEND_API_KEY:
            missing.append("RESEND_API_KEY")
        if not settings.EMAIL_FROM:
            missing.append("EMAIL_FROM")
        if missing:
            logger.error(f"Email transport not configured, missing: {', '.join(missing)}")
            raise ConfigurationError(
                "Email transport configuration missing",
                details={"missing": missing},
            )

    @staticmethod
    def _sender(from_name: Optional[str]) -> str:
        sender = settings.EMAIL_FROM
        # Bare addresses get the firm display name
        if "<" not in sender:
            sender = f"{from_name or settings.FIRM_NAME} <{sender}>"
        return sender

    @staticmethod
    def _send_once(params: Dict[str, Any]) -> Any:
        resend.api_key = settings.RESEND_API_KEY
        try:
            return resend.Emails.send(params)
        except ResendError as e:
            status_code = _status_code(getattr(e, "code", None))
            logger.error(f"Resend API error ({status_code}): {e}")
            raise TransientDispatchError(
                f"Email provider error: {status_code} - {e}",
                provider_status=status_code,
                details={"provider_message": str(e)},
            ) from e
        except Exception as e:
            logger.error(f"Error sending email: {e}")
            raise TransientDispatchError(f"Email transport failure: {e}") from e

    @staticmethod
    def send_email(
        to: str,
        subject: str,
        html_content: str,
        cc: Optional[List[str]] = None,
        from_name: Optional[str] = None,
    ) -> Any:
        """
        Send an HTML email.

        Args:
            to: Recipient email
            subject: Email subject
            html_content: HTML email content
            cc: Optional CC recipients
            from_name: Display name for the sender (default: firm name)

        Returns:
            The provider response

        Raises:
            ConfigurationError: API key or sender missing
            TransientDispatchError: provider rejected or failed the send
        """
        EmailService.ensure_configured()

        params: Dict[str, Any] = {
            "from": EmailService._sender(from_name),
            "to": [to],
            "subject": subject,
            "html": html_content,
        }
        cc = [address for address in (cc or []) if address]
        if cc:
            params["cc"] = cc

        response = None
        for attempt in email_retrying():
            with attempt:
                response = EmailService._send_once(params)

        cc_note = f" with CC to {', '.join(cc)}" if cc else ""
        logger.info(f"Email sent to {to}{cc_note}")
        return response


def _status_code(code: Any) -> Optional[int]:
    try:
        return int(code)
    except (TypeError, ValueError):
        return None


# Global email service instance
email_service = EmailService()
