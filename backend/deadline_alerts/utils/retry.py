"""
Retry logic with exponential backoff for external service calls.
"""
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
import logging

from deadline_alerts.config import settings
from deadline_alerts.exceptions import TransientDispatchError

logger = logging.getLogger(__name__)


def email_retrying() -> Retrying:
    """
    Retry controller for email sends, built per call so that changes to
    settings (EMAIL_MAX_ATTEMPTS etc.) take effect without a restart.

    Only provider failures are retried; the last failure is re-raised.

    Usage:
        for attempt in email_retrying():
            with attempt:
                provider_call()
    """
    return Retrying(
        stop=stop_after_attempt(max(1, settings.EMAIL_MAX_ATTEMPTS)),
        wait=wait_exponential(
            multiplier=1,
            min=settings.EMAIL_RETRY_MIN_WAIT,
            max=settings.EMAIL_RETRY_MAX_WAIT,
        ),
        retry=retry_if_exception_type(TransientDispatchError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
