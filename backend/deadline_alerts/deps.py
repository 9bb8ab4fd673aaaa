import hmac
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from deadline_alerts.config import settings
from deadline_alerts.db import get_db  # noqa: F401
from deadline_alerts.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Require `Authorization: Bearer <CRON_SECRET_KEY>` on scheduler endpoints"""
    if not settings.CRON_SECRET_KEY:
        logger.error("CRON_SECRET_KEY is not configured")
        raise ConfigurationError(
            "Scheduler secret not configured",
            details={"missing": ["CRON_SECRET_KEY"]},
        )

    token = credentials.credentials if credentials else ""
    if not hmac.compare_digest(token.encode(), settings.CRON_SECRET_KEY.encode()):
        logger.warning("Rejected scheduler call with invalid bearer token")
        raise AuthenticationError()
