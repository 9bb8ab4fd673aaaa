from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from deadline_alerts.config import settings
from deadline_alerts.deps import get_db
from deadline_alerts.routers import alert_templates, client_alerts, drafted_reminders, scheduler, testing

# Import error handling and rate limiting
from deadline_alerts.exceptions import (
    AppException,
    app_exception_handler,
    request_validation_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from deadline_alerts.rate_limit import limiter, rate_limit_exceeded_handler

import os
import logging
from alembic import command
from alembic.config import Config

from deadline_alerts.middleware.request_id import RequestIDMiddleware
from deadline_alerts.utils.logging import configure_logging

configure_logging(logging.INFO)
logger = logging.getLogger(__name__)

# Sentry integration (optional)
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
        environment=settings.ENVIRONMENT,
    )
    logger.info("Sentry error tracking initialized")


def run_migrations():
    """Run Alembic migrations on startup"""
    try:
        logger.info("Running DB migrations...")

        # backend/deadline_alerts/main.py -> backend/
        current_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        alembic_cfg = Config(os.path.join(current_dir, "alembic.ini"))
        alembic_cfg.set_main_option("script_location", os.path.join(current_dir, "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url_fixed)

        command.upgrade(alembic_cfg, "head")
        logger.info("DB migrations completed successfully")
    except Exception as e:
        logger.error(f"Failed to run DB migrations: {e}")


# Create FastAPI app
app = FastAPI(
    title="Deadline Alerts",
    description="Deadline reminders, follow-ups and review drafts for practice clients",
    version="1.0.0"
)

# Add rate limiting state
app.state.limiter = limiter

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

app.add_middleware(RequestIDMiddleware)


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Deadline Alerts API...")
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()


# Register routers
app.include_router(scheduler.router)
app.include_router(testing.router)
app.include_router(client_alerts.router)
app.include_router(alert_templates.router)
app.include_router(drafted_reminders.router)


@app.get("/")
def read_root():
    """Root endpoint"""
    return {
        "message": "Deadline Alerts API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check with database verification"""
    health_status = {"status": "ok", "checks": {}}

    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "ok"
    except Exception as e:
        health_status["checks"]["database"] = "error"
        health_status["status"] = "degraded"
        logger.error(f"Database health check failed: {e}")

    health_status["checks"]["email"] = (
        "ok" if settings.RESEND_API_KEY and settings.EMAIL_FROM else "not_configured"
    )
    return health_status
