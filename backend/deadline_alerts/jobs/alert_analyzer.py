"""
Scheduled reminder pass.

Loads every active alert with its client, linked task and follow-up
schedules, decides which reminder windows are open today, and sends or
drafts a reminder for each of them. last_triggered_at is only advanced once
every open window has been dispatched, so a failed alert is retried in full
on the next pass.

Run once from a plain cron with:
    python -m deadline_alerts.jobs.alert_analyzer
"""
import logging
import time
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from deadline_alerts.db import SessionLocal
from deadline_alerts.exceptions import AppException, ConfigurationError, DeadlineNotFoundError
from deadline_alerts.models import ClientAlert
from deadline_alerts.services.deadline_resolver import ResolvedDeadline, resolve_due_date
from deadline_alerts.services.dispatch_router import DispatchOutcome, dispatch, resolve_cc_address
from deadline_alerts.services.email_service import email_service
from deadline_alerts.services.gap_detector import detect_gaps
from deadline_alerts.services.template_renderer import (
    TemplateStore,
    build_context,
    follow_up_subject,
    render_for_category,
    with_production_footer,
)
from deadline_alerts.services.trigger_evaluator import compute_trigger_date, should_fire, today_for_zone
from deadline_alerts.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    not_due: int = 0


@dataclass(frozen=True)
class ReminderWindow:
    """The primary offset or one follow-up schedule, treated as its own alert"""
    offset_days: int
    custom_body: Optional[str] = None
    subject: Optional[str] = None
    schedule_id: Optional[UUID] = None


def reminder_windows(alert: ClientAlert, title: str) -> List[ReminderWindow]:
    windows = [ReminderWindow(offset_days=alert.days_before_due, custom_body=alert.alert_message)]
    for schedule in alert.schedules:
        if not schedule.is_active:
            continue
        if schedule.use_custom_message and schedule.alert_message:
            windows.append(ReminderWindow(
                offset_days=schedule.days_before_due,
                custom_body=schedule.alert_message,
                subject=follow_up_subject(title),
                schedule_id=schedule.id,
            ))
        else:
            windows.append(ReminderWindow(
                offset_days=schedule.days_before_due,
                custom_body=alert.alert_message,
                schedule_id=schedule.id,
            ))
    return windows


def due_windows(
    windows: List[ReminderWindow],
    deadline: ResolvedDeadline,
    last_served_at: Optional[datetime],
    today: date,
) -> List[ReminderWindow]:
    """
    Windows that fire today, earliest trigger date first.

    Every window is judged against the same last_served_at snapshot, so an
    overdue alert that was never served fires all of its windows at once.
    """
    fired = [
        window for window in windows
        if should_fire(deadline.due_date, window.offset_days, last_served_at, today)
    ]
    return sorted(fired, key=lambda window: compute_trigger_date(deadline.due_date, window.offset_days))


def _lock_alert(db: Session, alert_id: UUID) -> Optional[ClientAlert]:
    """Re-read the alert row under a row lock so concurrent passes serialize"""
    return (
        db.query(ClientAlert)
        .filter(ClientAlert.id == alert_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def _process_alert(
    db: Session,
    alert_id: UUID,
    store: TemplateStore,
    today: date,
    now: datetime,
    cc_email: Optional[str],
    result: AnalysisResult,
) -> None:
    alert = _lock_alert(db, alert_id)
    if alert is None or not alert.is_active:
        db.rollback()
        result.skipped += 1
        return

    client = alert.client
    log_extra = {
        "alert_id": str(alert.id),
        "client_id": str(alert.client_id),
        "alert_type": alert.alert_type.value,
    }

    if client.automated_emails is False:
        db.rollback()
        logger.info("Automated emails disabled for client, skipping alert", extra=log_extra)
        result.skipped += 1
        return

    try:
        deadline = resolve_due_date(alert, client, alert.source_task)
    except DeadlineNotFoundError as e:
        db.rollback()
        logger.info(f"Skipping alert, no due date: {e.reason}", extra=log_extra)
        result.skipped += 1
        return

    last_served_at = alert.last_triggered_at
    windows = due_windows(reminder_windows(alert, deadline.title), deadline, last_served_at, today)
    if not windows:
        db.rollback()
        result.not_due += 1
        return

    # The row lock from _lock_alert is held through every send until the commit
    # below; an overlapping pass waits on it and then sees the new timestamp.
    context = build_context(client, deadline, alert.alert_type)
    served = []
    for window in windows:
        rendered = render_for_category(alert.alert_type, window.custom_body, context, store, subject=window.subject)
        outcome = dispatch(
            db,
            alert,
            client,
            rendered.subject,
            with_production_footer(rendered.body),
            cc_email=cc_email,
        )
        if outcome == DispatchOutcome.SKIPPED_OPT_OUT:
            db.rollback()
            result.skipped += 1
            return
        served.append((window, outcome))

    # Never move the served timestamp backwards
    alert.last_triggered_at = max(last_served_at, now) if last_served_at else now
    db.commit()
    result.processed += len(served)
    for window, outcome in served:
        logger.info(
            f"Alert served ({outcome.value})",
            extra={
                **log_extra,
                "schedule_id": str(window.schedule_id) if window.schedule_id else None,
                "status": outcome.value,
            },
        )


def run_alert_analysis(
    db: Session,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> AnalysisResult:
    """
    Run one reminder pass over all active alerts.

    Args:
        db: Database session; committed once per served alert
        today: Calendar day to evaluate against (default: today in REMINDER_TIMEZONE)
        now: Naive UTC timestamp recorded as last_triggered_at (default: utcnow)

    Returns:
        AnalysisResult; processed counts dispatched reminder windows

    Raises:
        ConfigurationError: email transport is not configured
    """
    email_service.ensure_configured()

    now = now or datetime.utcnow()
    today = today or today_for_zone(now=now)
    start = time.time()

    alerts = (
        db.query(ClientAlert)
        .options(
            joinedload(ClientAlert.client),
            joinedload(ClientAlert.source_task),
            selectinload(ClientAlert.schedules),
        )
        .filter(ClientAlert.is_active.is_(True))
        .order_by(ClientAlert.created_at.asc())
        .all()
    )
    alert_ids = [(alert.id, alert.client_id, alert.alert_type.value) for alert in alerts]
    store = TemplateStore.load(db)
    cc_email = resolve_cc_address()
    result = AnalysisResult()

    logger.info(f"Alert analysis started for {len(alert_ids)} active alerts")

    for alert_id, client_id, alert_type in alert_ids:
        log_extra = {"alert_id": str(alert_id), "client_id": str(client_id), "alert_type": alert_type}
        try:
            _process_alert(db, alert_id, store, today, now, cc_email, result)
        except ConfigurationError:
            db.rollback()
            raise
        except AppException as e:
            db.rollback()
            result.errors += 1
            logger.error(f"Failed to process alert: {e.error_code} - {e.message}", extra=log_extra)
        except SQLAlchemyError as e:
            db.rollback()
            result.errors += 1
            logger.error(f"Database error processing alert: {e}", extra=log_extra)
        except Exception as e:
            db.rollback()
            result.errors += 1
            logger.error(f"Unexpected error processing alert: {e}", extra=log_extra, exc_info=True)

    logger.info(
        "Alert analysis complete",
        extra={
            "processed": result.processed,
            "errors": result.errors,
            "duration_ms": int((time.time() - start) * 1000),
        },
    )
    return result


def main() -> None:
    configure_logging(logging.INFO)
    db = SessionLocal()
    try:
        result = run_alert_analysis(db)
        tasks = detect_gaps(db)
        logger.info(f"Scheduled pass finished: {asdict(result)}, gap tasks created: {len(tasks)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
