"""
Calendar-day trigger math for deadline reminders.

Trigger date = due date - offset days. A reminder fires once "today" has
reached the trigger date, unless the alert was already served on or after
that trigger date. All comparisons are whole calendar days in the zone
named by settings.REMINDER_TIMEZONE; stored timestamps are naive UTC.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from deadline_alerts.config import settings


def _zone(tz_name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.REMINDER_TIMEZONE)


def today_for_zone(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """Current calendar day in the reminder timezone."""
    now = now or datetime.utcnow()
    return served_on(now, tz_name)


def served_on(timestamp: datetime, tz_name: Optional[str] = None) -> date:
    """Calendar day a naive-UTC (or aware) timestamp falls on in the reminder timezone."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(_zone(tz_name)).date()


def compute_trigger_date(due_date: date, offset_days: int) -> date:
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    return due_date - timedelta(days=offset_days)


def already_served(last_served_at: Optional[datetime], trigger_date: date, tz_name: Optional[str] = None) -> bool:
    if last_served_at is None:
        return False
    return served_on(last_served_at, tz_name) >= trigger_date


def should_fire(
    due_date: date,
    offset_days: int,
    last_served_at: Optional[datetime],
    today: date,
    tz_name: Optional[str] = None,
) -> bool:
    """
    Decide whether the window opened by (due_date, offset_days) is due today.

    Overdue deadlines still fire when the window was never served; a far
    future deadline with a small offset does not.
    """
    trigger_date = compute_trigger_date(due_date, offset_days)
    if today < trigger_date:
        return False
    return not already_served(last_served_at, trigger_date, tz_name)
