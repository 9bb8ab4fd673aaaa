from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from deadline_alerts.exceptions import DeadlineNotFoundError
from deadline_alerts.models import AlertType, Client, ClientAlert, ClientTask

# Client column holding the due date for each fixed category
DEADLINE_FIELDS = {
    AlertType.NEXT_ACCOUNTS_DUE: "next_accounts_due",
    AlertType.NEXT_CONFIRMATION_STATEMENT_DUE: "next_confirmation_statement_due",
    AlertType.NEXT_VAT_DUE: "next_vat_due",
    AlertType.CORPORATION_TAX_DEADLINE: "corporation_tax_deadline",
}


@dataclass(frozen=True)
class ResolvedDeadline:
    due_date: date
    title: str
    description: str = ""


def friendly_name(alert_type: Any) -> str:
    """NEXT_VAT_DUE -> Next Vat Due"""
    value = getattr(alert_type, "value", alert_type) or ""
    return " ".join(word.capitalize() for word in str(value).replace("_", " ").split())


def coerce_date(value: Any) -> Optional[date]:
    """Accept date, datetime or ISO strings; anything else resolves to None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            return None
    return None


def resolve_due_date(
    alert: ClientAlert,
    client: Client,
    linked_task: Optional[ClientTask] = None,
) -> ResolvedDeadline:
    """
    Look up the concrete due date an alert refers to.

    Raises DeadlineNotFoundError when the date is missing or unparseable, or
    when a task-linked alert has no task (or the task has no due date).
    """
    alert_id = str(alert.id) if alert.id else None
    alert_type = AlertType(alert.alert_type)

    if alert_type == AlertType.CLIENT_TASK:
        if not alert.source_task_id:
            raise DeadlineNotFoundError(alert_id, "task-linked alert has no source task")
        if linked_task is None:
            raise DeadlineNotFoundError(alert_id, "linked task not found")
        due = coerce_date(linked_task.due_date)
        if due is None:
            raise DeadlineNotFoundError(alert_id, "linked task has no due date")
        return ResolvedDeadline(
            due_date=due,
            title=linked_task.task_title or friendly_name(alert_type),
            description=linked_task.task_description or "",
        )

    field = DEADLINE_FIELDS[alert_type]
    due = coerce_date(getattr(client, field, None))
    if due is None:
        raise DeadlineNotFoundError(alert_id, f"client field {field} is empty or invalid")
    return ResolvedDeadline(due_date=due, title=friendly_name(alert_type))
