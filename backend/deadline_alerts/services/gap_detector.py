import logging
from datetime import date
from typing import List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deadline_alerts.models import (
    Client,
    ClientAlert,
    ClientTask,
    FIXED_ALERT_TYPES,
    TaskAction,
    TaskStage,
    TERMINAL_TASK_STAGES,
)
from deadline_alerts.services.deadline_resolver import DEADLINE_FIELDS, coerce_date, friendly_name
from deadline_alerts.services.trigger_evaluator import today_for_zone

logger = logging.getLogger(__name__)


def _active_alert_keys(db: Session) -> Set[Tuple[str, str]]:
    rows = (
        db.query(ClientAlert.client_id, ClientAlert.alert_type)
        .filter(ClientAlert.is_active.is_(True))
        .all()
    )
    return {(str(client_id), alert_type.value) for client_id, alert_type in rows}


def _open_action_keys(db: Session) -> Set[Tuple[str, str]]:
    tasks = (
        db.query(ClientTask)
        .filter(
            ClientTask.action_needed == TaskAction.CREATE_ALERT,
            ClientTask.stage.notin_(TERMINAL_TASK_STAGES),
        )
        .all()
    )
    keys = set()
    for task in tasks:
        alert_type = (task.action_details or {}).get("alert_type")
        if alert_type:
            keys.add((str(task.client_id), alert_type))
    return keys


def _build_task(client: Client, alert_type, field: str, raw_value, due: date) -> ClientTask:
    name = friendly_name(alert_type)
    return ClientTask(
        client_id=client.id,
        task_title=f"Create {name} alert for {client.client_name}",
        task_description=(
            f"{client.client_name} has a {name} deadline on {due.isoformat()} "
            f"but no active reminder is configured. Set up an alert for this deadline."
        ),
        stage=TaskStage.TO_DO,
        due_date=due,
        action_needed=TaskAction.CREATE_ALERT,
        action_details={
            "alert_type": alert_type.value,
            "source_field": field,
            "due_date": raw_value.isoformat() if hasattr(raw_value, "isoformat") else raw_value,
        },
    )


def detect_gaps(db: Session, today: Optional[date] = None) -> List[ClientTask]:
    """
    Open a follow-up task for every client deadline that has no active alert.

    Deadlines already in the past are ignored, as are categories that already
    have an open CREATE_ALERT task, so repeated runs do not pile up tasks.
    """
    today = today or today_for_zone()
    active_alerts = _active_alert_keys(db)
    open_actions = _open_action_keys(db)
    created: List[ClientTask] = []

    for client in db.query(Client).order_by(Client.created_at.asc()).all():
        for alert_type in FIXED_ALERT_TYPES:
            field = DEADLINE_FIELDS[alert_type]
            key = (str(client.id), alert_type.value)
            raw_value = getattr(client, field, None)
            due = coerce_date(raw_value)
            if due is None or due < today:
                continue
            if key in active_alerts or key in open_actions:
                continue

            try:
                task = _build_task(client, alert_type, field, raw_value, due)
                db.add(task)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    f"Failed to open alert gap task: {e}",
                    extra={"client_id": str(client.id), "alert_type": alert_type.value},
                )
                continue

            open_actions.add(key)
            created.append(task)
            logger.info(
                "Opened task for missing alert",
                extra={"client_id": str(client.id), "alert_type": alert_type.value},
            )

    logger.info(f"Gap detection complete. Tasks created: {len(created)}")
    return created
