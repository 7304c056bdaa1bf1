from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrshift.models import Employee, Notification
from hrshift.services.shift_windows import ShiftOccurrence

FORGOT_LEAVE_TITLE = "Forget Leave Notification"
FORGOT_LEAVE_MESSAGE_TEMPLATE = (
    "Employee {name} forgot to record leave for the shift on {day} "
    "that started at {start} and ended at {end}."
)

logger = logging.getLogger("hrshift.notifications")


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    employee_id: int
    shift_id: int | None
    name: str
    title: str
    message: str
    start_time: str
    end_time: str


def build_forgot_leave_notification(employee: Employee, occurrence: ShiftOccurrence) -> NotificationPayload:
    start = occurrence.start_time.strftime("%H:%M")
    end = occurrence.end_time.strftime("%H:%M")
    return NotificationPayload(
        employee_id=employee.id,
        shift_id=occurrence.shift_id,
        name=employee.full_name,
        title=FORGOT_LEAVE_TITLE,
        message=FORGOT_LEAVE_MESSAGE_TEMPLATE.format(
            name=employee.full_name,
            day=occurrence.occurrence_date.isoformat(),
            start=start,
            end=end,
        ),
        start_time=start,
        end_time=end,
    )


def _to_model(payload: NotificationPayload) -> Notification:
    return Notification(
        employee_id=payload.employee_id,
        shift_id=payload.shift_id,
        name=payload.name,
        title=payload.title,
        message=payload.message,
        start_time=payload.start_time,
        end_time=payload.end_time,
        created_at=datetime.now(timezone.utc),
    )


def add_notification(db: Session, payload: NotificationPayload) -> Notification:
    """Stage one notification; the caller owns the commit."""
    notification = _to_model(payload)
    db.add(notification)
    db.flush()
    logger.info(
        "notification_added",
        extra={
            "employee_id": payload.employee_id,
            "shift_id": payload.shift_id,
            "notification_id": notification.id,
            "title": payload.title,
        },
    )
    return notification


def add_notifications(db: Session, payloads: Sequence[NotificationPayload]) -> list[Notification]:
    notifications = [_to_model(payload) for payload in payloads]
    if not notifications:
        return []
    db.add_all(notifications)
    db.flush()
    logger.info("notifications_added", extra={"count": len(notifications)})
    return notifications


def list_notifications(
    db: Session,
    *,
    employee_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Notification]:
    stmt = select(Notification)
    if employee_id is not None:
        stmt = stmt.where(Notification.employee_id == employee_id)
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(stmt).all())


def delete_notification(db: Session, notification_id: int) -> bool:
    notification = db.get(Notification, notification_id)
    if notification is None:
        return False
    db.delete(notification)
    db.commit()
    logger.info("notification_deleted", extra={"notification_id": notification_id})
    return True
