from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from hrshift.models import AuditActorType, AuditLog

logger = logging.getLogger("hrshift.audit")


class AuditAction(str, enum.Enum):
    ATTENDANCE_RECORDED = "ATTENDANCE_RECORDED"
    LEAVE_RECORDED = "LEAVE_RECORDED"
    SHIFT_SWEEP_TRIGGERED = "SHIFT_SWEEP_TRIGGERED"
    SHIFT_SWEEP_SCHEDULED = "SHIFT_SWEEP_SCHEDULED"
    OVERTIME_RECALCULATED = "OVERTIME_RECALCULATED"
    NOTIFICATION_DELETED = "NOTIFICATION_DELETED"
    HOURS_EXPORT_XLSX = "HOURS_EXPORT_XLSX"


@dataclass(frozen=True, slots=True)
class AuditActor:
    type: AuditActorType
    id: str


ADMIN_ACTOR = AuditActor(type=AuditActorType.ADMIN, id="admin")
SWEEP_WORKER_ACTOR = AuditActor(type=AuditActorType.SYSTEM, id="sweep_worker")


def employee_actor(employee_id: int) -> AuditActor:
    return AuditActor(type=AuditActorType.EMPLOYEE, id=str(employee_id))


def log_audit(
    db: Session,
    *,
    actor: AuditActor,
    action: AuditAction,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog | None:
    """Write one audit row in its own commit.

    Audit is best effort: the business change it describes is already
    committed, so a failed write is rolled back and logged and ``None`` is
    returned instead of raising.
    """
    log_fields: dict[str, Any] = {
        "request_id": request_id,
        "action": action.value,
        "actor_type": actor.type.value,
        "actor_id": actor.id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "success": success,
    }
    row = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor.type,
        actor_id=actor.id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        success=success,
        details=details or {},
    )
    db.add(row)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("audit_log_write_failed", extra=log_fields)
        return None

    logger.info("audit_event", extra={**log_fields, "audit_id": row.id, "details": details or {}})
    return row
