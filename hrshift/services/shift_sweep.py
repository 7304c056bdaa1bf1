"""Reconciliation of shifts that just ended.

A sweep runs at a shift start minute. Every employee with a shift starting
then gets the occurrence of their previous shift checked: a missing
attendance is booked as vacation or absence, a missing leave raises a
forgot-leave notification. Each reconciled occurrence is marked so a
repeated tick for the same minute does nothing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrshift.db import SessionLocal
from hrshift.models import (
    AttendanceEvent,
    AttendanceType,
    Employee,
    EmployeeShift,
    ReconciliationOutcome,
    Shift,
    ShiftReconciliation,
)
from hrshift.services.attendance import load_employee_shifts, normalize_event_ts
from hrshift.services.holidays import is_official_holiday
from hrshift.services.notifications import add_notification, build_forgot_leave_notification
from hrshift.services.shift_windows import ShiftOccurrence, WindowRules, get_previous_shift
from hrshift.services.vacations import BookingKind, add_vacation_or_absence

MAX_CATCH_UP_MINUTES = 15

logger = logging.getLogger("hrshift.shift_sweep")


@dataclass(slots=True)
class SweepReport:
    trigger_local: datetime
    candidates: int = 0
    absences: int = 0
    vacations: int = 0
    notifications: int = 0
    complete: int = 0
    skipped_holiday: int = 0
    skipped_no_previous: int = 0
    skipped_inactive: int = 0
    already_reconciled: int = 0
    failed: int = 0
    failed_employee_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["trigger_local"] = self.trigger_local.isoformat()
        return payload


def _candidate_employee_ids(db: Session, trigger: datetime) -> list[int]:
    rows = db.execute(
        select(EmployeeShift.employee_id, Shift.start_time_local).join(Shift, Shift.id == EmployeeShift.shift_id)
    ).all()
    matched = {
        employee_id
        for employee_id, start_time_local in rows
        if start_time_local.hour == trigger.hour and start_time_local.minute == trigger.minute
    }
    return sorted(matched)


def _is_reconciled(db: Session, *, employee_id: int, occurrence: ShiftOccurrence) -> bool:
    found = db.scalar(
        select(ShiftReconciliation.id).where(
            ShiftReconciliation.employee_id == employee_id,
            ShiftReconciliation.shift_id == occurrence.shift_id,
            ShiftReconciliation.occurrence_date == occurrence.occurrence_date,
        )
    )
    return found is not None


def _mark_reconciled(
    db: Session,
    *,
    employee_id: int,
    occurrence: ShiftOccurrence,
    outcome: ReconciliationOutcome,
) -> None:
    db.add(
        ShiftReconciliation(
            employee_id=employee_id,
            shift_id=occurrence.shift_id,
            occurrence_date=occurrence.occurrence_date,
            outcome=outcome,
        )
    )
    db.flush()


def _has_attendance(db: Session, *, employee_id: int, occurrence: ShiftOccurrence, rules: WindowRules) -> bool:
    opens, closes = occurrence.attendance_window(rules)
    found = db.scalar(
        select(AttendanceEvent.id)
        .where(
            AttendanceEvent.employee_id == employee_id,
            AttendanceEvent.type == AttendanceType.ATTENDANCE,
            or_(
                and_(
                    AttendanceEvent.shift_id == occurrence.shift_id,
                    AttendanceEvent.occurrence_date == occurrence.occurrence_date,
                ),
                and_(AttendanceEvent.ts_local >= opens, AttendanceEvent.ts_local <= closes),
            ),
        )
        .limit(1)
    )
    return found is not None


def _has_leave(db: Session, *, employee_id: int, occurrence: ShiftOccurrence, until: datetime) -> bool:
    found = db.scalar(
        select(AttendanceEvent.id)
        .where(
            AttendanceEvent.employee_id == employee_id,
            AttendanceEvent.type == AttendanceType.LEAVE,
            or_(
                and_(
                    AttendanceEvent.shift_id == occurrence.shift_id,
                    AttendanceEvent.occurrence_date == occurrence.occurrence_date,
                ),
                and_(AttendanceEvent.ts_local >= occurrence.start_at, AttendanceEvent.ts_local <= until),
            ),
        )
        .limit(1)
    )
    return found is not None


def _reconcile_employee(
    db: Session,
    *,
    employee_id: int,
    trigger: datetime,
    rules: WindowRules,
    report: SweepReport,
) -> None:
    employee = db.get(Employee, employee_id)
    if employee is None or not employee.is_active:
        report.skipped_inactive += 1
        return

    log_fields: dict[str, Any] = {"employee_id": employee_id, "trigger_local": trigger.isoformat()}
    previous = get_previous_shift(load_employee_shifts(db, employee_id), trigger)
    if previous is None:
        report.skipped_no_previous += 1
        logger.info("shift_sweep_no_previous_shift", extra=log_fields)
        return

    log_fields.update(
        {
            "shift_id": previous.shift_id,
            "occurrence_date": previous.occurrence_date.isoformat(),
            "occurrence_end_date": previous.end_date.isoformat(),
        }
    )
    if _is_reconciled(db, employee_id=employee_id, occurrence=previous):
        report.already_reconciled += 1
        return

    if is_official_holiday(db, previous.occurrence_date) or is_official_holiday(db, previous.end_date):
        _mark_reconciled(db, employee_id=employee_id, occurrence=previous, outcome=ReconciliationOutcome.HOLIDAY)
        report.skipped_holiday += 1
        logger.info("shift_sweep_holiday_skipped", extra=log_fields)
        return

    if not _has_attendance(db, employee_id=employee_id, occurrence=previous, rules=rules):
        kind = add_vacation_or_absence(
            db,
            employee_id=employee_id,
            day=previous.occurrence_date,
            shift_hours=previous.hours,
        )
        if kind == BookingKind.VACATION:
            outcome = ReconciliationOutcome.VACATION
            report.vacations += 1
        else:
            outcome = ReconciliationOutcome.ABSENCE
            report.absences += 1
        _mark_reconciled(db, employee_id=employee_id, occurrence=previous, outcome=outcome)
        logger.info("shift_sweep_missed_shift_booked", extra={**log_fields, "kind": kind.value})
        return

    if not _has_leave(db, employee_id=employee_id, occurrence=previous, until=trigger):
        add_notification(db, build_forgot_leave_notification(employee, previous))
        _mark_reconciled(
            db,
            employee_id=employee_id,
            occurrence=previous,
            outcome=ReconciliationOutcome.FORGOT_LEAVE,
        )
        report.notifications += 1
        logger.info("shift_sweep_forgot_leave_notified", extra=log_fields)
        return

    _mark_reconciled(db, employee_id=employee_id, occurrence=previous, outcome=ReconciliationOutcome.COMPLETE)
    report.complete += 1


def pending_sweep_minutes(last_swept: datetime | None, current: datetime) -> list[datetime]:
    """Trigger minutes between the last sweep and ``current``, oldest first.

    A worker tick that wakes late must still sweep every shift start minute
    it slept through, bounded by ``MAX_CATCH_UP_MINUTES``.
    """
    current = current.replace(second=0, microsecond=0)
    if last_swept is None:
        return [current]
    if current <= last_swept:
        return []
    missed = int((current - last_swept).total_seconds() // 60)
    count = min(missed, MAX_CATCH_UP_MINUTES)
    return [current - timedelta(minutes=offset) for offset in reversed(range(count))]


def run_shift_sweep(
    now: datetime,
    db: Session | None = None,
    rules: WindowRules | None = None,
) -> SweepReport:
    if db is None:
        with SessionLocal() as managed_db:
            return run_shift_sweep(now, db=managed_db, rules=rules)

    rules = rules or WindowRules.from_settings()
    trigger = normalize_event_ts(now).replace(second=0, microsecond=0)
    report = SweepReport(trigger_local=trigger)

    employee_ids = _candidate_employee_ids(db, trigger)
    report.candidates = len(employee_ids)
    for employee_id in employee_ids:
        try:
            _reconcile_employee(db, employee_id=employee_id, trigger=trigger, rules=rules, report=report)
            db.commit()
        except IntegrityError:
            # Another sweep marked the same occurrence first.
            db.rollback()
            report.already_reconciled += 1
            logger.warning(
                "shift_sweep_concurrent_reconciliation",
                extra={"employee_id": employee_id, "trigger_local": trigger.isoformat()},
            )
        except Exception:
            db.rollback()
            report.failed += 1
            report.failed_employee_ids.append(employee_id)
            logger.exception(
                "shift_sweep_employee_failed",
                extra={"employee_id": employee_id, "trigger_local": trigger.isoformat()},
            )

    logger.info("shift_sweep_completed", extra=report.to_dict())
    return report
