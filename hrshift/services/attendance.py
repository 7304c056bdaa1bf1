from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
import logging
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hrshift.errors import (
    ApiError,
    AttendanceRequiredFirstError,
    DuplicateAttendanceError,
    DuplicateLeaveError,
    EmployeeNotEligibleError,
    InvalidInputError,
    NoMatchingShiftError,
    OutsideGeofenceError,
    StorageError,
)
from hrshift.models import (
    AttendanceEvent,
    AttendanceType,
    Branch,
    Employee,
    EmployeeShift,
    HourLedgerKind,
    Shift,
)
from hrshift.services.ledger import add_ledger_hours
from hrshift.services.location import branch_has_geofence, evaluate_branch_location
from hrshift.services.overtime import OvertimeResult, record_overtime_for_day
from hrshift.services.shift_windows import (
    NoValidShiftError,
    ShiftOccurrence,
    WindowRules,
    describe_attendance_windows,
    leave_window,
    resolve_attendance_occurrence,
    resolve_leave_occurrence,
    validate_shifts,
)
from hrshift.settings import get_settings

logger = logging.getLogger("hrshift.attendance")


@dataclass(frozen=True, slots=True)
class EmployeeContext:
    employee: Employee
    branch: Branch
    shifts: list[Shift]


@dataclass(frozen=True, slots=True)
class RecordedEvent:
    event: AttendanceEvent
    occurrence: ShiftOccurrence
    late_hours: float = 0.0
    overtime: OvertimeResult | None = None


def _attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "Europe/Istanbul"
    try:
        return ZoneInfo(raw_name)
    except Exception:
        return ZoneInfo("Europe/Istanbul")


def normalize_event_ts(event_ts: datetime | None) -> datetime:
    """Return the event time as a naive local wall-clock datetime."""
    if event_ts is None or event_ts.replace(tzinfo=None) == datetime.min:
        raise InvalidInputError()
    if event_ts.tzinfo is None:
        return event_ts
    return event_ts.astimezone(_attendance_timezone()).replace(tzinfo=None)


def local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone(_attendance_timezone()).replace(tzinfo=None)


def load_employee_shifts(db: Session, employee_id: int) -> list[Shift]:
    return list(
        db.scalars(
            select(Shift)
            .join(EmployeeShift, EmployeeShift.shift_id == Shift.id)
            .where(EmployeeShift.employee_id == employee_id)
            .order_by(Shift.start_time_local.asc(), Shift.id.asc())
        ).all()
    )


def _load_employee_context(db: Session, employee_id: int) -> EmployeeContext:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise EmployeeNotEligibleError("Employee not found.")
    if not employee.is_active:
        raise EmployeeNotEligibleError("Employee is not active.")

    branch = db.get(Branch, employee.branch_id) if employee.branch_id is not None else None
    if branch is None or not branch_has_geofence(branch):
        raise EmployeeNotEligibleError("Employee is not assigned to a branch with a designated area.")

    try:
        shifts = validate_shifts(load_employee_shifts(db, employee_id))
    except NoValidShiftError as exc:
        raise EmployeeNotEligibleError(str(exc)) from exc

    return EmployeeContext(employee=employee, branch=branch, shifts=shifts)


def _ensure_inside_branch(context: EmployeeContext, lat: float, lon: float) -> dict[str, Any]:
    inside, flags = evaluate_branch_location(context.branch, lat, lon)
    if not inside:
        raise OutsideGeofenceError()
    return flags


def _find_occurrence_event(
    db: Session,
    *,
    employee_id: int,
    occurrence: ShiftOccurrence,
    event_type: AttendanceType,
) -> AttendanceEvent | None:
    return db.scalar(
        select(AttendanceEvent).where(
            AttendanceEvent.employee_id == employee_id,
            AttendanceEvent.shift_id == occurrence.shift_id,
            AttendanceEvent.occurrence_date == occurrence.occurrence_date,
            AttendanceEvent.type == event_type,
        )
    )


def _duplicate_attendance(occurrence: ShiftOccurrence) -> DuplicateAttendanceError:
    return DuplicateAttendanceError(
        f"Attendance already recorded for the shift starting at {occurrence.start_time:%H:%M} "
        f"on {occurrence.occurrence_date.isoformat()}."
    )


def _duplicate_leave(occurrence: ShiftOccurrence) -> DuplicateLeaveError:
    return DuplicateLeaveError(
        f"Leave already recorded for the shift starting at {occurrence.start_time:%H:%M} "
        f"on {occurrence.occurrence_date.isoformat()}."
    )


def _persist_event(
    db: Session,
    *,
    employee_id: int,
    event_type: AttendanceType,
    ts_local: datetime,
    lat: float,
    lon: float,
    occurrence: ShiftOccurrence,
    duplicate_error: ApiError,
) -> AttendanceEvent:
    event = AttendanceEvent(
        employee_id=employee_id,
        type=event_type,
        ts_local=ts_local,
        lat=lat,
        lon=lon,
        shift_id=occurrence.shift_id,
        occurrence_date=occurrence.occurrence_date,
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    try:
        db.flush()
    except IntegrityError as exc:
        raise duplicate_error from exc
    return event


def late_hours_for(occurrence: ShiftOccurrence, ts_local: datetime) -> float:
    threshold = timedelta(minutes=get_settings().late_threshold_minutes)
    delta = ts_local - occurrence.start_at
    if delta <= threshold:
        return 0.0
    return delta.total_seconds() / 3600


def _run_recording(
    db: Session,
    *,
    operation: str,
    log_fields: dict[str, Any],
    work: Callable[[], RecordedEvent],
) -> RecordedEvent:
    try:
        recorded = work()
        db.commit()
    except ApiError as exc:
        db.rollback()
        logger.warning(
            f"{operation}_rejected",
            extra={**log_fields, "code": exc.code, "reason": exc.message},
        )
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(f"{operation}_storage_failed", extra=log_fields)
        raise StorageError() from exc
    except Exception:
        db.rollback()
        logger.exception(f"{operation}_failed", extra=log_fields)
        raise

    db.refresh(recorded.event)
    logger.info(
        f"{operation}_recorded",
        extra={
            **log_fields,
            "event_id": recorded.event.id,
            "shift_id": recorded.occurrence.shift_id,
            "occurrence_date": recorded.occurrence.occurrence_date.isoformat(),
            "late_hours": round(recorded.late_hours, 4),
            "overtime_added_hours": round(recorded.overtime.added_hours, 4) if recorded.overtime else None,
        },
    )
    return recorded


def _log_fields(operation: str, employee_id: int, event_ts: datetime | None) -> dict[str, Any]:
    return {
        "operation": operation,
        "employee_id": employee_id,
        "ts": event_ts.isoformat() if event_ts is not None else None,
    }


def record_attendance(
    db: Session,
    *,
    employee_id: int,
    event_ts: datetime | None,
    lat: float,
    lon: float,
    rules: WindowRules | None = None,
) -> RecordedEvent:
    operation = "record_attendance"
    log_fields = _log_fields(operation, employee_id, event_ts)
    rules = rules or WindowRules.from_settings()

    def work() -> RecordedEvent:
        ts_local = normalize_event_ts(event_ts)
        context = _load_employee_context(db, employee_id)
        _ensure_inside_branch(context, lat, lon)

        occurrence = resolve_attendance_occurrence(context.shifts, ts_local, rules)
        if occurrence is None:
            raise NoMatchingShiftError(
                "Attendance time does not match any assigned shift. Allowed windows: "
                + describe_attendance_windows(context.shifts, rules)
            )

        if _find_occurrence_event(
            db,
            employee_id=employee_id,
            occurrence=occurrence,
            event_type=AttendanceType.ATTENDANCE,
        ) is not None:
            raise _duplicate_attendance(occurrence)

        event = _persist_event(
            db,
            employee_id=employee_id,
            event_type=AttendanceType.ATTENDANCE,
            ts_local=ts_local,
            lat=lat,
            lon=lon,
            occurrence=occurrence,
            duplicate_error=_duplicate_attendance(occurrence),
        )

        late_hours = late_hours_for(occurrence, ts_local)
        if late_hours > 0:
            add_ledger_hours(
                db,
                employee_id=employee_id,
                day_date=occurrence.occurrence_date,
                kind=HourLedgerKind.LATE,
                hours=late_hours,
            )
        return RecordedEvent(event=event, occurrence=occurrence, late_hours=late_hours)

    return _run_recording(db, operation=operation, log_fields=log_fields, work=work)


def record_leave(
    db: Session,
    *,
    employee_id: int,
    event_ts: datetime | None,
    lat: float,
    lon: float,
    rules: WindowRules | None = None,
) -> RecordedEvent:
    operation = "record_leave"
    log_fields = _log_fields(operation, employee_id, event_ts)
    rules = rules or WindowRules.from_settings()

    def work() -> RecordedEvent:
        ts_local = normalize_event_ts(event_ts)
        context = _load_employee_context(db, employee_id)
        _ensure_inside_branch(context, lat, lon)

        occurrence = resolve_leave_occurrence(context.shifts, ts_local, rules)
        if occurrence is None:
            raise NoMatchingShiftError(
                "Leave time does not match the end of any assigned shift. "
                "Leave is accepted from a shift's end until the next shift starts."
            )

        if _find_occurrence_event(
            db,
            employee_id=employee_id,
            occurrence=occurrence,
            event_type=AttendanceType.ATTENDANCE,
        ) is None:
            raise AttendanceRequiredFirstError(
                f"Attendance must be recorded before leave for the shift starting at "
                f"{occurrence.start_time:%H:%M} on {occurrence.occurrence_date.isoformat()}."
            )

        if _has_leave_in_window(db, employee_id=employee_id, occurrence=occurrence, context=context, rules=rules):
            raise _duplicate_leave(occurrence)

        event = _persist_event(
            db,
            employee_id=employee_id,
            event_type=AttendanceType.LEAVE,
            ts_local=ts_local,
            lat=lat,
            lon=lon,
            occurrence=occurrence,
            duplicate_error=_duplicate_leave(occurrence),
        )
        overtime = record_overtime_for_day(db, employee_id=employee_id, day=occurrence.occurrence_date)
        return RecordedEvent(event=event, occurrence=occurrence, overtime=overtime)

    return _run_recording(db, operation=operation, log_fields=log_fields, work=work)


def _has_leave_in_window(
    db: Session,
    *,
    employee_id: int,
    occurrence: ShiftOccurrence,
    context: EmployeeContext,
    rules: WindowRules,
) -> bool:
    opens, closes = leave_window(occurrence, context.shifts, rules)
    found = db.scalar(
        select(AttendanceEvent.id)
        .where(
            AttendanceEvent.employee_id == employee_id,
            AttendanceEvent.type == AttendanceType.LEAVE,
            AttendanceEvent.ts_local >= opens,
            AttendanceEvent.ts_local <= closes,
        )
        .limit(1)
    )
    return found is not None


def list_employee_events(
    db: Session,
    *,
    employee_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[AttendanceEvent]:
    stmt = select(AttendanceEvent).where(AttendanceEvent.employee_id == employee_id)
    if start_date is not None:
        stmt = stmt.where(AttendanceEvent.ts_local >= datetime.combine(start_date, datetime.min.time()))
    if end_date is not None:
        stmt = stmt.where(
            AttendanceEvent.ts_local < datetime.combine(end_date + timedelta(days=1), datetime.min.time())
        )
    stmt = stmt.order_by(AttendanceEvent.ts_local.asc(), AttendanceEvent.id.asc())
    return list(db.scalars(stmt).all())
