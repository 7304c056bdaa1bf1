from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from hrshift.models import AttendanceEvent, AttendanceType, EmployeeShift, HourLedgerKind, Shift
from hrshift.services.general_settings import get_general_settings
from hrshift.services.ledger import add_ledger_hours, get_ledger_hours

# Sub-second float noise must not produce ledger rows.
MIN_LEDGER_DELTA_HOURS = 1e-6

logger = logging.getLogger("hrshift.overtime")


@dataclass(frozen=True, slots=True)
class WorkedInterval:
    start_ts: datetime
    end_ts: datetime

    @property
    def hours(self) -> float:
        end_ts = self.end_ts
        if end_ts < self.start_ts:
            end_ts = end_ts + timedelta(hours=24)
        return (end_ts - self.start_ts).total_seconds() / 3600


@dataclass(slots=True)
class PairingResult:
    intervals: list[WorkedInterval] = field(default_factory=list)
    unpaired_attendance: list[datetime] = field(default_factory=list)
    stray_leaves: list[datetime] = field(default_factory=list)

    @property
    def worked_hours(self) -> float:
        return sum(item.hours for item in self.intervals)


@dataclass(frozen=True, slots=True)
class OvertimeResult:
    employee_id: int
    day_date: date
    worked_hours: float
    threshold_hours: float
    overtime_hours: float
    booked_before_hours: float
    added_hours: float


def pair_worked_intervals(events: Iterable[tuple[AttendanceType, datetime]]) -> PairingResult:
    """Pair time-ordered Attendance/Leave events strictly in sequence."""
    result = PairingResult()
    open_ts: datetime | None = None
    for event_type, ts in events:
        if event_type == AttendanceType.ATTENDANCE:
            if open_ts is not None:
                result.unpaired_attendance.append(open_ts)
            open_ts = ts
            continue
        if open_ts is None:
            result.stray_leaves.append(ts)
            continue
        result.intervals.append(WorkedInterval(start_ts=open_ts, end_ts=ts))
        open_ts = None

    if open_ts is not None:
        result.unpaired_attendance.append(open_ts)
    return result


def employee_has_overnight_shift(db: Session, employee_id: int) -> bool:
    shifts = db.scalars(
        select(Shift)
        .join(EmployeeShift, EmployeeShift.shift_id == Shift.id)
        .where(EmployeeShift.employee_id == employee_id)
    ).all()
    return any(shift.is_overnight for shift in shifts)


def _events_for_day(db: Session, *, employee_id: int, day: date, span_days: int) -> list[AttendanceEvent]:
    """Events whose occurrence is ``day``, plus unstamped events inside the calendar range."""
    start_ts = datetime.combine(day, datetime.min.time())
    end_ts = start_ts + timedelta(days=span_days)
    return list(
        db.scalars(
            select(AttendanceEvent)
            .where(
                AttendanceEvent.employee_id == employee_id,
                or_(
                    AttendanceEvent.occurrence_date == day,
                    and_(
                        AttendanceEvent.occurrence_date.is_(None),
                        AttendanceEvent.ts_local >= start_ts,
                        AttendanceEvent.ts_local < end_ts,
                    ),
                ),
            )
            .order_by(AttendanceEvent.ts_local.asc(), AttendanceEvent.id.asc())
        ).all()
    )


def record_overtime_for_day(db: Session, *, employee_id: int, day: date) -> OvertimeResult:
    """Bring the OVERTIME ledger for ``day`` up to the freshly computed value.

    Only the difference over what is already booked is added, so calling this
    again without new events leaves the ledger untouched. The caller owns the
    commit.
    """
    span_days = 2 if employee_has_overnight_shift(db, employee_id) else 1
    events = _events_for_day(db, employee_id=employee_id, day=day, span_days=span_days)

    pairing = pair_worked_intervals((item.type, item.ts_local) for item in events)
    for unpaired_ts in pairing.unpaired_attendance:
        logger.warning(
            "overtime_unpaired_attendance",
            extra={"employee_id": employee_id, "day_date": day.isoformat(), "ts": unpaired_ts.isoformat()},
        )

    threshold = get_general_settings(db).daily_working_hours
    worked = pairing.worked_hours
    overtime = max(0.0, worked - threshold)
    booked = get_ledger_hours(db, employee_id=employee_id, day_date=day, kind=HourLedgerKind.OVERTIME)

    added = 0.0
    delta = overtime - booked
    if delta > MIN_LEDGER_DELTA_HOURS:
        add_ledger_hours(
            db,
            employee_id=employee_id,
            day_date=day,
            kind=HourLedgerKind.OVERTIME,
            hours=delta,
        )
        added = delta

    logger.info(
        "overtime_calculated",
        extra={
            "employee_id": employee_id,
            "day_date": day.isoformat(),
            "worked_hours": round(worked, 4),
            "threshold_hours": threshold,
            "overtime_hours": round(overtime, 4),
            "added_hours": round(added, 4),
        },
    )
    return OvertimeResult(
        employee_id=employee_id,
        day_date=day,
        worked_hours=worked,
        threshold_hours=threshold,
        overtime_hours=overtime,
        booked_before_hours=booked,
        added_hours=added,
    )
