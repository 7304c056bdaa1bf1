"""Shift window arithmetic.

Every shift is a recurring template (start/end time of day). A concrete
calendar instance of it is a ``ShiftOccurrence`` anchored at the date the
shift starts on; overnight shifts (end < start) finish on the following day.
All matching below is done on absolute local datetimes built from
occurrences, which keeps the wrap-around over midnight in one place.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from hrshift.models import Shift
from hrshift.settings import get_settings

EARLY_ARRIVAL_GRACE = timedelta(minutes=30)
LATE_ATTENDANCE_CUTOFF = timedelta(minutes=60)
LEAVE_FALLBACK = timedelta(hours=2)


class NoValidShiftError(ValueError):
    """Raised when an employee has no shift with usable start/end times."""


@dataclass(frozen=True, slots=True)
class WindowRules:
    early_arrival_grace: timedelta = EARLY_ARRIVAL_GRACE
    late_attendance_cutoff: timedelta = LATE_ATTENDANCE_CUTOFF
    leave_fallback: timedelta = LEAVE_FALLBACK

    @classmethod
    def from_settings(cls) -> WindowRules:
        settings = get_settings()
        return cls(
            early_arrival_grace=timedelta(minutes=settings.early_arrival_grace_minutes),
            late_attendance_cutoff=timedelta(minutes=settings.late_attendance_cutoff_minutes),
            leave_fallback=timedelta(hours=settings.leave_fallback_hours),
        )


@dataclass(frozen=True, slots=True)
class ShiftOccurrence:
    shift_id: int
    occurrence_date: date
    start_time: time
    end_time: time

    @classmethod
    def of(cls, shift: Shift, occurrence_date: date) -> ShiftOccurrence:
        return cls(
            shift_id=shift.id,
            occurrence_date=occurrence_date,
            start_time=shift.start_time_local,
            end_time=shift.end_time_local,
        )

    @property
    def is_overnight(self) -> bool:
        return self.end_time < self.start_time

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.occurrence_date, self.start_time)

    @property
    def end_at(self) -> datetime:
        end_date = self.occurrence_date + timedelta(days=1) if self.is_overnight else self.occurrence_date
        return datetime.combine(end_date, self.end_time)

    @property
    def end_date(self) -> date:
        return self.end_at.date()

    @property
    def hours(self) -> float:
        return (self.end_at - self.start_at).total_seconds() / 3600

    def attendance_window(self, rules: WindowRules | None = None) -> tuple[datetime, datetime]:
        rules = rules or WindowRules.from_settings()
        opens = self.start_at - rules.early_arrival_grace
        if self.is_overnight:
            return opens, self.end_at
        return opens, self.end_at - rules.late_attendance_cutoff


def is_overnight(shift: Shift) -> bool:
    return shift.end_time_local < shift.start_time_local


def validate_shifts(shifts: Sequence[Shift | None] | None) -> list[Shift]:
    if not shifts:
        raise NoValidShiftError("Employee is not assigned to any shift.")
    valid: list[Shift] = []
    for shift in shifts:
        if shift is None or shift.start_time_local is None or shift.end_time_local is None:
            raise NoValidShiftError("Employee has a shift without valid start/end times.")
        valid.append(shift)
    return valid


def _ordered(shifts: Iterable[Shift]) -> list[Shift]:
    # Earlier start time of day wins ties.
    return sorted(shifts, key=lambda item: (item.start_time_local, item.id))


def _anchors(reference: date, *, back: int, forward: int) -> list[date]:
    return [reference + timedelta(days=offset) for offset in range(-back, forward + 1)]


def get_next_shift(shifts: Sequence[Shift], reference: datetime) -> ShiftOccurrence | None:
    """Next shift start strictly after ``reference``.

    Starts are projected onto the reference date. When every projected start
    is at or before the reference the lookup wraps to the earliest of them on
    the following day.
    """
    if not shifts:
        return None
    projected = [(datetime.combine(reference.date(), shift.start_time_local), shift) for shift in shifts]
    after = [item for item in projected if item[0] > reference]
    if after:
        start_at, shift = min(after, key=lambda item: (item[0], item[1].id))
        return ShiftOccurrence.of(shift, start_at.date())

    start_at, shift = min(projected, key=lambda item: (item[0], item[1].id))
    return ShiftOccurrence.of(shift, start_at.date() + timedelta(days=1))


def get_previous_shift(shifts: Sequence[Shift], reference: datetime) -> ShiftOccurrence | None:
    """Latest shift occurrence that ended strictly before ``reference``.

    Ends are projected onto the reference date (an overnight shift ending on
    that date started the day before). When no projected end is before the
    reference, the latest end after it is taken one day earlier, so an
    employee with a single recurring shift resolves to yesterday's instance
    of it. A shift ending exactly at the reference qualifies for neither.
    """
    if not shifts:
        return None

    projected: list[tuple[datetime, ShiftOccurrence]] = []
    for shift in shifts:
        anchor = reference.date() - timedelta(days=1) if is_overnight(shift) else reference.date()
        occurrence = ShiftOccurrence.of(shift, anchor)
        projected.append((occurrence.end_at, occurrence))

    before = [item for item in projected if item[0] < reference]
    if before:
        return max(before, key=lambda item: (item[0], item[1].start_at))[1]

    after = [item for item in projected if item[0] > reference]
    if not after:
        return None
    _, latest = max(after, key=lambda item: (item[0], item[1].start_at))
    return ShiftOccurrence(
        shift_id=latest.shift_id,
        occurrence_date=latest.occurrence_date - timedelta(days=1),
        start_time=latest.start_time,
        end_time=latest.end_time,
    )


def leave_window(
    occurrence: ShiftOccurrence,
    shifts: Sequence[Shift],
    rules: WindowRules | None = None,
) -> tuple[datetime, datetime]:
    rules = rules or WindowRules.from_settings()
    opens = occurrence.end_at
    next_occurrence = get_next_shift(shifts, opens)
    if next_occurrence is None or next_occurrence.shift_id == occurrence.shift_id:
        return opens, opens + rules.leave_fallback
    return opens, next_occurrence.start_at


def resolve_attendance_occurrence(
    shifts: Sequence[Shift | None] | None,
    event_ts: datetime,
    rules: WindowRules | None = None,
) -> ShiftOccurrence | None:
    rules = rules or WindowRules.from_settings()
    for shift in _ordered(validate_shifts(shifts)):
        for anchor in _anchors(event_ts.date(), back=1, forward=1):
            occurrence = ShiftOccurrence.of(shift, anchor)
            opens, closes = occurrence.attendance_window(rules)
            if opens <= event_ts <= closes:
                return occurrence
    return None


def resolve_leave_occurrence(
    shifts: Sequence[Shift | None] | None,
    event_ts: datetime,
    rules: WindowRules | None = None,
) -> ShiftOccurrence | None:
    rules = rules or WindowRules.from_settings()
    valid = validate_shifts(shifts)
    for shift in _ordered(valid):
        for anchor in _anchors(event_ts.date(), back=2, forward=0):
            occurrence = ShiftOccurrence.of(shift, anchor)
            opens, closes = leave_window(occurrence, valid, rules)
            if opens <= event_ts <= closes:
                return occurrence
    return None


def resolve_shift_for_attendance(
    shifts: Sequence[Shift | None] | None,
    event_ts: datetime,
    rules: WindowRules | None = None,
) -> Shift | None:
    occurrence = resolve_attendance_occurrence(shifts, event_ts, rules)
    return _shift_by_id(shifts, occurrence)


def resolve_shift_for_leave(
    shifts: Sequence[Shift | None] | None,
    event_ts: datetime,
    rules: WindowRules | None = None,
) -> Shift | None:
    occurrence = resolve_leave_occurrence(shifts, event_ts, rules)
    return _shift_by_id(shifts, occurrence)


def _shift_by_id(shifts: Sequence[Shift | None] | None, occurrence: ShiftOccurrence | None) -> Shift | None:
    if occurrence is None:
        return None
    for shift in shifts or []:
        if shift is not None and shift.id == occurrence.shift_id:
            return shift
    return None


def describe_attendance_windows(shifts: Sequence[Shift], rules: WindowRules | None = None) -> str:
    rules = rules or WindowRules.from_settings()
    parts: list[str] = []
    for shift in _ordered(shifts):
        occurrence = ShiftOccurrence.of(shift, date(2000, 1, 1))
        opens, closes = occurrence.attendance_window(rules)
        parts.append(f"{opens:%H:%M}-{closes:%H:%M} (shift {shift.start_time_local:%H:%M}-{shift.end_time_local:%H:%M})")
    return ", ".join(parts)
