from __future__ import annotations

from datetime import date
import enum
import logging

from sqlalchemy.orm import Session

from hrshift.services.general_settings import get_general_settings
from hrshift.services.ledger import add_absence_hours, add_vacation_hours, get_vacation_hours_for_year

logger = logging.getLogger("hrshift.vacations")


class BookingKind(str, enum.Enum):
    VACATION = "VACATION"
    ABSENCE = "ABSENCE"


def remaining_vacation_hours(db: Session, *, employee_id: int, year: int) -> float:
    allowance = get_general_settings(db).annual_vacation_hours
    booked = get_vacation_hours_for_year(db, employee_id=employee_id, year=year)
    return allowance - booked


def add_vacation_or_absence(
    db: Session,
    *,
    employee_id: int,
    day: date,
    shift_hours: float,
) -> BookingKind:
    """Book a missed shift against the yearly vacation allowance.

    The hours land in the vacation accumulator while the remaining allowance
    for ``day.year`` still covers the whole shift, and in the absence
    accumulator otherwise. The caller owns the commit.
    """
    remaining = remaining_vacation_hours(db, employee_id=employee_id, year=day.year)
    if remaining >= shift_hours:
        add_vacation_hours(db, employee_id=employee_id, day_date=day, hours=shift_hours)
        kind = BookingKind.VACATION
    else:
        add_absence_hours(db, employee_id=employee_id, day_date=day, hours=shift_hours)
        kind = BookingKind.ABSENCE

    logger.info(
        "vacation_or_absence_booked",
        extra={
            "employee_id": employee_id,
            "day_date": day.isoformat(),
            "shift_hours": round(shift_hours, 4),
            "remaining_vacation_hours": round(remaining, 4),
            "kind": kind.value,
        },
    )
    return kind
