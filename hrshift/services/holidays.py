from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrshift.models import OfficialHoliday


def is_official_holiday(db: Session, day: date) -> bool:
    return db.scalar(select(OfficialHoliday.id).where(OfficialHoliday.day_date == day).limit(1)) is not None


def list_official_holidays(db: Session, *, start_date: date, end_date: date) -> list[OfficialHoliday]:
    return list(
        db.scalars(
            select(OfficialHoliday)
            .where(OfficialHoliday.day_date >= start_date, OfficialHoliday.day_date <= end_date)
            .order_by(OfficialHoliday.day_date.asc())
        ).all()
    )
