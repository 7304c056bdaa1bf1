from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrshift.models import GeneralSetting
from hrshift.settings import get_settings


@dataclass(frozen=True, slots=True)
class ResolvedSettings:
    daily_working_hours: float
    annual_vacation_hours: float
    vacations_per_year: int | None = None


def get_general_settings(db: Session) -> ResolvedSettings:
    settings = get_settings()
    row = db.scalar(select(GeneralSetting).order_by(GeneralSetting.id.asc()).limit(1))

    daily_working_hours = settings.default_daily_working_hours
    vacations_per_year: int | None = None
    if row is not None:
        if row.daily_working_hours is not None and row.daily_working_hours > 0:
            daily_working_hours = float(row.daily_working_hours)
        vacations_per_year = row.vacations_per_year

    # The allowance needs both figures configured explicitly.
    if row is not None and row.vacations_per_year is not None and row.daily_working_hours is not None:
        annual_vacation_hours = float(row.vacations_per_year) * float(row.daily_working_hours)
    else:
        annual_vacation_hours = settings.default_annual_vacation_hours

    return ResolvedSettings(
        daily_working_hours=daily_working_hours,
        annual_vacation_hours=annual_vacation_hours,
        vacations_per_year=vacations_per_year,
    )
