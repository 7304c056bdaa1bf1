from __future__ import annotations

from collections.abc import Generator
from datetime import date, time

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hrshift.db import Base
from hrshift.models import (
    Branch,
    Employee,
    EmployeeShift,
    GeneralSetting,
    HourLedgerEntry,
    HourLedgerKind,
    OfficialHoliday,
    Shift,
)

BRANCH_LAT = 41.0082
BRANCH_LON = 28.9784


def make_session_factory() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def override_get_db(factory: sessionmaker[Session]):
    def _override() -> Generator[Session, None, None]:
        db = factory()
        try:
            yield db
        finally:
            db.close()

    return _override


def seed_employee(
    db: Session,
    *,
    shifts: list[tuple[time, time]],
    full_name: str = "Ayse Yilmaz",
    radius_m: float = 150,
    is_active: bool = True,
) -> tuple[Employee, list[Shift]]:
    branch = db.scalar(select(Branch).where(Branch.name == "Main"))
    if branch is None:
        branch = Branch(name="Main", lat=BRANCH_LAT, lon=BRANCH_LON, radius_m=radius_m)
        db.add(branch)
        db.flush()

    employee = Employee(full_name=full_name, branch_id=branch.id, is_active=is_active)
    db.add(employee)
    db.flush()

    created: list[Shift] = []
    for start, end in shifts:
        shift = Shift(name=f"{start:%H:%M}-{end:%H:%M}", start_time_local=start, end_time_local=end)
        db.add(shift)
        db.flush()
        db.add(EmployeeShift(employee_id=employee.id, shift_id=shift.id))
        created.append(shift)
    db.commit()
    return employee, created


def seed_general_settings(
    db: Session,
    *,
    daily_working_hours: float | None = None,
    vacations_per_year: int | None = None,
) -> GeneralSetting:
    row = GeneralSetting(daily_working_hours=daily_working_hours, vacations_per_year=vacations_per_year)
    db.add(row)
    db.commit()
    return row


def seed_holiday(db: Session, day: date, name: str = "Holiday") -> None:
    db.add(OfficialHoliday(name=name, day_date=day))
    db.commit()


def ledger_hours(db: Session, employee_id: int, day: date, kind: HourLedgerKind) -> float | None:
    return db.scalar(
        select(HourLedgerEntry.hours).where(
            HourLedgerEntry.employee_id == employee_id,
            HourLedgerEntry.day_date == day,
            HourLedgerEntry.kind == kind,
        )
    )
