from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from hrshift.models import EmployeeAbsence, EmployeeVacation, HourLedgerEntry, HourLedgerKind

logger = logging.getLogger("hrshift.ledger")

LedgerModel = type[HourLedgerEntry] | type[EmployeeVacation] | type[EmployeeAbsence]

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_name(db: Session) -> str:
    return db.get_bind().dialect.name


def _upsert_add(
    db: Session,
    model: LedgerModel,
    *,
    key: dict[str, object],
    conflict_columns: list[str],
    hours: float,
) -> None:
    """Add ``hours`` to the row identified by ``key``, inserting it when missing.

    PostgreSQL and SQLite get a single ``INSERT ... ON CONFLICT DO UPDATE``
    statement so concurrent adds on the same key serialize on the row. Other
    dialects fall back to a locked read-modify-write.
    """
    insert_factory = _UPSERT_INSERTS.get(_dialect_name(db))
    if insert_factory is not None:
        statement = insert_factory(model).values(**key, hours=hours)
        statement = statement.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={"hours": model.hours + statement.excluded.hours},
        )
        db.execute(statement)
        return

    filters = [getattr(model, column) == value for column, value in key.items()]
    row = db.scalar(select(model).where(*filters).with_for_update())
    if row is None:
        db.add(model(**key, hours=hours))
    else:
        row.hours = float(row.hours or 0) + hours
    db.flush()


def add_ledger_hours(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    kind: HourLedgerKind,
    hours: float,
) -> None:
    if hours <= 0:
        return
    _upsert_add(
        db,
        HourLedgerEntry,
        key={"employee_id": employee_id, "day_date": day_date, "kind": kind},
        conflict_columns=["employee_id", "day_date", "kind"],
        hours=hours,
    )
    logger.info(
        "ledger_hours_added",
        extra={
            "employee_id": employee_id,
            "day_date": day_date.isoformat(),
            "kind": kind.value,
            "hours": round(hours, 4),
        },
    )


def add_vacation_hours(db: Session, *, employee_id: int, day_date: date, hours: float) -> None:
    _upsert_add(
        db,
        EmployeeVacation,
        key={"employee_id": employee_id, "day_date": day_date},
        conflict_columns=["employee_id", "day_date"],
        hours=hours,
    )


def add_absence_hours(db: Session, *, employee_id: int, day_date: date, hours: float) -> None:
    _upsert_add(
        db,
        EmployeeAbsence,
        key={"employee_id": employee_id, "day_date": day_date},
        conflict_columns=["employee_id", "day_date"],
        hours=hours,
    )


def get_ledger_hours(db: Session, *, employee_id: int, day_date: date, kind: HourLedgerKind) -> float:
    value = db.scalar(
        select(HourLedgerEntry.hours).where(
            HourLedgerEntry.employee_id == employee_id,
            HourLedgerEntry.day_date == day_date,
            HourLedgerEntry.kind == kind,
        )
    )
    return float(value or 0)


def get_vacation_hours_for_year(db: Session, *, employee_id: int, year: int) -> float:
    value = db.scalar(
        select(func.coalesce(func.sum(EmployeeVacation.hours), 0)).where(
            EmployeeVacation.employee_id == employee_id,
            EmployeeVacation.day_date >= date(year, 1, 1),
            EmployeeVacation.day_date <= date(year, 12, 31),
        )
    )
    return float(value or 0)
