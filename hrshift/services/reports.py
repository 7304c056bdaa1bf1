from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from io import BytesIO

from fastapi import HTTPException, status
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hrshift.models import (
    EmployeeAbsence,
    EmployeeVacation,
    Employee,
    HourLedgerEntry,
    HourLedgerKind,
    HoursReportKind,
)

SUMMARY_HEADERS = [
    "Employee ID",
    "Employee",
    "Late Hours",
    "Overtime Hours",
    "Vacation Hours",
    "Absence Hours",
]
DAILY_HEADERS = ["Date", "Employee ID", "Employee", "Kind", "Hours"]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
HEADER_FONT = Font(bold=True, color="FFFFFF")
TITLE_FONT = Font(bold=True, color="0B4F73", size=14)

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


# Vacation and absence hours live in their own tables, not the hour ledger.
BOOKED_HOURS_MODELS = {
    HoursReportKind.VACATION: EmployeeVacation,
    HoursReportKind.ABSENCE: EmployeeAbsence,
}
KIND_ORDER = {kind: position for position, kind in enumerate(HoursReportKind)}


@dataclass(frozen=True, slots=True)
class HoursReportRow:
    employee_id: int
    employee_name: str
    kind: HoursReportKind
    total_hours: float
    days: int


@dataclass(frozen=True, slots=True)
class DailyHoursRow:
    day_date: date
    employee_id: int
    employee_name: str
    kind: str
    hours: float


def _validate_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start_date must be on or before end_date",
        )


def _ledger_totals(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    kinds: list[HourLedgerKind],
    employee_id: int | None,
) -> list[HoursReportRow]:
    stmt = (
        select(
            HourLedgerEntry.employee_id,
            Employee.full_name,
            HourLedgerEntry.kind,
            func.sum(HourLedgerEntry.hours),
            func.count(HourLedgerEntry.id),
        )
        .join(Employee, Employee.id == HourLedgerEntry.employee_id)
        .where(
            HourLedgerEntry.day_date >= start_date,
            HourLedgerEntry.day_date <= end_date,
            HourLedgerEntry.kind.in_(kinds),
        )
        .group_by(HourLedgerEntry.employee_id, Employee.full_name, HourLedgerEntry.kind)
    )
    if employee_id is not None:
        stmt = stmt.where(HourLedgerEntry.employee_id == employee_id)
    return [
        HoursReportRow(
            employee_id=row_employee_id,
            employee_name=full_name,
            kind=HoursReportKind(row_kind.value),
            total_hours=round(float(total or 0), 2),
            days=int(days or 0),
        )
        for row_employee_id, full_name, row_kind, total, days in db.execute(stmt).all()
    ]


def _booked_totals(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    kind: HoursReportKind,
    employee_id: int | None,
) -> list[HoursReportRow]:
    model = BOOKED_HOURS_MODELS[kind]
    stmt = (
        select(model.employee_id, Employee.full_name, func.sum(model.hours), func.count(model.id))
        .join(Employee, Employee.id == model.employee_id)
        .where(model.day_date >= start_date, model.day_date <= end_date)
        .group_by(model.employee_id, Employee.full_name)
    )
    if employee_id is not None:
        stmt = stmt.where(model.employee_id == employee_id)
    return [
        HoursReportRow(
            employee_id=row_employee_id,
            employee_name=full_name,
            kind=kind,
            total_hours=round(float(total or 0), 2),
            days=int(days or 0),
        )
        for row_employee_id, full_name, total, days in db.execute(stmt).all()
    ]


def get_hours_report(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    kind: HoursReportKind | None = None,
    employee_id: int | None = None,
) -> list[HoursReportRow]:
    """Late, overtime, vacation and absence totals per employee over an inclusive date range."""
    _validate_range(start_date, end_date)
    kinds = [kind] if kind is not None else list(HoursReportKind)

    ledger_kinds = [HourLedgerKind(item.value) for item in kinds if item not in BOOKED_HOURS_MODELS]
    rows: list[HoursReportRow] = []
    if ledger_kinds:
        rows.extend(
            _ledger_totals(db, start_date=start_date, end_date=end_date, kinds=ledger_kinds, employee_id=employee_id)
        )
    for item in kinds:
        if item in BOOKED_HOURS_MODELS:
            rows.extend(_booked_totals(db, start_date=start_date, end_date=end_date, kind=item, employee_id=employee_id))

    rows.sort(key=lambda row: (row.employee_id, KIND_ORDER[row.kind]))
    return rows


def _fetch_daily_rows(db: Session, *, start_date: date, end_date: date) -> list[DailyHoursRow]:
    rows: list[DailyHoursRow] = []

    ledger_rows = db.execute(
        select(HourLedgerEntry.day_date, HourLedgerEntry.employee_id, Employee.full_name, HourLedgerEntry.kind, HourLedgerEntry.hours)
        .join(Employee, Employee.id == HourLedgerEntry.employee_id)
        .where(HourLedgerEntry.day_date >= start_date, HourLedgerEntry.day_date <= end_date)
    ).all()
    for day_date, row_employee_id, full_name, kind, hours in ledger_rows:
        rows.append(DailyHoursRow(day_date, row_employee_id, full_name, kind.value, float(hours or 0)))

    for booked_kind, model in BOOKED_HOURS_MODELS.items():
        booked_rows = db.execute(
            select(model.day_date, model.employee_id, Employee.full_name, model.hours)
            .join(Employee, Employee.id == model.employee_id)
            .where(model.day_date >= start_date, model.day_date <= end_date)
        ).all()
        for day_date, row_employee_id, full_name, hours in booked_rows:
            rows.append(DailyHoursRow(day_date, row_employee_id, full_name, booked_kind.value, float(hours or 0)))

    rows.sort(key=lambda item: (item.day_date, item.employee_id, item.kind))
    return rows


def _style_header(ws: Worksheet, row: int) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _style_body(ws: Worksheet, *, start_row: int) -> None:
    for row_idx in range(start_row, ws.max_row + 1):
        for cell in ws[row_idx]:
            cell.border = THIN_BORDER
            if (row_idx - start_row) % 2 == 1:
                cell.fill = ZEBRA_FILL


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _write_summary_sheet(ws: Worksheet, daily_rows: list[DailyHoursRow], *, start_date: date, end_date: date) -> None:
    ws.title = "Summary"
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(SUMMARY_HEADERS))
    title = ws.cell(row=1, column=1, value=f"Hours {start_date.isoformat()} - {end_date.isoformat()}")
    title.font = TITLE_FONT

    totals: dict[int, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    names: dict[int, str] = {}
    for row in daily_rows:
        totals[row.employee_id][row.kind] += row.hours
        names[row.employee_id] = row.employee_name

    ws.append(SUMMARY_HEADERS)
    _style_header(ws, 2)
    for employee_id in sorted(totals):
        by_kind = totals[employee_id]
        ws.append(
            [
                employee_id,
                names[employee_id],
                round(by_kind["LATE"], 2),
                round(by_kind["OVERTIME"], 2),
                round(by_kind["VACATION"], 2),
                round(by_kind["ABSENCE"], 2),
            ]
        )
    _style_body(ws, start_row=3)
    ws.freeze_panes = "A3"
    _auto_width(ws)


def _write_daily_sheet(ws: Worksheet, daily_rows: list[DailyHoursRow]) -> None:
    ws.append(DAILY_HEADERS)
    _style_header(ws, 1)
    for row in daily_rows:
        ws.append([row.day_date, row.employee_id, row.employee_name, row.kind, round(row.hours, 2)])
    for cell in ws["A"][1:]:
        cell.number_format = "yyyy-mm-dd"
    _style_body(ws, start_row=2)
    ws.freeze_panes = "A2"
    _auto_width(ws)


def build_hours_xlsx_bytes(db: Session, *, start_date: date, end_date: date) -> bytes:
    _validate_range(start_date, end_date)
    daily_rows = _fetch_daily_rows(db, start_date=start_date, end_date=end_date)

    wb = Workbook()
    _write_summary_sheet(wb.active, daily_rows, start_date=start_date, end_date=end_date)
    _write_daily_sheet(wb.create_sheet("Daily"), daily_rows)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
