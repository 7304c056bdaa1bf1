from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from hrshift.audit import ADMIN_ACTOR, AuditAction, log_audit
from hrshift.db import get_db
from hrshift.models import HoursReportKind
from hrshift.schemas import (
    HoursReportRowRead,
    NotificationRead,
    OfficialHolidayRead,
    OvertimeRecalculateRequest,
    OvertimeRecalculateResponse,
    ShiftSweepRequest,
    ShiftSweepResponse,
)
from hrshift.services.attendance import local_now
from hrshift.services.holidays import list_official_holidays
from hrshift.services.notifications import delete_notification, list_notifications
from hrshift.services.overtime import record_overtime_for_day
from hrshift.services.reports import build_hours_xlsx_bytes, get_hours_report
from hrshift.services.shift_sweep import run_shift_sweep

router = APIRouter(tags=["admin"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _current_month_bounds() -> tuple[date, date]:
    today = local_now().date()
    start = today.replace(day=1)
    if start.month == 12:
        next_month = start.replace(year=start.year + 1, month=1)
    else:
        next_month = start.replace(month=start.month + 1)
    return start, date.fromordinal(next_month.toordinal() - 1)


@router.get("/api/admin/notifications", response_model=list[NotificationRead])
def get_notifications(
    employee_id: int | None = Query(default=None, ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[NotificationRead]:
    notifications = list_notifications(db, employee_id=employee_id, limit=limit, offset=offset)
    return [NotificationRead.model_validate(item) for item in notifications]


@router.delete("/api/admin/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_notification(
    notification_id: int,
    request: Request,
    db: Session = Depends(get_db),
) -> Response:
    if not delete_notification(db, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    log_audit(
        db,
        actor=ADMIN_ACTOR,
        action=AuditAction.NOTIFICATION_DELETED,
        success=True,
        entity_type="notification",
        entity_id=str(notification_id),
        request_id=getattr(request.state, "request_id", None),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/api/admin/jobs/shift-sweep", response_model=ShiftSweepResponse)
def trigger_shift_sweep(
    payload: ShiftSweepRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> ShiftSweepResponse:
    report = run_shift_sweep(payload.now or local_now(), db=db)
    log_audit(
        db,
        actor=ADMIN_ACTOR,
        action=AuditAction.SHIFT_SWEEP_TRIGGERED,
        success=report.failed == 0,
        entity_type="shift_sweep",
        entity_id=report.trigger_local.isoformat(),
        details=report.to_dict(),
        request_id=getattr(request.state, "request_id", None),
    )
    return ShiftSweepResponse(**report.to_dict())


@router.post("/api/admin/overtime/recalculate", response_model=OvertimeRecalculateResponse)
def recalculate_overtime(
    payload: OvertimeRecalculateRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> OvertimeRecalculateResponse:
    result = record_overtime_for_day(db, employee_id=payload.employee_id, day=payload.day)
    db.commit()
    request.state.employee_id = payload.employee_id
    log_audit(
        db,
        actor=ADMIN_ACTOR,
        action=AuditAction.OVERTIME_RECALCULATED,
        success=True,
        entity_type="employee",
        entity_id=str(payload.employee_id),
        details={"day": payload.day.isoformat(), "added_hours": round(result.added_hours, 4)},
        request_id=getattr(request.state, "request_id", None),
    )
    return OvertimeRecalculateResponse(
        employee_id=result.employee_id,
        day_date=result.day_date,
        worked_hours=round(result.worked_hours, 4),
        threshold_hours=result.threshold_hours,
        overtime_hours=round(result.overtime_hours, 4),
        added_hours=round(result.added_hours, 4),
    )


@router.get("/api/admin/reports/hours", response_model=list[HoursReportRowRead])
def get_hours(
    kind: HoursReportKind | None = Query(default=None),
    employee_id: int | None = Query(default=None, ge=1),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[HoursReportRowRead]:
    default_start, default_end = _current_month_bounds()
    rows = get_hours_report(
        db,
        start_date=start_date or default_start,
        end_date=end_date or default_end,
        kind=kind,
        employee_id=employee_id,
    )
    return [HoursReportRowRead.model_validate(item) for item in rows]


@router.get("/api/admin/exports/hours.xlsx")
def export_hours_xlsx(
    request: Request,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> Response:
    default_start, default_end = _current_month_bounds()
    start_date = start_date or default_start
    end_date = end_date or default_end
    payload = build_hours_xlsx_bytes(db, start_date=start_date, end_date=end_date)

    log_audit(
        db,
        actor=ADMIN_ACTOR,
        action=AuditAction.HOURS_EXPORT_XLSX,
        success=True,
        entity_type="export",
        entity_id="hours",
        details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        request_id=getattr(request.state, "request_id", None),
    )
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="hours-{start_date.isoformat()}-{end_date.isoformat()}.xlsx"',
        },
    )


@router.get("/api/admin/holidays", response_model=list[OfficialHolidayRead])
def get_holidays(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[OfficialHolidayRead]:
    today = local_now().date()
    start_date = start_date or today.replace(month=1, day=1)
    end_date = end_date or today.replace(month=12, day=31)
    if start_date > end_date:
        raise HTTPException(status_code=422, detail="start_date must be on or before end_date")
    holidays = list_official_holidays(db, start_date=start_date, end_date=end_date)
    return [OfficialHolidayRead.model_validate(item) for item in holidays]
