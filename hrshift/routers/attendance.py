from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from hrshift.audit import AuditAction, employee_actor, log_audit
from hrshift.db import get_db
from hrshift.schemas import AttendanceActionResponse, AttendanceEventCreate, AttendanceEventRead
from hrshift.services.attendance import RecordedEvent, list_employee_events, record_attendance, record_leave

router = APIRouter(tags=["attendance"])


def _action_response(recorded: RecordedEvent) -> AttendanceActionResponse:
    overtime = recorded.overtime
    return AttendanceActionResponse(
        event=AttendanceEventRead.model_validate(recorded.event),
        shift_id=recorded.occurrence.shift_id,
        occurrence_date=recorded.occurrence.occurrence_date,
        late_hours=round(recorded.late_hours, 4),
        overtime_hours=round(overtime.overtime_hours, 4) if overtime is not None else None,
        overtime_added_hours=round(overtime.added_hours, 4) if overtime is not None else None,
    )


def _audit_recorded(db: Session, request: Request, recorded: RecordedEvent, action: AuditAction) -> None:
    event = recorded.event
    request.state.employee_id = event.employee_id
    request.state.event_id = event.id
    log_audit(
        db,
        actor=employee_actor(event.employee_id),
        action=action,
        success=True,
        entity_type="attendance_event",
        entity_id=str(event.id),
        details={
            "event_type": event.type.value,
            "shift_id": recorded.occurrence.shift_id,
            "occurrence_date": recorded.occurrence.occurrence_date.isoformat(),
            "late_hours": round(recorded.late_hours, 4),
        },
        request_id=getattr(request.state, "request_id", None),
    )


@router.post(
    "/api/attendance",
    response_model=AttendanceActionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_attendance(
    payload: AttendanceEventCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = payload.employee_id
    recorded = record_attendance(
        db,
        employee_id=payload.employee_id,
        event_ts=payload.ts,
        lat=payload.lat,
        lon=payload.lon,
    )
    _audit_recorded(db, request, recorded, AuditAction.ATTENDANCE_RECORDED)
    return _action_response(recorded)


@router.post(
    "/api/leave",
    response_model=AttendanceActionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_leave(
    payload: AttendanceEventCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> AttendanceActionResponse:
    request.state.actor = "employee"
    request.state.employee_id = payload.employee_id
    recorded = record_leave(
        db,
        employee_id=payload.employee_id,
        event_ts=payload.ts,
        lat=payload.lat,
        lon=payload.lon,
    )
    _audit_recorded(db, request, recorded, AuditAction.LEAVE_RECORDED)
    return _action_response(recorded)


@router.get("/api/employees/{employee_id}/events", response_model=list[AttendanceEventRead])
def get_employee_events(
    employee_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[AttendanceEventRead]:
    events = list_employee_events(db, employee_id=employee_id, start_date=start_date, end_date=end_date)
    return [AttendanceEventRead.model_validate(item) for item in events]
