from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from hrshift.models import AttendanceType, HoursReportKind


class AttendanceEventCreate(BaseModel):
    employee_id: int = Field(gt=0)
    ts: datetime | None = None
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class AttendanceEventRead(BaseModel):
    id: int
    employee_id: int
    type: AttendanceType
    ts_local: datetime
    lat: float
    lon: float
    shift_id: int | None
    occurrence_date: date | None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AttendanceActionResponse(BaseModel):
    event: AttendanceEventRead
    shift_id: int
    occurrence_date: date
    late_hours: float = 0.0
    overtime_hours: float | None = None
    overtime_added_hours: float | None = None


class NotificationRead(BaseModel):
    id: int
    employee_id: int
    shift_id: int | None
    name: str
    title: str
    message: str
    start_time: str
    end_time: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ShiftSweepRequest(BaseModel):
    now: datetime | None = None


class ShiftSweepResponse(BaseModel):
    trigger_local: datetime
    candidates: int
    absences: int
    vacations: int
    notifications: int
    complete: int
    skipped_holiday: int
    skipped_no_previous: int
    skipped_inactive: int
    already_reconciled: int
    failed: int
    failed_employee_ids: list[int] = Field(default_factory=list)


class OvertimeRecalculateRequest(BaseModel):
    employee_id: int = Field(gt=0)
    day: date


class OvertimeRecalculateResponse(BaseModel):
    employee_id: int
    day_date: date
    worked_hours: float
    threshold_hours: float
    overtime_hours: float
    added_hours: float


class HoursReportRowRead(BaseModel):
    employee_id: int
    employee_name: str
    kind: HoursReportKind
    total_hours: float
    days: int

    model_config = ConfigDict(from_attributes=True)


class OfficialHolidayRead(BaseModel):
    id: int
    name: str
    day_date: date

    model_config = ConfigDict(from_attributes=True)
