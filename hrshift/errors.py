from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class InvalidInputError(ApiError):
    def __init__(self, message: str = "Event timestamp is required."):
        super().__init__(422, "INVALID_INPUT", message)


class EmployeeNotEligibleError(ApiError):
    def __init__(self, message: str):
        super().__init__(422, "EMPLOYEE_NOT_ELIGIBLE", message)


class OutsideGeofenceError(ApiError):
    def __init__(self, message: str = "Employee is not within the branch's designated area."):
        super().__init__(403, "OUTSIDE_GEOFENCE", message)


class NoMatchingShiftError(ApiError):
    def __init__(self, message: str):
        super().__init__(422, "NO_MATCHING_SHIFT", message)


class DuplicateAttendanceError(ApiError):
    def __init__(self, message: str):
        super().__init__(409, "DUPLICATE_ATTENDANCE", message)


class DuplicateLeaveError(ApiError):
    def __init__(self, message: str):
        super().__init__(409, "DUPLICATE_LEAVE", message)


class AttendanceRequiredFirstError(ApiError):
    def __init__(self, message: str):
        super().__init__(409, "ATTENDANCE_REQUIRED_FIRST", message)


class StorageError(ApiError):
    def __init__(self, message: str = "Could not save the record. Please try again."):
        super().__init__(503, "STORAGE_ERROR", message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
