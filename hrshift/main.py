import asyncio
from contextlib import suppress
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hrshift.audit import SWEEP_WORKER_ACTOR, AuditAction, log_audit
from hrshift.db import SessionLocal, engine
from hrshift.errors import ApiError, error_response
from hrshift.logging_utils import setup_json_logging
from hrshift.routers import admin, attendance
from hrshift.services.attendance import local_now
from hrshift.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from hrshift.services.shift_sweep import SweepReport, pending_sweep_minutes, run_shift_sweep
from hrshift.settings import get_cors_origins, get_settings

setup_json_logging()
logger = logging.getLogger("hrshift.request")
sweep_worker_logger = logging.getLogger("hrshift.sweep_worker")
settings = get_settings()

MIN_SWEEP_INTERVAL_SECONDS = 5
REQUEST_ID_HEADER = "X-Request-Id"
HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "INVALID_INPUT",
}

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


def _request_log_fields(request: Request) -> dict[str, Any]:
    state = request.state
    return {
        "request_id": getattr(state, "request_id", None),
        "method": request.method,
        "path": request.url.path,
        "actor": getattr(state, "actor", "system"),
        "employee_id": getattr(state, "employee_id", None),
        "event_id": getattr(state, "event_id", None),
    }


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response
    finally:
        level = logging.WARNING if status_code >= 500 else logging.INFO
        logger.log(
            level,
            "request_complete",
            extra={
                **_request_log_fields(request),
                "status_code": status_code,
                "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail or "Request failed."),
    )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request."


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=_describe_validation_errors(exc),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", extra=_request_log_fields(request))
    return error_response(request, status_code=500, code="INTERNAL_ERROR", message="Unexpected server error.")


app.include_router(attendance.router)
app.include_router(admin.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


def _sweep_interval_seconds() -> int:
    return max(MIN_SWEEP_INTERVAL_SECONDS, int(settings.sweep_worker_interval_seconds))


def _run_scheduled_sweep(trigger: datetime) -> SweepReport:
    with SessionLocal() as db:
        report = run_shift_sweep(trigger, db=db)
        if report.candidates:
            log_audit(
                db,
                actor=SWEEP_WORKER_ACTOR,
                action=AuditAction.SHIFT_SWEEP_SCHEDULED,
                success=report.failed == 0,
                entity_type="shift_sweep",
                entity_id=report.trigger_local.isoformat(),
                details=report.to_dict(),
            )
    return report


async def _sweep_worker_loop(stop_event: asyncio.Event) -> None:
    interval_seconds = _sweep_interval_seconds()
    last_swept: datetime | None = None
    while not stop_event.is_set():
        current = local_now()
        for trigger in pending_sweep_minutes(last_swept, current):
            try:
                report = await asyncio.to_thread(_run_scheduled_sweep, trigger)
            except Exception:
                sweep_worker_logger.exception(
                    "sweep_worker_tick_failed",
                    extra={"trigger_local": trigger.isoformat()},
                )
            else:
                if report.candidates:
                    sweep_worker_logger.info("sweep_worker_tick", extra=report.to_dict())
            last_swept = trigger

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        sweep_worker_logger.info(
            "schema_guard_ok",
            extra=result.to_dict(),
        )
        return

    sweep_worker_logger.error(
        "schema_guard_failed",
        extra=result.to_dict(),
    )
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def start_sweep_worker() -> None:
    if not settings.sweep_worker_enabled:
        return
    if getattr(app.state, "sweep_worker_task", None) is not None:
        return

    stop_event = asyncio.Event()
    task = asyncio.create_task(_sweep_worker_loop(stop_event))
    app.state.sweep_worker_stop_event = stop_event
    app.state.sweep_worker_task = task
    sweep_worker_logger.info(
        "sweep_worker_started",
        extra={"interval_seconds": _sweep_interval_seconds()},
    )


@app.on_event("shutdown")
async def stop_sweep_worker() -> None:
    stop_event: asyncio.Event | None = getattr(app.state, "sweep_worker_stop_event", None)
    task: asyncio.Task[None] | None = getattr(app.state, "sweep_worker_task", None)
    if stop_event is not None:
        stop_event.set()
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.sweep_worker_stop_event = None
    app.state.sweep_worker_task = None


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    task: asyncio.Task[None] | None = getattr(app.state, "sweep_worker_task", None)
    return {
        "status": "ok",
        "schema_guard": schema_guard_result.to_dict(),
        "sweep_worker": {
            "enabled": settings.sweep_worker_enabled,
            "running": task is not None and not task.done(),
            "interval_seconds": _sweep_interval_seconds(),
        },
    }
