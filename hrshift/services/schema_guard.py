from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

EXPECTED_ALEMBIC_HEAD = "0002_shift_reconciliations"


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    alembic_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "alembic_version": self.alembic_version,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "branches": {"id", "lat", "lon", "radius_m"},
    "employees": {"id", "branch_id", "is_active"},
    "shifts": {"id", "start_time_local", "end_time_local"},
    "employee_shifts": {"employee_id", "shift_id"},
    "attendance_events": {"id", "employee_id", "type", "ts_local", "shift_id", "occurrence_date"},
    "hour_ledger_entries": {"employee_id", "day_date", "kind", "hours"},
    "employee_vacations": {"employee_id", "day_date", "hours"},
    "employee_absences": {"employee_id", "day_date", "hours"},
    "notifications": {"id", "employee_id", "title", "message"},
    "official_holidays": {"day_date"},
    "general_settings": {"daily_working_hours", "vacations_per_year"},
    "shift_reconciliations": {"employee_id", "shift_id", "occurrence_date", "outcome"},
    "alembic_version": {"version_num"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "attendance_event_type": {"ATTENDANCE", "LEAVE"},
    "hour_ledger_kind": {"LATE", "OVERTIME"},
}

# Ledger upserts rely on these to resolve ON CONFLICT targets.
REQUIRED_UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    "hour_ledger_entries": ("employee_id", "day_date", "kind"),
    "employee_vacations": ("employee_id", "day_date"),
    "employee_absences": ("employee_id", "day_date"),
    "attendance_events": ("employee_id", "shift_id", "occurrence_date", "type"),
}


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except Exception as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, key_columns in REQUIRED_UNIQUE_KEYS.items():
        try:
            unique_keys = {tuple(item.get("column_names") or ()) for item in inspector.get_unique_constraints(table_name)}
        except Exception as exc:
            warnings.append(f"UNIQUE_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue
        if key_columns not in unique_keys:
            issues.append(f"MISSING_UNIQUE_KEY:{table_name}:{','.join(key_columns)}")

    get_enums = getattr(inspector, "get_enums", None)
    enums: list[dict[str, Any]] = []
    if get_enums is None:
        warnings.append(f"ENUM_INSPECTION_UNSUPPORTED:{engine.dialect.name}")
    else:
        try:
            enums = get_enums() or []
        except Exception as exc:
            warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")

    enum_values_by_name: dict[str, set[str]] = {}
    for enum_item in enums:
        name = str(enum_item.get("name") or "").strip()
        if not name:
            continue
        labels = enum_item.get("labels")
        if isinstance(labels, list):
            enum_values_by_name[name] = {str(label) for label in labels}

    if get_enums is not None:
        for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
            if enum_name not in enum_values_by_name:
                warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
                continue
            missing_values = sorted(item for item in required_values if item not in enum_values_by_name[enum_name])
            if missing_values:
                issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    version: str | None = None
    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
            elif version != EXPECTED_ALEMBIC_HEAD:
                warnings.append(f"ALEMBIC_VERSION_MISMATCH:{version}:{EXPECTED_ALEMBIC_HEAD}")
    except Exception as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
        alembic_version=version or None,
    )
