"""Initial shift attendance schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

attendance_event_type = postgresql.ENUM(
    "ATTENDANCE",
    "LEAVE",
    name="attendance_event_type",
    create_type=False,
)
hour_ledger_kind = postgresql.ENUM(
    "LATE",
    "OVERTIME",
    name="hour_ledger_kind",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "EMPLOYEE",
    "ADMIN",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    attendance_event_type.create(bind, checkfirst=True)
    hour_ledger_kind.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("radius_m", sa.Float(), nullable=False, server_default=sa.text("100")),
        sa.UniqueConstraint("name", name="uq_branches_name"),
    )

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_employees_branch_id", "employees", ["branch_id"])

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_time_local", sa.Time(timezone=False), nullable=False),
        sa.Column("end_time_local", sa.Time(timezone=False), nullable=False),
    )

    op.create_table(
        "employee_shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "shift_id", name="uq_employee_shifts_employee_shift"),
    )
    op.create_index("ix_employee_shifts_employee_id", "employee_shifts", ["employee_id"])
    op.create_index("ix_employee_shifts_shift_id", "employee_shifts", ["shift_id"])

    op.create_table(
        "attendance_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("type", attendance_event_type, nullable=False),
        sa.Column("ts_local", sa.DateTime(timezone=False), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("occurrence_date", sa.Date(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
        sa.UniqueConstraint(
            "employee_id",
            "shift_id",
            "occurrence_date",
            "type",
            name="uq_attendance_events_occurrence_type",
        ),
    )
    op.create_index("ix_attendance_events_employee_id", "attendance_events", ["employee_id"])
    op.create_index("ix_attendance_events_ts_local", "attendance_events", ["ts_local"])

    op.create_table(
        "hour_ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("day_date", sa.Date(), nullable=False),
        sa.Column("kind", hour_ledger_kind, nullable=False),
        sa.Column("hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "day_date", "kind", name="uq_hour_ledger_entries_employee_day_kind"),
    )
    op.create_index("ix_hour_ledger_entries_employee_id", "hour_ledger_entries", ["employee_id"])
    op.create_index("ix_hour_ledger_entries_day_date", "hour_ledger_entries", ["day_date"])

    for table_name in ("employee_vacations", "employee_absences"):
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("employee_id", sa.Integer(), nullable=False),
            sa.Column("day_date", sa.Date(), nullable=False),
            sa.Column("hours", sa.Float(), nullable=False, server_default=sa.text("0")),
            sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("employee_id", "day_date", name=f"uq_{table_name}_employee_day"),
        )
        op.create_index(f"ix_{table_name}_employee_id", table_name, ["employee_id"])
        op.create_index(f"ix_{table_name}_day_date", table_name, ["day_date"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.String(length=2000), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_notifications_employee_id", "notifications", ["employee_id"])

    op.create_table(
        "official_holidays",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("day_date", sa.Date(), nullable=False),
    )
    op.create_index("ix_official_holidays_day_date", "official_holidays", ["day_date"], unique=True)

    op.create_table(
        "general_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("daily_working_hours", sa.Float(), nullable=True),
        sa.Column("vacations_per_year", sa.Integer(), nullable=True),
        sa.Column("overtime_hour_price", sa.Float(), nullable=True),
        sa.Column("late_hour_price", sa.Float(), nullable=True),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("general_settings")
    op.drop_index("ix_official_holidays_day_date", table_name="official_holidays")
    op.drop_table("official_holidays")
    op.drop_index("ix_notifications_employee_id", table_name="notifications")
    op.drop_table("notifications")
    for table_name in ("employee_absences", "employee_vacations"):
        op.drop_index(f"ix_{table_name}_day_date", table_name=table_name)
        op.drop_index(f"ix_{table_name}_employee_id", table_name=table_name)
        op.drop_table(table_name)
    op.drop_index("ix_hour_ledger_entries_day_date", table_name="hour_ledger_entries")
    op.drop_index("ix_hour_ledger_entries_employee_id", table_name="hour_ledger_entries")
    op.drop_table("hour_ledger_entries")
    op.drop_index("ix_attendance_events_ts_local", table_name="attendance_events")
    op.drop_index("ix_attendance_events_employee_id", table_name="attendance_events")
    op.drop_table("attendance_events")
    op.drop_index("ix_employee_shifts_shift_id", table_name="employee_shifts")
    op.drop_index("ix_employee_shifts_employee_id", table_name="employee_shifts")
    op.drop_table("employee_shifts")
    op.drop_table("shifts")
    op.drop_index("ix_employees_branch_id", table_name="employees")
    op.drop_table("employees")
    op.drop_table("branches")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    hour_ledger_kind.drop(bind, checkfirst=True)
    attendance_event_type.drop(bind, checkfirst=True)
