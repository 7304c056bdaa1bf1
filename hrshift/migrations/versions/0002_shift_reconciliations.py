"""Add shift reconciliation markers

Revision ID: 0002_shift_reconciliations
Revises: 0001_initial
Create Date: 2026-10-08 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0002_shift_reconciliations"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

reconciliation_outcome = postgresql.ENUM(
    "ABSENCE",
    "VACATION",
    "FORGOT_LEAVE",
    "COMPLETE",
    "HOLIDAY",
    name="reconciliation_outcome",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    reconciliation_outcome.create(bind, checkfirst=True)

    op.create_table(
        "shift_reconciliations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("occurrence_date", sa.Date(), nullable=False),
        sa.Column("outcome", reconciliation_outcome, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "employee_id",
            "shift_id",
            "occurrence_date",
            name="uq_shift_reconciliations_employee_shift_occurrence",
        ),
    )
    op.create_index("ix_shift_reconciliations_employee_id", "shift_reconciliations", ["employee_id"])


def downgrade() -> None:
    op.drop_index("ix_shift_reconciliations_employee_id", table_name="shift_reconciliations")
    op.drop_table("shift_reconciliations")

    bind = op.get_bind()
    reconciliation_outcome.drop(bind, checkfirst=True)
