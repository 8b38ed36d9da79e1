"""init sync tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


_SYNC_TABLES = (
    "employees",
    "users",
    "theoretical_shift_patterns",
    "assigned_shifts",
    "daily_time_records",
    "shift_reports",
    "app_settings",
)


def _sync_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("last_modified", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sync_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("sync_error", sa.String(length=1000), nullable=True),
        sa.Column(
            "server_modified_ms", sa.BigInteger(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _create_sync_indexes(table: str) -> None:
    for col in ("last_modified", "is_deleted", "server_modified_ms", "created_at", "updated_at"):
        op.create_index(f"ix_{table}_{col}", table, [col], unique=False)


def upgrade() -> None:
    op.create_table(
        "employees",
        *_sync_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("rut", sa.String(length=32), nullable=True),
        sa.Column("position", sa.String(length=200), nullable=True),
        sa.Column("area", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_employees_is_active", "employees", ["is_active"], unique=False)

    op.create_table(
        "users",
        *_sync_columns(),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="Usuario"),
        sa.Column("employee_id", sa.String(length=128), nullable=True),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=False)

    op.create_table(
        "theoretical_shift_patterns",
        *_sync_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("cycle_length_days", sa.Integer(), nullable=False, server_default=sa.text("7")),
        sa.Column("start_day_of_week", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(length=32), nullable=True),
        sa.Column("max_hours_pattern", sa.Float(), nullable=True),
        sa.Column("daily_schedules", sa.JSON(), nullable=True),
    )

    op.create_table(
        "assigned_shifts",
        *_sync_columns(),
        sa.Column("employee_id", sa.String(length=128), nullable=False),
        sa.Column("employee_name", sa.String(length=200), nullable=True),
        sa.Column("shift_pattern_id", sa.String(length=128), nullable=False),
        sa.Column("shift_pattern_name", sa.String(length=200), nullable=True),
        sa.Column("start_date", sa.String(length=10), nullable=False),
        sa.Column("end_date", sa.String(length=10), nullable=True),
    )
    op.create_index(
        "ix_assigned_shifts_employee_id", "assigned_shifts", ["employee_id"], unique=False
    )
    op.create_index(
        "ix_assigned_shifts_shift_pattern_id",
        "assigned_shifts",
        ["shift_pattern_id"],
        unique=False,
    )

    op.create_table(
        "daily_time_records",
        *_sync_columns(),
        sa.Column("employee_id", sa.String(length=128), nullable=False),
        sa.Column("employee_name", sa.String(length=200), nullable=True),
        sa.Column("employee_position", sa.String(length=200), nullable=True),
        sa.Column("employee_area", sa.String(length=200), nullable=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("entrada", sa.String(length=32), nullable=True),
        sa.Column("salida", sa.String(length=32), nullable=True),
        sa.Column("entrada_timestamp", sa.BigInteger(), nullable=True),
        sa.Column("salida_timestamp", sa.BigInteger(), nullable=True),
    )
    op.create_index(
        "ix_daily_time_records_employee_id", "daily_time_records", ["employee_id"], unique=False
    )
    op.create_index("ix_daily_time_records_date", "daily_time_records", ["date"], unique=False)

    op.create_table(
        "shift_reports",
        *_sync_columns(),
        sa.Column("folio", sa.String(length=64), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("shift_name", sa.String(length=64), nullable=False),
        sa.Column("responsible_user", sa.String(length=64), nullable=False),
        sa.Column("start_time", sa.String(length=40), nullable=True),
        sa.Column("end_time", sa.String(length=40), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("log_entries", sa.JSON(), nullable=True),
        sa.Column("supplier_entries", sa.JSON(), nullable=True),
    )
    op.create_index("ix_shift_reports_folio", "shift_reports", ["folio"], unique=False)
    op.create_index("ix_shift_reports_date", "shift_reports", ["date"], unique=False)

    op.create_table(
        "app_settings",
        *_sync_columns(),
        sa.Column("value", sa.JSON(), nullable=True),
    )

    for table in _SYNC_TABLES:
        _create_sync_indexes(table)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("actor_username", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=200), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_timestamp", "audit_logs", ["timestamp"], unique=False)
    op.create_index(
        "ix_audit_logs_actor_username", "audit_logs", ["actor_username"], unique=False
    )
    op.create_index("ix_audit_logs_received_at", "audit_logs", ["received_at"], unique=False)

    op.create_table(
        "rate_limit_counters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("scope", sa.String(length=64), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("window_start_ms", sa.BigInteger(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "scope",
            "key",
            "window_start_ms",
            name="uq_rate_limit_counters_scope_key_window",
        ),
    )
    op.create_index("ix_rate_limit_counters_scope", "rate_limit_counters", ["scope"], unique=False)
    op.create_index("ix_rate_limit_counters_key", "rate_limit_counters", ["key"], unique=False)
    op.create_index(
        "ix_rate_limit_counters_window_start_ms",
        "rate_limit_counters",
        ["window_start_ms"],
        unique=False,
    )
    for col in ("created_at", "updated_at"):
        op.create_index(
            f"ix_rate_limit_counters_{col}", "rate_limit_counters", [col], unique=False
        )


def downgrade() -> None:
    op.drop_table("rate_limit_counters")
    op.drop_table("audit_logs")
    for table in reversed(_SYNC_TABLES):
        op.drop_table(table)
