# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import BigInteger, Column, Text, UniqueConstraint
from sqlalchemy.types import JSON as SAJSON
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncRow(SQLModel):
    """Columns shared by every synchronized entity table.

    `last_modified` is the arbitration clock (epoch ms, written by whichever side
    mutated the record). `sync_status`/`sync_error` are client bookkeeping that is
    persisted for traceability only; arbitration never reads them.
    """

    id: str = Field(primary_key=True, min_length=1, max_length=128)
    last_modified: int = Field(default=0, sa_type=BigInteger, index=True)
    is_deleted: bool = Field(default=False, index=True)
    sync_status: str = Field(default="pending", max_length=16)
    sync_error: Optional[str] = Field(default=None, max_length=1000)

    # Server clock (epoch ms) of the last write that reached this row. Delta pull also
    # matches on it, so a record stamped by a lagging device clock is still delivered.
    server_modified_ms: int = Field(default=0, sa_type=BigInteger, index=True)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, index=True)


class Employee(SyncRow, table=True):
    __tablename__ = "employees"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    name: str = Field(max_length=200)
    rut: Optional[str] = Field(default=None, max_length=32)
    position: Optional[str] = Field(default=None, max_length=200)
    area: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = Field(default=True, index=True)


class User(SyncRow, table=True):
    __tablename__ = "users"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]
    __table_args__ = (UniqueConstraint("username", name="uq_users_username"),)

    username: str = Field(index=True, min_length=1, max_length=64)
    # bcrypt hash; never serialized back to clients.
    password_hash: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    role: str = Field(default="Usuario", max_length=32)
    employee_id: Optional[str] = Field(default=None, max_length=128)


class DailyTimeRecord(SyncRow, table=True):
    __tablename__ = "daily_time_records"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    employee_id: str = Field(index=True, max_length=128)
    employee_name: Optional[str] = Field(default=None, max_length=200)
    employee_position: Optional[str] = Field(default=None, max_length=200)
    employee_area: Optional[str] = Field(default=None, max_length=200)
    date: str = Field(index=True, max_length=10)  # YYYY-MM-DD
    entrada: Optional[str] = Field(default=None, max_length=32)
    salida: Optional[str] = Field(default=None, max_length=32)
    entrada_timestamp: Optional[int] = Field(default=None, sa_type=BigInteger)
    salida_timestamp: Optional[int] = Field(default=None, sa_type=BigInteger)


class TheoreticalShiftPattern(SyncRow, table=True):
    __tablename__ = "theoretical_shift_patterns"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    name: str = Field(max_length=200)
    cycle_length_days: int = Field(default=7)
    start_day_of_week: Optional[int] = Field(default=None)
    color: Optional[str] = Field(default=None, max_length=32)
    max_hours_pattern: Optional[float] = Field(default=None)
    daily_schedules: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(SAJSON))


class AssignedShift(SyncRow, table=True):
    __tablename__ = "assigned_shifts"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    employee_id: str = Field(index=True, max_length=128)
    employee_name: Optional[str] = Field(default=None, max_length=200)
    shift_pattern_id: str = Field(index=True, max_length=128)
    shift_pattern_name: Optional[str] = Field(default=None, max_length=200)
    start_date: str = Field(max_length=10)
    end_date: Optional[str] = Field(default=None, max_length=10)


class ShiftReport(SyncRow, table=True):
    __tablename__ = "shift_reports"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    folio: str = Field(index=True, max_length=64)
    date: str = Field(index=True, max_length=10)
    shift_name: str = Field(max_length=64)
    responsible_user: str = Field(max_length=64)
    start_time: Optional[str] = Field(default=None, max_length=40)
    end_time: Optional[str] = Field(default=None, max_length=40)
    status: str = Field(default="open", max_length=16)
    log_entries: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(SAJSON))
    supplier_entries: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(SAJSON))


class AppSetting(SyncRow, table=True):
    __tablename__ = "app_settings"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    value: Any = Field(default=None, sa_column=Column(SAJSON, nullable=True))


class AuditLog(SQLModel, table=True):
    """Append-only; a resubmitted id is a no-op."""

    __tablename__ = "audit_logs"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: str = Field(primary_key=True, min_length=1, max_length=128)
    timestamp: int = Field(sa_type=BigInteger, index=True)
    actor_username: str = Field(index=True, max_length=64)
    action: str = Field(max_length=200)
    details: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(SAJSON, nullable=True))

    received_at: datetime = Field(default_factory=utc_now, index=True)


class RateLimitCounter(SQLModel, table=True):
    __tablename__ = "rate_limit_counters"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]
    __table_args__ = (
        UniqueConstraint(
            "scope",
            "key",
            "window_start_ms",
            name="uq_rate_limit_counters_scope_key_window",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    # Scope indicates which endpoint the limiter applies to.
    scope: str = Field(index=True, max_length=64)
    # Key is the subject we rate-limit on (e.g., ip:1.2.3.4).
    key: str = Field(index=True, max_length=128)
    window_start_ms: int = Field(sa_type=BigInteger, index=True)
    count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, index=True)
