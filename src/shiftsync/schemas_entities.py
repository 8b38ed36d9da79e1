"""Wire shapes of the synchronized entities.

Records travel as camelCase JSON (``lastModified``, ``syncStatus`` ...). Each
schema doubles as the server-side domain validation for its entity kind: a
record that fails to parse is reported back in ``errors`` and not persisted.
"""

from __future__ import annotations

import re
from datetime import date as date_cls
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

SyncStatus = Literal["synced", "pending", "error"]
UserRole = Literal["Usuario", "Supervisor", "Administrador", "Usuario Elevado"]
ShiftReportStatus = Literal["open", "closed"]

NO_RECORD = "SIN REGISTRO"

_CLOCK_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def _validate_iso_date(value: str | None, field_name: str) -> str | None:
    if value is None or value == "":
        return None
    try:
        date_cls.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{field_name} must be YYYY-MM-DD") from None
    if len(value) != 10:
        raise ValueError(f"{field_name} must be YYYY-MM-DD")
    return value


def _require_text(value: str, field_name: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be blank")
    return value


class SyncableRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, max_length=128)
    last_modified: int = Field(ge=0)
    sync_status: SyncStatus = "pending"
    is_deleted: bool = False
    sync_error: str | None = Field(default=None, max_length=1000)


class EmployeeRecord(SyncableRecord):
    name: str = Field(max_length=200)
    rut: str | None = Field(default=None, max_length=32)
    position: str | None = Field(default=None, max_length=200)
    area: str | None = Field(default=None, max_length=200)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        return _require_text(v, "name")


class UserRecord(SyncableRecord):
    username: str = Field(min_length=1, max_length=64)
    role: UserRole = "Usuario"
    employee_id: str | None = Field(default=None, max_length=128)
    # Write-only: hashed on the server, never echoed.
    password: str | None = Field(default=None, max_length=72, exclude=True)

    @field_validator("username")
    @classmethod
    def _username_charset(cls, v: str) -> str:
        if not _USERNAME_RE.match(v):
            raise ValueError("username may only contain letters, digits, '.', '_' and '-'")
        return v


class DailyTimeRecordRecord(SyncableRecord):
    employee_id: str = Field(min_length=1, max_length=128)
    employee_name: str | None = Field(default=None, max_length=200)
    employee_position: str | None = Field(default=None, max_length=200)
    employee_area: str | None = Field(default=None, max_length=200)
    date: str
    entrada: str | None = None
    salida: str | None = None
    entrada_timestamp: int | None = None
    salida_timestamp: int | None = None

    @field_validator("date")
    @classmethod
    def _date_format(cls, v: str) -> str:
        out = _validate_iso_date(v, "date")
        if out is None:
            raise ValueError("date is required")
        return out

    @field_validator("entrada", "salida")
    @classmethod
    def _clock_format(cls, v: str | None) -> str | None:
        if v is None or v == "" or v == NO_RECORD:
            return v or None
        if not _CLOCK_RE.match(v):
            raise ValueError(f"clock values must be YYYY-MM-DDTHH:mm or '{NO_RECORD}'")
        return v

    @model_validator(mode="after")
    def _exit_after_entry(self) -> "DailyTimeRecordRecord":
        if (
            self.entrada_timestamp is not None
            and self.salida_timestamp is not None
            and self.salida_timestamp < self.entrada_timestamp
        ):
            raise ValueError("salida must not be earlier than entrada")
        return self


class TheoreticalShiftPatternRecord(SyncableRecord):
    name: str = Field(max_length=200)
    cycle_length_days: int = Field(ge=1, le=366)
    start_day_of_week: int | None = Field(default=None, ge=1, le=7)
    color: str | None = Field(default=None, max_length=32)
    max_hours_pattern: float | None = Field(default=None, ge=0)
    daily_schedules: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        return _require_text(v, "name")

    @model_validator(mode="after")
    def _schedules_fit_cycle(self) -> "TheoreticalShiftPatternRecord":
        if len(self.daily_schedules) > self.cycle_length_days:
            raise ValueError("dailySchedules has more entries than cycleLengthDays")
        for day in self.daily_schedules:
            idx = day.get("dayIndex")
            if idx is None:
                continue
            if not isinstance(idx, int) or not 0 <= idx < self.cycle_length_days:
                raise ValueError("dailySchedules dayIndex out of range")
        return self


class AssignedShiftRecord(SyncableRecord):
    employee_id: str = Field(min_length=1, max_length=128)
    employee_name: str | None = Field(default=None, max_length=200)
    shift_pattern_id: str = Field(min_length=1, max_length=128)
    shift_pattern_name: str | None = Field(default=None, max_length=200)
    start_date: str
    end_date: str | None = None

    @field_validator("start_date")
    @classmethod
    def _start_format(cls, v: str) -> str:
        out = _validate_iso_date(v, "startDate")
        if out is None:
            raise ValueError("startDate is required")
        return out

    @field_validator("end_date")
    @classmethod
    def _end_format(cls, v: str | None) -> str | None:
        return _validate_iso_date(v, "endDate")

    @model_validator(mode="after")
    def _range_order(self) -> "AssignedShiftRecord":
        # ISO dates compare correctly as strings.
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("endDate must not be earlier than startDate")
        return self


class ShiftReportRecord(SyncableRecord):
    folio: str = Field(max_length=64)
    date: str
    shift_name: str = Field(max_length=64)
    responsible_user: str = Field(max_length=64)
    start_time: str | None = Field(default=None, max_length=40)
    end_time: str | None = Field(default=None, max_length=40)
    status: ShiftReportStatus = "open"
    log_entries: list[dict[str, Any]] = Field(default_factory=list)
    supplier_entries: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("folio", "shift_name", "responsible_user")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        return _require_text(v, "field")

    @field_validator("date")
    @classmethod
    def _date_format(cls, v: str) -> str:
        out = _validate_iso_date(v, "date")
        if out is None:
            raise ValueError("date is required")
        return out


class AppSettingRecord(SyncableRecord):
    value: Any = None


def describe_validation_error(exc: ValidationError) -> str:
    """Compact one-line summary suitable for a record's ``syncError``."""

    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()) if x != "__root__")
        msg = str(err.get("msg") or "invalid")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid record"
