"""Entity-kind registry.

Maps the wire tag of every synchronized entity kind (the keys of ``changes``
and ``updates``) to a uniform capability set, so the reconciliation and
bootstrap code never branches on the tag.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from pydantic.alias_generators import to_camel
from sqlmodel.ext.asyncio.session import AsyncSession

from shiftsync.models import (
    AppSetting,
    AssignedShift,
    DailyTimeRecord,
    Employee,
    ShiftReport,
    SyncRow,
    TheoreticalShiftPattern,
    User,
)
from shiftsync.repositories import records_repo
from shiftsync.schemas_entities import (
    AppSettingRecord,
    AssignedShiftRecord,
    DailyTimeRecordRecord,
    EmployeeRecord,
    ShiftReportRecord,
    SyncableRecord,
    TheoreticalShiftPatternRecord,
    UserRecord,
)
from shiftsync.security import hash_password

# (session, parsed record, existing row or None) -> rejection message or None
EntityRule = Callable[[AsyncSession, SyncableRecord, SyncRow | None], Awaitable[str | None]]


@dataclass(frozen=True)
class EntityKind:
    tag: str
    model: type[SyncRow]
    schema: type[SyncableRecord]
    rules: tuple[EntityRule, ...] = field(default_factory=tuple)

    def parse(self, raw: dict[str, object]) -> SyncableRecord:
        return self.schema.model_validate(raw)

    async def check_rules(
        self, session: AsyncSession, record: SyncableRecord, existing: SyncRow | None
    ) -> str | None:
        for rule in self.rules:
            reason = await rule(session, record, existing)
            if reason:
                return reason
        return None

    def row_values(self, record: SyncableRecord) -> dict[str, object]:
        values = record.model_dump()
        if isinstance(record, UserRecord) and record.password:
            values["password_hash"] = hash_password(record.password)
        return values

    def new_row(self, record: SyncableRecord) -> SyncRow:
        return self.model(**self.row_values(record))

    def serialize(self, row: SyncRow) -> dict[str, object]:
        # Read columns directly: stored rows are echoed as-is, never re-validated.
        out: dict[str, object] = {}
        for name, info in self.schema.model_fields.items():
            if info.exclude:
                continue
            out[to_camel(name)] = getattr(row, name, info.default)
        return out


async def _new_user_needs_password(
    session: AsyncSession, record: SyncableRecord, existing: SyncRow | None
) -> str | None:
    _ = session
    if existing is None and isinstance(record, UserRecord) and not record.password:
        return "password is required for new users"
    return None


async def _username_is_unique(
    session: AsyncSession, record: SyncableRecord, existing: SyncRow | None
) -> str | None:
    _ = existing
    if not isinstance(record, UserRecord):
        return None
    other = await records_repo.get_user_by_username(session, record.username)
    if other is not None and other.id != record.id:
        return f"username already taken: {record.username}"
    return None


# Processing order matters: employees and patterns land before rows that reference them.
REGISTRY: dict[str, EntityKind] = {
    kind.tag: kind
    for kind in (
        EntityKind("employees", Employee, EmployeeRecord),
        EntityKind(
            "users", User, UserRecord, rules=(_new_user_needs_password, _username_is_unique)
        ),
        EntityKind(
            "theoretical_shift_patterns", TheoreticalShiftPattern, TheoreticalShiftPatternRecord
        ),
        EntityKind("assigned_shifts", AssignedShift, AssignedShiftRecord),
        EntityKind("daily_time_records", DailyTimeRecord, DailyTimeRecordRecord),
        EntityKind("shift_reports", ShiftReport, ShiftReportRecord),
        EntityKind("app_settings", AppSetting, AppSettingRecord),
    )
}

ENTITY_TAGS: tuple[str, ...] = tuple(REGISTRY)


def get_kind(tag: str) -> EntityKind | None:
    return REGISTRY.get(tag)


def ordered_tags(tags: list[str]) -> list[str]:
    """Known tags first (registry order), unknown tags after in request order."""

    order = {t: i for i, t in enumerate(ENTITY_TAGS)}
    return sorted(tags, key=lambda t: order.get(t, len(order)))
