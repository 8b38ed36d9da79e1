from __future__ import annotations

from collections.abc import Sequence
from typing import cast

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..models import AuditLog, SyncRow, User


def _col(column: object) -> ColumnElement[object]:
    return cast(ColumnElement[object], column)


async def get_record(session: AsyncSession, model: type[SyncRow], record_id: str) -> SyncRow | None:
    return await session.get(model, record_id)


async def list_changed_since(
    session: AsyncSession,
    model: type[SyncRow],
    *,
    since_ms: int,
    exclude_ids: Sequence[str] = (),
) -> list[SyncRow]:
    """Rows changed after `since_ms`, soft-deleted included.

    A row matches when its lastModified is after the watermark or its server write
    time is at or after it (a write in the very millisecond the watermark was taken
    is delivered again rather than lost).
    """

    stmt = select(model).where(
        or_(
            _col(model.last_modified) > since_ms,
            _col(model.server_modified_ms) >= since_ms,
        )
    )
    if exclude_ids:
        stmt = stmt.where(_col(model.id).not_in(list(exclude_ids)))
    stmt = stmt.order_by(_col(model.last_modified).asc(), _col(model.id).asc())
    return list((await session.exec(stmt)).all())


async def list_all(
    session: AsyncSession, model: type[SyncRow], *, include_deleted: bool
) -> list[SyncRow]:
    stmt = select(model)
    if not include_deleted:
        stmt = stmt.where(_col(model.is_deleted).is_(False))
    stmt = stmt.order_by(_col(model.id).asc())
    return list((await session.exec(stmt)).all())


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.exec(select(User).where(User.username == username))
    return result.first()


async def get_audit_log(session: AsyncSession, log_id: str) -> AuditLog | None:
    return await session.get(AuditLog, log_id)
