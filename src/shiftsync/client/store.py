"""Client-side Record Store.

The sync engine only talks to the store through ``RecordStore``. Records are
kept in their wire shape (camelCase dicts) so the engine can copy server
payloads verbatim without knowing any entity's fields.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from shiftsync.db_urls import ensure_sqlite_parent_dir, normalize_database_url_for_async

Record = dict[str, Any]

UNSYNCED_STATUSES = ("pending", "error")


class RecordStore(Protocol):
    async def get_all_pending_or_error(self, kind: str) -> list[Record]: ...

    async def get(self, kind: str, record_id: str) -> Record | None: ...

    async def upsert(self, kind: str, record: Record) -> None: ...

    async def get_setting(self, key: str) -> Any: ...

    async def put_setting(self, key: str, value: Any) -> None: ...

    async def enqueue_audit_log(self, entry: Record) -> None: ...

    async def list_unsent_audit_logs(self) -> list[Record]: ...

    async def mark_audit_logs_sent(self, ids: list[str]) -> None: ...


class MemoryRecordStore:
    """Dict-backed store for tests and short-lived tools."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Record]] = {}
        self._settings: dict[str, Any] = {}
        self._audit_logs: dict[str, Record] = {}
        self._sent_audit_ids: set[str] = set()

    async def get_all_pending_or_error(self, kind: str) -> list[Record]:
        return [
            copy.deepcopy(r)
            for r in self._records.get(kind, {}).values()
            if r.get("syncStatus") in UNSYNCED_STATUSES
        ]

    async def get(self, kind: str, record_id: str) -> Record | None:
        record = self._records.get(kind, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def upsert(self, kind: str, record: Record) -> None:
        self._records.setdefault(kind, {})[str(record["id"])] = copy.deepcopy(record)

    async def all(self, kind: str) -> list[Record]:
        return [copy.deepcopy(r) for r in self._records.get(kind, {}).values()]

    async def get_setting(self, key: str) -> Any:
        return self._settings.get(key)

    async def put_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value

    async def enqueue_audit_log(self, entry: Record) -> None:
        self._audit_logs.setdefault(str(entry["id"]), copy.deepcopy(entry))

    async def list_unsent_audit_logs(self) -> list[Record]:
        return [
            copy.deepcopy(e) for i, e in self._audit_logs.items() if i not in self._sent_audit_ids
        ]

    async def mark_audit_logs_sent(self, ids: list[str]) -> None:
        self._sent_audit_ids.update(i for i in ids if i in self._audit_logs)


_metadata = sa.MetaData()

_records = sa.Table(
    "client_records",
    _metadata,
    sa.Column("kind", sa.String(64), primary_key=True),
    sa.Column("id", sa.String(128), primary_key=True),
    sa.Column("sync_status", sa.String(16), nullable=False, index=True),
    sa.Column("payload", sa.JSON(), nullable=False),
)

_settings = sa.Table(
    "client_settings",
    _metadata,
    sa.Column("key", sa.String(128), primary_key=True),
    sa.Column("value", sa.JSON(), nullable=True),
)

_audit_logs = sa.Table(
    "client_audit_logs",
    _metadata,
    sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("id", sa.String(128), nullable=False, unique=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("sent", sa.Boolean(), nullable=False, default=False, index=True),
)


class SqliteRecordStore:
    """Durable store on a local SQLite file (one JSON payload per record)."""

    def __init__(self, database_url: str) -> None:
        ensure_sqlite_parent_dir(database_url)
        self._engine: AsyncEngine = create_async_engine(
            normalize_database_url_for_async(database_url)
        )

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    async def get_all_pending_or_error(self, kind: str) -> list[Record]:
        stmt = (
            sa.select(_records.c.payload)
            .where(_records.c.kind == kind)
            .where(_records.c.sync_status.in_(UNSYNCED_STATUSES))
            .order_by(_records.c.id)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [dict(r.payload) for r in rows]

    async def get(self, kind: str, record_id: str) -> Record | None:
        stmt = (
            sa.select(_records.c.payload)
            .where(_records.c.kind == kind)
            .where(_records.c.id == record_id)
        )
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return dict(row.payload) if row is not None else None

    async def upsert(self, kind: str, record: Record) -> None:
        record_id = str(record["id"])
        status = str(record.get("syncStatus") or "pending")
        async with self._engine.begin() as conn:
            updated = await conn.execute(
                sa.update(_records)
                .where(_records.c.kind == kind)
                .where(_records.c.id == record_id)
                .values(sync_status=status, payload=record)
            )
            if updated.rowcount == 0:
                await conn.execute(
                    sa.insert(_records).values(
                        kind=kind, id=record_id, sync_status=status, payload=record
                    )
                )

    async def get_setting(self, key: str) -> Any:
        async with self._engine.connect() as conn:
            row = (
                await conn.execute(sa.select(_settings.c.value).where(_settings.c.key == key))
            ).first()
        return row.value if row is not None else None

    async def put_setting(self, key: str, value: Any) -> None:
        async with self._engine.begin() as conn:
            updated = await conn.execute(
                sa.update(_settings).where(_settings.c.key == key).values(value=value)
            )
            if updated.rowcount == 0:
                await conn.execute(sa.insert(_settings).values(key=key, value=value))

    async def enqueue_audit_log(self, entry: Record) -> None:
        entry_id = str(entry["id"])
        async with self._engine.begin() as conn:
            exists = (
                await conn.execute(sa.select(_audit_logs.c.seq).where(_audit_logs.c.id == entry_id))
            ).first()
            if exists is None:
                await conn.execute(
                    sa.insert(_audit_logs).values(id=entry_id, payload=entry, sent=False)
                )

    async def list_unsent_audit_logs(self) -> list[Record]:
        stmt = (
            sa.select(_audit_logs.c.payload)
            .where(_audit_logs.c.sent.is_(False))
            .order_by(_audit_logs.c.seq)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [dict(r.payload) for r in rows]

    async def mark_audit_logs_sent(self, ids: list[str]) -> None:
        if not ids:
            return
        async with self._engine.begin() as conn:
            await conn.execute(
                sa.update(_audit_logs).where(_audit_logs.c.id.in_(list(ids))).values(sent=True)
            )
