from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from shiftsync.domain.arbitration import CONFLICT_MESSAGE, ServerRowSnapshot, plan_write
from shiftsync.domain.registry import EntityKind, get_kind, ordered_tags
from shiftsync.models import AuditLog, SyncRow, User, utc_now
from shiftsync.repositories import records_repo
from shiftsync.schemas_entities import describe_validation_error
from shiftsync.schemas_sync import AuditLogEntry, SyncIssue, SyncRequest, SyncResponse
from shiftsync.sync_utils import clamp_client_last_modified, now_ms

logger = logging.getLogger(__name__)


@dataclass
class _KindUpdates:
    """Records returned for one entity kind; each id appears at most once."""

    records: list[dict[str, Any]] = field(default_factory=list)
    positions: dict[str, int] = field(default_factory=dict)

    def put(self, record: dict[str, Any]) -> None:
        record_id = str(record["id"])
        pos = self.positions.get(record_id)
        if pos is None:
            self.positions[record_id] = len(self.records)
            self.records.append(record)
        else:
            self.records[pos] = record


@dataclass
class _RoundState:
    updates: dict[str, _KindUpdates] = field(default_factory=dict)
    conflicts: list[SyncIssue] = field(default_factory=list)
    errors: list[SyncIssue] = field(default_factory=list)

    def reject(self, tag: str, record_id: str, message: str) -> None:
        self.errors.append(SyncIssue(client_record_id=record_id, message=message, entity_kind=tag))


def _raw_id(raw: object) -> str:
    if not isinstance(raw, dict):
        return ""
    return str(raw.get("id") or "")


def _snapshot(row: SyncRow) -> ServerRowSnapshot:
    return ServerRowSnapshot(
        entity_id=row.id, last_modified=int(row.last_modified or 0), deleted=bool(row.is_deleted)
    )


async def _reconcile_record(
    session: AsyncSession,
    kind: EntityKind,
    raw: object,
    state: _RoundState,
) -> None:
    record_id = _raw_id(raw)
    if not isinstance(raw, dict):
        logger.info("sync record rejected kind=%s (not an object)", kind.tag)
        state.reject(kind.tag, record_id, "record must be a JSON object")
        return
    try:
        record = kind.parse(raw)
    except ValidationError as exc:
        reason = describe_validation_error(exc)
        logger.info("sync record rejected kind=%s id=%s reason=%s", kind.tag, record_id, reason)
        state.reject(kind.tag, record_id, reason)
        return

    incoming_ms = clamp_client_last_modified(record.last_modified)
    bucket = state.updates[kind.tag]

    # One short transaction per record: a failure here never touches the others.
    try:
        async with session.begin():
            existing = await records_repo.get_record(session, kind.model, record.id)
            plan = plan_write(
                entity_id=record.id,
                incoming_last_modified=incoming_ms,
                server_row=_snapshot(existing) if existing is not None else None,
            )
            if plan.decision == "server_wins" and existing is not None:
                state.conflicts.append(
                    SyncIssue(
                        client_record_id=record.id, message=CONFLICT_MESSAGE, entity_kind=kind.tag
                    )
                )
                bucket.put(kind.serialize(existing))
                return

            # Rules only apply to a write the client would win.
            reason = await kind.check_rules(session, record, existing)
            if reason:
                logger.info(
                    "sync record rejected kind=%s id=%s reason=%s", kind.tag, record.id, reason
                )
                state.reject(kind.tag, record.id, reason)
                return

            if existing is None:
                row = kind.new_row(record)
            else:
                row = existing
                for name, value in kind.row_values(record).items():
                    setattr(row, name, value)
                row.updated_at = utc_now()
            row.last_modified = plan.last_modified
            row.sync_error = None
            row.server_modified_ms = now_ms()
            session.add(row)
            await session.flush()
            bucket.put(kind.serialize(row))
    except ValueError as exc:
        # e.g. a password that bcrypt cannot hash
        state.reject(kind.tag, record.id, str(exc))
    except SQLAlchemyError as exc:
        logger.warning(
            "sync record write failed kind=%s id=%s", kind.tag, record.id, exc_info=True
        )
        state.reject(kind.tag, record.id, f"could not store record ({exc.__class__.__name__})")


async def _ingest_audit_logs(session: AsyncSession, raw_logs: list[Any]) -> list[str]:
    """Best-effort append; returns the ids the server now holds."""

    acked: list[str] = []
    for raw in raw_logs:
        try:
            entry = AuditLogEntry.model_validate(raw)
        except ValidationError:
            logger.info("audit log dropped (invalid) id=%s", _raw_id(raw))
            continue

        try:
            async with session.begin():
                if await records_repo.get_audit_log(session, entry.id) is None:
                    session.add(
                        AuditLog(
                            id=entry.id,
                            timestamp=entry.timestamp,
                            actor_username=entry.actor_username,
                            action=entry.action,
                            details=entry.details,
                        )
                    )
        except SQLAlchemyError:
            # Logs are telemetry: the client keeps the entry queued and retries.
            logger.warning("audit log insert failed id=%s", entry.id, exc_info=True)
            continue

        if entry.id not in acked:
            acked.append(entry.id)
    return acked


async def reconcile(*, session: AsyncSession, user: User, req: SyncRequest) -> SyncResponse:
    """Apply one client batch and answer with the post-merge state.

    Notes:
    - Each record and each audit entry is its own transaction (session.begin()).
    - Kinds are processed in registry order, records in submission order.
    - The returned watermark is taken after the writes and before the delta read.
    """

    if session.in_transaction():
        await session.commit()

    state = _RoundState()
    for tag in ordered_tags(list(req.changes)):
        records = req.changes[tag]
        kind = get_kind(tag)
        if kind is None:
            for raw in records:
                state.reject(tag, _raw_id(raw), f"unknown entity kind: {tag}")
            continue

        state.updates.setdefault(tag, _KindUpdates())
        for raw in records:
            await _reconcile_record(session, kind, raw, state)

    acked_logs = await _ingest_audit_logs(session, req.audit_logs)

    new_sync_timestamp = now_ms()

    # Delta pull: other devices' writes since the caller's watermark.
    for tag, bucket in state.updates.items():
        kind = get_kind(tag)
        if kind is None:
            continue
        rows = await records_repo.list_changed_since(
            session,
            kind.model,
            since_ms=req.last_sync_timestamp,
            exclude_ids=sorted(bucket.positions),
        )
        for row in rows:
            bucket.put(kind.serialize(row))

    updates: dict[str, list[dict[str, Any]]] = {
        tag: bucket.records for tag, bucket in state.updates.items()
    }
    updates["auditLogs"] = [{"id": log_id} for log_id in acked_logs]

    logger.info(
        "sync round user=%s since=%s kinds=%d updates=%d conflicts=%d errors=%d audit_logs=%d",
        user.username,
        req.last_sync_timestamp,
        len(state.updates),
        sum(len(b.records) for b in state.updates.values()),
        len(state.conflicts),
        len(state.errors),
        len(acked_logs),
    )

    return SyncResponse(
        new_sync_timestamp=new_sync_timestamp,
        updates=updates,
        conflicts=state.conflicts,
        errors=state.errors,
    )
