"""Client Sync Engine.

One round: read the watermark and every pending/error record, POST them with
the unsent audit logs, then fold the response back into the local store. The
store is only written after a complete response has been received, so a round
that fails in transport (or is cancelled) leaves nothing half-applied.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from shiftsync.client.store import Record, RecordStore
from shiftsync.client.transport import SyncApiClient, SyncTransportError

logger = logging.getLogger(__name__)

WATERMARK_KEY = "lastSyncTimestamp"

# Wire tags in the order the server processes them.
ENTITY_KINDS: tuple[str, ...] = (
    "employees",
    "users",
    "theoretical_shift_patterns",
    "assigned_shifts",
    "daily_time_records",
    "shift_reports",
    "app_settings",
)


class SyncState(str, enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    NO_NETWORK = "no-network"


@dataclass(frozen=True)
class SyncNotice:
    level: str  # "info" for conflicts, "error" for rejected records
    message: str
    record_id: str
    entity_kind: str | None = None


@dataclass
class SyncReport:
    state: SyncState
    sent: int = 0
    applied: int = 0
    conflicts: list[SyncNotice] = field(default_factory=list)
    errors: list[SyncNotice] = field(default_factory=list)
    acknowledged_audit_logs: list[str] = field(default_factory=list)
    watermark: int | None = None
    skipped: bool = False
    failure: str | None = None


StateListener = Callable[[SyncState], None]


def _last_modified(record: Record | None) -> int:
    if record is None:
        return 0
    try:
        return int(record.get("lastModified") or 0)
    except (TypeError, ValueError):
        return 0


class SyncEngine:
    def __init__(
        self,
        store: RecordStore,
        api: SyncApiClient,
        *,
        kinds: tuple[str, ...] = ENTITY_KINDS,
        is_online: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self._store = store
        self._api = api
        self._kinds = kinds
        self._is_online = is_online
        self._lock = asyncio.Lock()
        self._state = SyncState.IDLE
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: SyncState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def settle(self) -> None:
        """Return a finished round's state to idle."""
        if not self._lock.locked():
            self._set_state(SyncState.IDLE)

    async def _watermark(self) -> int:
        value = await self._store.get_setting(WATERMARK_KEY)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    async def _offline(self) -> bool:
        if self._is_online is None:
            return False
        return not await self._is_online()

    def _fail(self, exc: SyncTransportError, *, sent: int = 0) -> SyncReport:
        state = SyncState.NO_NETWORK if exc.offline else SyncState.ERROR
        logger.warning("sync round failed state=%s reason=%s", state.value, exc)
        self._set_state(state)
        return SyncReport(state=state, sent=sent, failure=str(exc))

    async def sync(self) -> SyncReport:
        if self._lock.locked():
            return SyncReport(state=self._state, skipped=True)
        async with self._lock:
            try:
                return await self._run_round()
            except asyncio.CancelledError:
                # Nothing was applied yet, so an abandoned round equals a failed one.
                self._set_state(SyncState.IDLE)
                raise

    async def bootstrap(self, *, include_deleted: bool = False) -> SyncReport:
        if self._lock.locked():
            return SyncReport(state=self._state, skipped=True)
        async with self._lock:
            try:
                return await self._run_bootstrap(include_deleted=include_deleted)
            except asyncio.CancelledError:
                self._set_state(SyncState.IDLE)
                raise

    async def start(self) -> SyncReport:
        """App start: populate an empty store once, then run a normal round."""
        if await self._store.get_setting(WATERMARK_KEY) is None:
            report = await self.bootstrap()
            if report.skipped or report.state != SyncState.SUCCESS:
                return report
        return await self.sync()

    async def run_periodic(
        self, interval_seconds: float, *, stop: asyncio.Event | None = None
    ) -> None:
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.sync()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _run_bootstrap(self, *, include_deleted: bool) -> SyncReport:
        self._set_state(SyncState.SYNCING)
        if await self._offline():
            return self._fail(SyncTransportError("device is offline", offline=True))
        try:
            resp = await self._api.bootstrap(include_deleted=include_deleted)
        except SyncTransportError as exc:
            return self._fail(exc)

        applied = 0
        data = resp.get("data") or {}
        for kind in self._kinds:
            for record in data.get(kind) or []:
                synced = {**record, "syncStatus": "synced", "syncError": None}
                await self._store.upsert(kind, synced)
                applied += 1

        watermark = int(resp["newSyncTimestamp"])
        await self._store.put_setting(WATERMARK_KEY, watermark)
        logger.info("bootstrap done records=%d watermark=%d", applied, watermark)
        self._set_state(SyncState.SUCCESS)
        return SyncReport(state=SyncState.SUCCESS, applied=applied, watermark=watermark)

    async def _run_round(self) -> SyncReport:
        self._set_state(SyncState.SYNCING)
        if await self._offline():
            return self._fail(SyncTransportError("device is offline", offline=True))

        since = await self._watermark()
        changes: dict[str, list[Record]] = {}
        sent_versions: dict[tuple[str, str], int] = {}
        for kind in self._kinds:
            records = await self._store.get_all_pending_or_error(kind)
            changes[kind] = records
            for record in records:
                sent_versions[(kind, str(record["id"]))] = _last_modified(record)
        audit_logs = await self._store.list_unsent_audit_logs()

        payload: dict[str, Any] = {
            "lastSyncTimestamp": since,
            "changes": changes,
            "auditLogs": audit_logs,
        }
        sent = len(sent_versions)
        try:
            resp = await self._api.sync(payload)
        except SyncTransportError as exc:
            return self._fail(exc, sent=sent)

        report = SyncReport(state=SyncState.SUCCESS, sent=sent)
        updates: dict[str, Any] = resp.get("updates") or {}

        rejected: dict[tuple[str, str], str] = {}
        for issue in resp.get("errors") or []:
            record_id = str(issue.get("clientRecordId") or "")
            message = str(issue.get("message") or "")
            kind = issue.get("entityKind") or self._sent_kind_of(record_id, sent_versions)
            report.errors.append(
                SyncNotice(level="error", message=message, record_id=record_id, entity_kind=kind)
            )
            if kind is not None:
                rejected[(kind, record_id)] = message

        for kind in self._kinds:
            for record in updates.get(kind) or []:
                # A rejected edit stays local even when the delta pull carries the server copy.
                if (kind, str(record.get("id") or "")) in rejected:
                    continue
                if await self._apply_update(kind, record, sent_versions):
                    report.applied += 1

        for issue in resp.get("conflicts") or []:
            report.conflicts.append(
                SyncNotice(
                    level="info",
                    message=str(issue.get("message") or ""),
                    record_id=str(issue.get("clientRecordId") or ""),
                    entity_kind=issue.get("entityKind"),
                )
            )

        for (kind, record_id), message in rejected.items():
            await self._mark_error(kind, record_id, message, sent_versions)

        acked = [str(a["id"]) for a in updates.get("auditLogs") or [] if a.get("id")]
        await self._store.mark_audit_logs_sent(acked)
        report.acknowledged_audit_logs = acked

        watermark = int(resp["newSyncTimestamp"])
        await self._store.put_setting(WATERMARK_KEY, max(watermark, since))
        report.watermark = max(watermark, since)

        # Record-level errors are not a transport failure: the watermark still moves.
        report.state = SyncState.ERROR if report.errors else SyncState.SUCCESS
        logger.info(
            "sync round state=%s sent=%d applied=%d conflicts=%d errors=%d"
            " audit_acks=%d watermark=%d",
            report.state.value,
            report.sent,
            report.applied,
            len(report.conflicts),
            len(report.errors),
            len(acked),
            report.watermark,
        )
        self._set_state(report.state)
        return report

    @staticmethod
    def _sent_kind_of(record_id: str, sent_versions: dict[tuple[str, str], int]) -> str | None:
        for kind, rid in sent_versions:
            if rid == record_id:
                return kind
        return None

    async def _edited_during_round(
        self,
        kind: str,
        record_id: str,
        incoming_ms: int | None,
        sent_versions: dict[tuple[str, str], int],
    ) -> bool:
        local = await self._store.get(kind, record_id)
        if local is None or local.get("syncStatus") != "pending":
            return False
        sent_ms = sent_versions.get((kind, record_id))
        if sent_ms is None:
            # Created or touched locally after the payload was read.
            return incoming_ms is not None and _last_modified(local) > incoming_ms
        return _last_modified(local) != sent_ms

    async def _apply_update(
        self, kind: str, record: Record, sent_versions: dict[tuple[str, str], int]
    ) -> bool:
        record_id = str(record.get("id") or "")
        if not record_id:
            return False
        if await self._edited_during_round(
            kind, record_id, _last_modified(record), sent_versions
        ):
            logger.info("sync update deferred kind=%s id=%s (newer local edit)", kind, record_id)
            return False
        await self._store.upsert(kind, {**record, "syncStatus": "synced", "syncError": None})
        return True

    async def _mark_error(
        self,
        kind: str,
        record_id: str,
        message: str,
        sent_versions: dict[tuple[str, str], int],
    ) -> None:
        local = await self._store.get(kind, record_id)
        if local is None:
            return
        if await self._edited_during_round(kind, record_id, None, sent_versions):
            return
        await self._store.upsert(kind, {**local, "syncStatus": "error", "syncError": message})
