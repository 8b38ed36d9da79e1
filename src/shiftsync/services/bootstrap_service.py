from __future__ import annotations

import logging
from typing import Any

from sqlmodel.ext.asyncio.session import AsyncSession

from shiftsync.domain.registry import REGISTRY
from shiftsync.repositories import records_repo
from shiftsync.schemas_sync import BootstrapResponse
from shiftsync.sync_utils import now_ms

logger = logging.getLogger(__name__)


async def snapshot(*, session: AsyncSession, include_deleted: bool) -> BootstrapResponse:
    """Full pull of every entity kind, used once to populate an empty client store."""

    # Taken before the reads: anything written meanwhile is newer than the watermark
    # and arrives through the next incremental round.
    new_sync_timestamp = now_ms()

    data: dict[str, list[dict[str, Any]]] = {}
    for tag, kind in REGISTRY.items():
        rows = await records_repo.list_all(session, kind.model, include_deleted=include_deleted)
        data[tag] = [kind.serialize(row) for row in rows]

    logger.info(
        "bootstrap include_deleted=%s records=%d",
        include_deleted,
        sum(len(v) for v in data.values()),
    )
    return BootstrapResponse(new_sync_timestamp=new_sync_timestamp, data=data)
