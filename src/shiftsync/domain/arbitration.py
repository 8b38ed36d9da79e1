from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


Decision = Literal["insert", "overwrite", "server_wins"]

CONFLICT_MESSAGE = "server version is newer; local changes were replaced"


@dataclass(frozen=True)
class ServerRowSnapshot:
    entity_id: str
    last_modified: int
    deleted: bool


@dataclass(frozen=True)
class WritePlan:
    entity_id: str
    decision: Decision
    # lastModified that will be persisted for client-side writes.
    last_modified: int


def clamp_last_modified(value: int | None, *, server_now_ms: int, max_skew_ms: int) -> int:
    """Bound a client clock to at most `max_skew_ms` ahead of the server clock.

    Without this a device with a clock far in the future would win every
    subsequent arbitration for the records it touches.
    """

    if not value or value < 0:
        return 0
    ceiling = server_now_ms + max(0, max_skew_ms)
    if value > ceiling:
        return ceiling
    return value


def plan_write(
    *,
    entity_id: str,
    incoming_last_modified: int,
    server_row: ServerRowSnapshot | None,
) -> WritePlan:
    """Pure last-writer-wins planner.

    - No DB/network/time.
    - Server wins only when strictly newer; ties go to the client.
    - Soft-deleted server rows arbitrate like any other row.
    """

    incoming = int(incoming_last_modified or 0)
    if server_row is None:
        return WritePlan(entity_id=entity_id, decision="insert", last_modified=incoming)

    if server_row.last_modified > incoming:
        return WritePlan(
            entity_id=entity_id, decision="server_wins", last_modified=server_row.last_modified
        )

    return WritePlan(entity_id=entity_id, decision="overwrite", last_modified=incoming)
