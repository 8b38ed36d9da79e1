from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from shiftsync.db import session_scope
from shiftsync.models import AuditLog, Employee, User
from shiftsync.repositories import records_repo
from shiftsync.schemas_sync import SyncRequest
from shiftsync.services import sync_service
from shiftsync.security import verify_password
from shiftsync.sync_utils import now_ms


def _employee(record_id: str, name: str, last_modified: int) -> dict:
    return {"id": record_id, "name": name, "lastModified": last_modified, "syncStatus": "pending"}


async def _round(user: User, **body: object) -> dict:
    req = SyncRequest.model_validate(body)
    async with session_scope() as session:
        resp = await sync_service.reconcile(session=session, user=user, req=req)
    return resp.model_dump(by_alias=True)


@pytest.mark.anyio
async def test_first_write_then_stale_write_conflicts(seed_user) -> None:
    user = await seed_user()

    first = await _round(
        user, lastSyncTimestamp=0, changes={"employees": [_employee("E1", "Ana", 1000)]}
    )
    assert [r["id"] for r in first["updates"]["employees"]] == ["E1"]
    assert first["conflicts"] == []
    assert first["errors"] == []

    second = await _round(
        user, lastSyncTimestamp=0, changes={"employees": [_employee("E1", "Ana B", 500)]}
    )
    assert second["conflicts"] == [
        {
            "clientRecordId": "E1",
            "message": sync_service.CONFLICT_MESSAGE,
            "entityKind": "employees",
        }
    ]
    echoed = [r for r in second["updates"]["employees"] if r["id"] == "E1"]
    assert len(echoed) == 1
    assert echoed[0]["name"] == "Ana"
    assert echoed[0]["lastModified"] == 1000

    async with session_scope() as session:
        row = await session.get(Employee, "E1")
        assert row is not None
        assert row.name == "Ana"
        assert row.last_modified == 1000


@pytest.mark.anyio
async def test_equal_timestamps_resolve_to_client(seed_user) -> None:
    user = await seed_user()
    await _round(user, changes={"employees": [_employee("E1", "Ana", 1000)]})

    resp = await _round(user, changes={"employees": [_employee("E1", "Ana Maria", 1000)]})
    assert resp["conflicts"] == []
    assert resp["updates"]["employees"][0]["name"] == "Ana Maria"


@pytest.mark.anyio
async def test_bad_record_does_not_affect_the_rest_of_the_batch(seed_user) -> None:
    user = await seed_user()
    batch = [
        _employee("E1", "Ana", 1000),
        _employee("E2", "   ", 1000),
        _employee("E3", "Bruno", 1000),
    ]
    resp = await _round(user, changes={"employees": batch})

    assert [r["id"] for r in resp["updates"]["employees"]] == ["E1", "E3"]
    assert len(resp["errors"]) == 1
    assert resp["errors"][0]["clientRecordId"] == "E2"
    assert resp["errors"][0]["entityKind"] == "employees"
    assert "name" in resp["errors"][0]["message"]

    async with session_scope() as session:
        ids = sorted(r.id for r in (await session.exec(select(Employee))).all())
    assert ids == ["E1", "E3"]

    # Resubmitting the unchanged bad record reports the same error again.
    again = await _round(user, changes={"employees": [_employee("E2", "   ", 1000)]})
    assert [e["clientRecordId"] for e in again["errors"]] == ["E2"]


@pytest.mark.anyio
async def test_resubmission_is_idempotent(seed_user) -> None:
    user = await seed_user()
    record = _employee("E1", "Ana", 1000)

    first = await _round(user, changes={"employees": [record]})
    second = await _round(user, changes={"employees": [record]})

    assert second["conflicts"] == []
    assert second["errors"] == []
    assert first["updates"]["employees"][0] == second["updates"]["employees"][0]

    async with session_scope() as session:
        rows = (await session.exec(select(Employee))).all()
    assert len(rows) == 1
    assert rows[0].name == "Ana"
    assert rows[0].last_modified == 1000


@pytest.mark.anyio
async def test_audit_log_resubmission_is_acknowledged_without_duplicates(seed_user) -> None:
    user = await seed_user()
    entry = {
        "id": "L1",
        "timestamp": 1000,
        "actorUsername": "ana",
        "action": "clock-in",
        "details": {"employeeId": "E1"},
    }

    first = await _round(user, auditLogs=[entry])
    second = await _round(user, auditLogs=[entry, {"id": "L2"}])

    assert first["updates"]["auditLogs"] == [{"id": "L1"}]
    # L2 is malformed, so it is not acknowledged and stays queued on the client.
    assert second["updates"]["auditLogs"] == [{"id": "L1"}]

    async with session_scope() as session:
        rows = (await session.exec(select(AuditLog))).all()
    assert [r.id for r in rows] == ["L1"]
    assert rows[0].details == {"employeeId": "E1"}


@pytest.mark.anyio
async def test_delta_pull_delivers_other_clients_writes(seed_user) -> None:
    user = await seed_user()

    b_first = await _round(user, lastSyncTimestamp=0, changes={"employees": []})
    b_watermark = b_first["newSyncTimestamp"]

    await _round(user, changes={"employees": [_employee("E9", "Carla", now_ms())]})

    b_next = await _round(user, lastSyncTimestamp=b_watermark, changes={"employees": []})
    assert "E9" in [r["id"] for r in b_next["updates"]["employees"]]
    assert b_next["newSyncTimestamp"] >= b_watermark


@pytest.mark.anyio
async def test_delta_pull_covers_writes_stamped_by_a_lagging_clock(seed_user) -> None:
    user = await seed_user()
    b_watermark = (await _round(user, changes={"employees": []}))["newSyncTimestamp"]

    # Device A's clock is far behind: lastModified is older than B's watermark.
    await _round(user, changes={"employees": [_employee("E5", "Dario", 5)]})

    b_next = await _round(user, lastSyncTimestamp=b_watermark, changes={"employees": []})
    assert "E5" in [r["id"] for r in b_next["updates"]["employees"]]


@pytest.mark.anyio
async def test_watermark_is_monotonic(seed_user) -> None:
    user = await seed_user()
    marks = []
    since = 0
    for i in range(3):
        resp = await _round(
            user,
            lastSyncTimestamp=since,
            changes={"employees": [_employee(f"E{i}", "Ana", 1000 + i)]},
        )
        marks.append(resp["newSyncTimestamp"])
        since = resp["newSyncTimestamp"]
    assert marks == sorted(marks)


@pytest.mark.anyio
async def test_unknown_entity_kind_is_reported_per_record(seed_user) -> None:
    user = await seed_user()
    resp = await _round(
        user,
        changes={
            "spaceships": [{"id": "S1", "lastModified": 1}, {"id": "S2", "lastModified": 1}],
            "employees": [_employee("E1", "Ana", 1000)],
        },
    )
    assert [(e["clientRecordId"], e["message"]) for e in resp["errors"]] == [
        ("S1", "unknown entity kind: spaceships"),
        ("S2", "unknown entity kind: spaceships"),
    ]
    assert "spaceships" not in resp["updates"]
    assert [r["id"] for r in resp["updates"]["employees"]] == ["E1"]


@pytest.mark.anyio
async def test_future_client_clock_is_clamped(seed_user) -> None:
    user = await seed_user()
    far_future = now_ms() + 10 * 365 * 24 * 3600 * 1000
    resp = await _round(user, changes={"employees": [_employee("E1", "Ana", far_future)]})
    stored = resp["updates"]["employees"][0]["lastModified"]
    assert stored < far_future
    assert stored <= resp["newSyncTimestamp"] + 300 * 1000


@pytest.mark.anyio
async def test_user_records_hash_password_and_keep_usernames_unique(seed_user) -> None:
    admin = await seed_user()

    resp = await _round(
        admin,
        changes={
            "users": [
                {"id": "U1", "username": "bea", "password": "secret-1", "lastModified": 1000},
                {"id": "U2", "username": "bea", "password": "secret-2", "lastModified": 1000},
                {"id": "U3", "username": "caro", "lastModified": 1000},
            ]
        },
    )

    assert [r["id"] for r in resp["updates"]["users"] if r["id"] != admin.id] == ["U1"]
    assert all("password" not in r for r in resp["updates"]["users"])
    errors = {e["clientRecordId"]: e["message"] for e in resp["errors"]}
    assert errors == {
        "U2": "username already taken: bea",
        "U3": "password is required for new users",
    }

    async with session_scope() as session:
        u1 = await session.get(User, "U1")
        assert u1 is not None
        assert verify_password("secret-1", u1.password_hash)

    # Later edits without a password keep the stored hash.
    await _round(
        admin,
        changes={
            "users": [
                {"id": "U1", "username": "bea", "role": "Supervisor", "lastModified": 2000}
            ]
        },
    )
    async with session_scope() as session:
        u1 = await session.get(User, "U1")
        assert u1 is not None
        assert u1.role == "Supervisor"
        assert verify_password("secret-1", u1.password_hash)


@pytest.mark.anyio
async def test_soft_delete_is_an_ordinary_write(seed_user) -> None:
    user = await seed_user()
    await _round(user, changes={"employees": [_employee("E1", "Ana", 1000)]})
    resp = await _round(
        user, changes={"employees": [{**_employee("E1", "Ana", 2000), "isDeleted": True}]}
    )
    assert resp["updates"]["employees"][0]["isDeleted"] is True

    async with session_scope() as session:
        row = await session.get(Employee, "E1")
        assert row is not None
        assert row.is_deleted is True


@pytest.mark.anyio
async def test_non_object_entries_are_reported_per_record(seed_user) -> None:
    user = await seed_user()
    resp = await _round(
        user, changes={"employees": [_employee("E1", "Ana", 1000), "junk", 42]}
    )
    assert [r["id"] for r in resp["updates"]["employees"]] == ["E1"]
    assert [(e["clientRecordId"], e["message"]) for e in resp["errors"]] == [
        ("", "record must be a JSON object"),
        ("", "record must be a JSON object"),
    ]


@pytest.mark.anyio
async def test_database_error_on_one_record_spares_the_rest(seed_user, monkeypatch) -> None:
    user = await seed_user()
    real_get_record = records_repo.get_record

    async def failing_get_record(session, model, record_id):
        if record_id == "E2":
            raise OperationalError("SELECT employees", {}, Exception("disk I/O error"))
        return await real_get_record(session, model, record_id)

    monkeypatch.setattr(records_repo, "get_record", failing_get_record)
    batch = [
        _employee("E1", "Ana", 1000),
        _employee("E2", "Bea", 1000),
        _employee("E3", "Caro", 1000),
    ]
    resp = await _round(user, changes={"employees": batch})

    assert [r["id"] for r in resp["updates"]["employees"]] == ["E1", "E3"]
    assert [e["clientRecordId"] for e in resp["errors"]] == ["E2"]
    assert "OperationalError" in resp["errors"][0]["message"]

    async with session_scope() as session:
        ids = sorted(r.id for r in (await session.exec(select(Employee))).all())
    assert ids == ["E1", "E3"]


@pytest.mark.anyio
async def test_audit_log_write_failure_is_not_acknowledged(seed_user, monkeypatch) -> None:
    user = await seed_user()
    real_get_audit_log = records_repo.get_audit_log

    async def failing_get_audit_log(session, log_id):
        if log_id == "L2":
            raise OperationalError("SELECT audit_logs", {}, Exception("database is locked"))
        return await real_get_audit_log(session, log_id)

    monkeypatch.setattr(records_repo, "get_audit_log", failing_get_audit_log)
    entries = [
        {"id": log_id, "timestamp": 1000, "actorUsername": "ana", "action": "clock-in"}
        for log_id in ("L1", "L2", "L3")
    ]
    resp = await _round(user, auditLogs=entries)

    assert resp["updates"]["auditLogs"] == [{"id": "L1"}, {"id": "L3"}]
    assert resp["errors"] == []

    async with session_scope() as session:
        rows = (await session.exec(select(AuditLog))).all()
    assert sorted(r.id for r in rows) == ["L1", "L3"]

    # The client keeps L2 queued; once the database recovers it is stored and acknowledged.
    monkeypatch.undo()
    retry = await _round(user, auditLogs=[entries[1]])
    assert retry["updates"]["auditLogs"] == [{"id": "L2"}]


@pytest.mark.anyio
async def test_stale_user_record_conflicts_before_username_check(seed_user) -> None:
    admin = await seed_user()
    await _round(
        admin,
        changes={
            "users": [
                {"id": "U1", "username": "bea", "password": "secret-1", "lastModified": 5000},
                {"id": "U2", "username": "caro", "password": "secret-2", "lastModified": 1000},
            ]
        },
    )

    # Older than the stored U1 and clashing with U2: the server copy wins.
    resp = await _round(
        admin,
        changes={"users": [{"id": "U1", "username": "caro", "lastModified": 1000}]},
    )
    assert resp["errors"] == []
    assert [(c["clientRecordId"], c["entityKind"]) for c in resp["conflicts"]] == [
        ("U1", "users")
    ]
    echoed = [r for r in resp["updates"]["users"] if r["id"] == "U1"]
    assert echoed[0]["username"] == "bea"
