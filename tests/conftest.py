from __future__ import annotations

import inspect
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest

from shiftsync.config import settings
from shiftsync.db import (
    dispose_engine_cache,
    get_engine,
    init_db,
    reset_engine_cache,
    session_scope,
)
from shiftsync.models import User
from shiftsync.security import hash_password
from shiftsync.sync_utils import now_ms


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
async def _dispose_engine_cache_per_test(  # pyright: ignore[reportUnusedFunction]
    anyio_backend: object,  # noqa: ARG001
) -> AsyncGenerator[None, None]:
    # The aiosqlite worker thread must be shut down while the per-test event loop is alive.
    _ = anyio_backend
    yield

    if get_engine.cache_info().currsize:
        result = get_engine().dispose()
        if inspect.isawaitable(result):
            await result

    dispose_engine_cache()


@pytest.fixture
async def db(tmp_path: Path) -> AsyncGenerator[Path, None]:
    """Fresh per-test SQLite database with every table created."""

    old_db = settings.database_url
    db_file = tmp_path / "shiftsync-test.db"
    settings.database_url = f"sqlite:///{db_file}"
    reset_engine_cache()
    await init_db()
    try:
        yield db_file
    finally:
        settings.database_url = old_db


SeedUser = Callable[..., Awaitable[User]]


@pytest.fixture
def seed_user(db: Path) -> SeedUser:
    _ = db

    async def _seed(
        username: str = "ana",
        password: str = "pass1234",
        *,
        role: str = "Administrador",
        is_deleted: bool = False,
    ) -> User:
        ts = now_ms()
        async with session_scope() as session:
            user = User(
                id=f"user-{username}",
                username=username,
                password_hash=hash_password(password),
                role=role,
                is_deleted=is_deleted,
                last_modified=ts,
                server_modified_ms=ts,
                sync_status="synced",
            )
            session.add(user)
            await session.commit()
            return user

    return _seed


def pytest_sessionfinish(session: object, exitstatus: int) -> None:  # noqa: ARG001
    # Safety net: close cached engine so CI can exit cleanly.
    _ = session, exitstatus
    dispose_engine_cache()
