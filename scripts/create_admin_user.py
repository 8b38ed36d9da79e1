from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
import uuid

from shiftsync.db import init_db, session_scope
from shiftsync.models import User
from shiftsync.repositories import records_repo
from shiftsync.security import hash_password
from shiftsync.sync_utils import now_ms


async def _create(username: str, password: str, role: str, create_tables: bool) -> int:
    if create_tables:
        await init_db()

    async with session_scope() as session:
        if await records_repo.get_user_by_username(session, username) is not None:
            print(f"user already exists: {username}", file=sys.stderr)
            return 1
        ts = now_ms()
        session.add(
            User(
                id=str(uuid.uuid4()),
                username=username,
                password_hash=hash_password(password),
                role=role,
                last_modified=ts,
                server_modified_ms=ts,
                sync_status="synced",
            )
        )
        await session.commit()
    print(f"created {role} user: {username}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Seed the first account so a device can log in and bootstrap."
    )
    parser.add_argument("username")
    parser.add_argument(
        "--role",
        default="Administrador",
        choices=["Usuario", "Supervisor", "Administrador", "Usuario Elevado"],
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (local dev; production uses `alembic upgrade head`).",
    )
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    if not password:
        print("password must not be empty", file=sys.stderr)
        return 2
    return asyncio.run(_create(args.username, password, args.role, args.create_tables))


if __name__ == "__main__":
    raise SystemExit(main())
