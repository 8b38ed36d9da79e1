from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from shiftsync.auth_tokens import make_access_token
from shiftsync.config import settings
from shiftsync.db import get_session
from shiftsync.rate_limiting import (
    build_ip_key,
    build_ip_username_key,
    enforce_rate_limit,
    extract_client_ip,
)
from shiftsync.repositories import records_repo
from shiftsync.schemas import LoginRequest, LoginResponse
from shiftsync.security import verify_password

router = APIRouter(tags=["auth"])

logger = logging.getLogger(__name__)


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> LoginResponse:
    ip = extract_client_ip(request)
    await enforce_rate_limit(
        scope="auth_login_ip",
        key=build_ip_key(ip),
        limit=settings.auth_login_rate_limit_per_ip,
        window_seconds=settings.rate_limit_window_seconds,
    )
    await enforce_rate_limit(
        scope="auth_login_user",
        key=build_ip_username_key(ip=ip, username=payload.username),
        limit=settings.auth_login_rate_limit_per_ip_user,
        window_seconds=settings.rate_limit_window_seconds,
    )

    user = await records_repo.get_user_by_username(session, payload.username)
    # Soft-deleted users look exactly like unknown ones.
    if not user or user.is_deleted or not verify_password(payload.password, user.password_hash):
        logger.info("login failed username=%s ip=%s", payload.username, ip)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")

    return LoginResponse(token=make_access_token(user.id))
