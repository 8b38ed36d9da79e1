from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from shiftsync.db import get_session
from shiftsync.deps import get_current_user
from shiftsync.models import User
from shiftsync.schemas_sync import BootstrapResponse, SyncRequest, SyncResponse
from shiftsync.services import bootstrap_service, sync_service

router = APIRouter(tags=["sync"])


@router.post("/sync", response_model=SyncResponse)
async def sync(
    payload: SyncRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> SyncResponse:
    return await sync_service.reconcile(session=session, user=user, req=payload)


@router.get("/bootstrap", response_model=BootstrapResponse)
async def bootstrap(
    include_deleted: Annotated[bool, Query()] = False,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BootstrapResponse:
    _ = user
    return await bootstrap_service.snapshot(session=session, include_deleted=include_deleted)
