"""
Connection API routes.

Operator endpoints for token refresh and diagnostics, plus the planner's
user life cycle (archive/restore, soft delete, purge).
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.api.dependencies import get_app_settings, get_refresh_service, get_session
from plan2tasks.api.models import ArchiveUserRequest, PairRequest
from plan2tasks.auth.refresh import TokenRefreshService
from plan2tasks.config import Settings
from plan2tasks.services.connections import archive_user, get_connection_status, purge_user, remove_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])
users_router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/refresh")
async def refresh_connection(
    user_email: Optional[str] = Query(None, alias="userEmail"),
    dry_run: bool = Query(False, alias="dryRun", description="Exchange but do not store"),
    session: AsyncSession = Depends(get_session),
    refresh_service: TokenRefreshService = Depends(get_refresh_service),
) -> dict:
    """
    Refresh the user's access token now.

    With dryRun the refresh token is still redeemed at Google (proving it
    works) but nothing is written. Token values are never returned.
    """
    result = await refresh_service.refresh_and_persist(session, user_email, dry_run=dry_run)
    return result.to_dict()


@router.get("/status")
async def connection_status(
    user_email: Optional[str] = Query(None, alias="userEmail"),
    planner_email: Optional[str] = Query(None, alias="plannerEmail"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """Stored token diagnostics. Does not call Google."""
    return await get_connection_status(
        session,
        user_email,
        planner_email=planner_email,
        margin=timedelta(seconds=settings.token_refresh_margin_seconds),
    )


@users_router.post("/archive")
async def archive(
    body: ArchiveUserRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Archive or restore a user."""
    connection, created = await archive_user(session, body.planner_email, body.user_email, body.archived)
    return {"ok": True, "status": connection.status, "created": created}


@users_router.post("/remove")
async def remove(
    body: PairRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Soft delete an archived user."""
    connection = await remove_user(session, body.planner_email, body.user_email)
    return {"ok": True, "status": connection.status}


@users_router.post("/purge")
async def purge(
    body: PairRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Hard delete a soft-deleted user and their pending invites."""
    return await purge_user(session, body.planner_email, body.user_email)
