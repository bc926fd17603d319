"""
Connection life-cycle operations for planners.

Archive/restore, soft delete and purge of a (planner, user) pair, plus a
token diagnostics view that never exposes token values or calls Google.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.connection_store import (
    delete_connection,
    get_connection,
    get_latest_connection,
    mark_deleted,
    set_archived,
)
from plan2tasks.exceptions import NotConnectedError
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import Connection
from plan2tasks.services.invites import remove_pending_invites
from plan2tasks.validation import require_email

logger = logging.getLogger(__name__)


def describe_connection(
    connection: Connection,
    margin: timedelta = timedelta(seconds=60),
    now: Optional[datetime] = None,
) -> dict:
    """Token diagnostics for a connection. Presence flags only, no token values."""
    expires_at = connection.expires_at
    return {
        "plannerEmail": connection.planner_email,
        "userEmail": connection.user_email,
        "status": connection.status,
        "provider": connection.provider,
        "hasAccessToken": bool(connection.access_token),
        "hasRefreshToken": connection.has_refresh_token,
        "scope": connection.scope,
        "tokenType": connection.token_type,
        "google_token_expiry": connection.expiry_epoch,
        "google_expires_at": expires_at.isoformat() if expires_at else None,
        "accessTokenValid": not connection.needs_refresh(margin, now=now or utcnow()),
    }


async def get_connection_status(
    session: AsyncSession,
    user_email: str,
    planner_email: Optional[str] = None,
    margin: timedelta = timedelta(seconds=60),
) -> dict:
    """
    Diagnostics for a user's connection.

    Raises:
        NotConnectedError: If no connection exists
    """
    user = require_email(user_email, "userEmail")
    if planner_email:
        connection = await get_connection(session, require_email(planner_email, "plannerEmail"), user)
    else:
        connection = await get_latest_connection(session, user)

    if connection is None:
        raise NotConnectedError(f"No connection found for {user}")

    return {"ok": True, "connection": describe_connection(connection, margin=margin)}


async def archive_user(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
    archived: bool = True,
) -> tuple[Connection, bool]:
    """
    Archive (or restore) a user for a planner.

    Returns:
        (connection, created)
    """
    planner = require_email(planner_email, "plannerEmail")
    user = require_email(user_email, "userEmail")
    return await set_archived(session, planner, user, archived)


async def remove_user(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Connection:
    """
    Soft delete an archived user.

    Raises:
        NotConnectedError: If the pair does not exist
        ConnectionStateError: If the pair is not archived
    """
    planner = require_email(planner_email, "plannerEmail")
    user = require_email(user_email, "userEmail")
    connection = await mark_deleted(session, planner, user)
    if connection is None:
        raise NotConnectedError(f"No connection found for {user}")
    return connection


async def purge_user(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> dict:
    """
    Hard delete a soft-deleted user and their pending invites.

    Used invites are kept for audit.

    Raises:
        ConnectionStateError: If the pair is not in 'deleted' state
    """
    planner = require_email(planner_email, "plannerEmail")
    user = require_email(user_email, "userEmail")

    removed = await delete_connection(session, planner, user)
    invites_removed = await remove_pending_invites(session, planner, user)

    logger.info(f"Purged {user} (planner {planner}): connection={removed}, invites={invites_removed}")
    return {
        "ok": True,
        "plannerEmail": planner,
        "userEmail": user,
        "purged": removed,
        "invitesRemoved": invites_removed,
    }
