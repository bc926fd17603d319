"""
Credential store for OAuth connections.

All reads and writes of the ``user_connections`` table go through here.
Emails are compared case-insensitively against ``lower(column)`` so rows
written before normalization still match. Token columns are written only
by ``upsert_connection_tokens`` (OAuth callback) and
``update_refreshed_tokens`` (refresh service).
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.exceptions import ConnectionStateError, PersistenceError
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import (
    STATUS_ARCHIVED,
    STATUS_CONNECTED,
    STATUS_DELETED,
    STATUS_INVITED,
    Connection,
)
from plan2tasks.validation import normalize_email

logger = logging.getLogger(__name__)


@asynccontextmanager
async def store_errors(action: str) -> AsyncIterator[None]:
    """Translate SQLAlchemy failures into PersistenceError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(f"Database error ({action})", original_error=e) from e


def _pair_clause(planner_email: str, user_email: str):
    return (
        func.lower(Connection.planner_email) == normalize_email(planner_email),
        func.lower(Connection.user_email) == normalize_email(user_email),
    )


async def get_connection(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Optional[Connection]:
    """
    Get the connection for a (planner, user) pair.

    Returns:
        Connection if found, None otherwise
    """
    stmt = select(Connection).where(*_pair_clause(planner_email, user_email))
    async with store_errors("read connection"):
        result = await session.execute(stmt)
        return result.scalars().first()


async def get_latest_connection(
    session: AsyncSession,
    user_email: str,
    statuses: Optional[Sequence[str]] = None,
) -> Optional[Connection]:
    """
    Get the most recently updated connection for a user across planners.

    Args:
        session: Database session
        user_email: The user's email
        statuses: Restrict to these statuses (default: any but 'deleted')

    Returns:
        Connection if found, None otherwise
    """
    stmt = select(Connection).where(
        func.lower(Connection.user_email) == normalize_email(user_email)
    )
    if statuses:
        stmt = stmt.where(Connection.status.in_(list(statuses)))
    else:
        stmt = stmt.where(Connection.status != STATUS_DELETED)
    stmt = stmt.order_by(
        func.coalesce(Connection.updated_at, Connection.created_at).desc(),
        Connection.created_at.desc(),
    ).limit(1)

    async with store_errors("read latest connection"):
        result = await session.execute(stmt)
        return result.scalars().first()


async def ensure_connection(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Connection:
    """
    Return the pair's connection, creating an 'invited' row if none exists.

    Never changes the status of an existing row.
    """
    existing = await get_connection(session, planner_email, user_email)
    if existing:
        return existing

    connection = Connection(
        planner_email=normalize_email(planner_email),
        user_email=normalize_email(user_email),
        provider="google",
        status=STATUS_INVITED,
    )
    session.add(connection)
    try:
        await session.commit()
    except IntegrityError:
        # Created concurrently; the other writer's row wins
        await session.rollback()
        existing = await get_connection(session, planner_email, user_email)
        if existing is None:
            raise PersistenceError("Database error (create connection)")
        return existing
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError("Database error (create connection)", original_error=e) from e

    logger.info(f"Created invited connection for {connection.user_email} (planner {connection.planner_email})")
    return connection


async def upsert_connection_tokens(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
    access_token: str,
    refresh_token: Optional[str],
    scope: Optional[str],
    token_type: Optional[str],
    token_expiry: datetime,
) -> Connection:
    """
    Save tokens from a completed OAuth exchange and mark the pair connected.

    The stored refresh token is replaced only when a new one is supplied;
    Google omits it on repeat consent.

    Raises:
        ConnectionStateError: If the pair is deleted
        PersistenceError: If the write fails
    """
    try:
        existing = await get_connection(session, planner_email, user_email)

        if existing and existing.status == STATUS_DELETED:
            raise ConnectionStateError("Deleted users cannot be reconnected")
        if existing:
            existing.access_token = access_token
            if refresh_token:
                existing.refresh_token = refresh_token
            if scope:
                existing.scope = scope
            existing.token_type = token_type or existing.token_type or "Bearer"
            existing.token_expiry = token_expiry
            existing.status = STATUS_CONNECTED
            existing.updated_at = utcnow()
            connection = existing
        else:
            connection = Connection(
                planner_email=normalize_email(planner_email),
                user_email=normalize_email(user_email),
                provider="google",
                access_token=access_token,
                refresh_token=refresh_token,
                scope=scope,
                token_type=token_type or "Bearer",
                token_expiry=token_expiry,
                status=STATUS_CONNECTED,
            )
            session.add(connection)

        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError("Database error (save tokens)", original_error=e) from e

    logger.info(f"Stored OAuth tokens for {connection.user_email} (planner {connection.planner_email})")
    return connection


async def update_refreshed_tokens(
    session: AsyncSession,
    user_email: str,
    refresh_token: str,
    access_token: str,
    token_type: Optional[str],
    scope: Optional[str],
    token_expiry: datetime,
) -> int:
    """
    Persist a refreshed access token in a single UPDATE.

    Keyed by user email and the refresh token that was redeemed, so every
    row for the user sharing that grant converges on the new token.

    Returns:
        Number of rows updated
    """
    values = {
        "access_token": access_token,
        "token_expiry": token_expiry,
        "updated_at": utcnow(),
    }
    if token_type:
        values["token_type"] = token_type
    if scope:
        values["scope"] = scope

    stmt = (
        update(Connection)
        .where(
            func.lower(Connection.user_email) == normalize_email(user_email),
            Connection.refresh_token == refresh_token,
        )
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError("Database error (update refreshed token)", original_error=e) from e

    return result.rowcount or 0


async def set_archived(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
    archived: bool,
) -> tuple[Connection, bool]:
    """
    Archive or restore a pair.

    Restoring yields 'connected' when a refresh token is stored and
    'invited' otherwise. A missing pair is created directly in the target
    state.

    Returns:
        (connection, created)

    Raises:
        ConnectionStateError: If the pair is deleted
    """
    connection = await get_connection(session, planner_email, user_email)
    created = connection is None

    if connection is None:
        connection = Connection(
            planner_email=normalize_email(planner_email),
            user_email=normalize_email(user_email),
            provider="google",
            status=STATUS_ARCHIVED if archived else STATUS_INVITED,
        )
        session.add(connection)
    elif connection.status == STATUS_DELETED:
        raise ConnectionStateError("Deleted users cannot be archived or restored")
    elif archived:
        connection.status = STATUS_ARCHIVED
    else:
        connection.status = STATUS_CONNECTED if connection.has_refresh_token else STATUS_INVITED

    async with store_errors("archive connection"):
        await session.commit()

    logger.info(f"Set {connection.user_email} (planner {connection.planner_email}) to {connection.status}")
    return connection, created


async def mark_deleted(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Optional[Connection]:
    """
    Soft delete an archived pair.

    Returns:
        The deleted connection, or None if the pair does not exist

    Raises:
        ConnectionStateError: If the pair is not archived
    """
    connection = await get_connection(session, planner_email, user_email)
    if connection is None:
        return None
    if connection.status == STATUS_DELETED:
        return connection
    if connection.status != STATUS_ARCHIVED:
        raise ConnectionStateError("Can only delete archived users")

    connection.status = STATUS_DELETED
    async with store_errors("delete connection"):
        await session.commit()

    logger.info(f"Soft deleted {connection.user_email} (planner {connection.planner_email})")
    return connection


async def delete_connection(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> bool:
    """
    Hard delete a soft-deleted pair.

    Returns:
        True if a row was removed, False if none existed

    Raises:
        ConnectionStateError: If the pair is not in 'deleted' state
    """
    connection = await get_connection(session, planner_email, user_email)
    if connection is None:
        return False
    if connection.status != STATUS_DELETED:
        raise ConnectionStateError("Can only purge users in 'deleted' state")

    async with store_errors("purge connection"):
        await session.delete(connection)
        await session.commit()
    return True
