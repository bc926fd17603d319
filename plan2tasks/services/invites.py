"""
Invite management.

Invites bind a planner to a user before the OAuth handshake. At most one
pending invite exists per pair (enforced by the ``uq_invites_pending_pair``
partial unique index); used invites are kept for audit.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.connection_store import ensure_connection, get_connection, store_errors
from plan2tasks.exceptions import InputValidationError, PersistenceError
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import Connection
from plan2tasks.models.invites import Invite
from plan2tasks.validation import normalize_email, require_email

logger = logging.getLogger(__name__)


@dataclass
class InviteStatus:
    """Combined invite and connection status for a pair."""

    planner_email: Optional[str]
    user_email: Optional[str]
    invite_id: Optional[str]
    invite_status: str  # 'pending' | 'used' | 'missing'
    connection_status: str  # connection status or 'missing'

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "plannerEmail": self.planner_email,
            "userEmail": self.user_email,
            "invite": {"id": self.invite_id, "status": self.invite_status},
            "connection": {"status": self.connection_status},
        }


@dataclass
class AcceptedInvite:
    """Result of following an email invite link."""

    invite: Invite
    connection: Connection
    already_used: bool


def _parse_invite_id(invite_id) -> Optional[uuid.UUID]:
    if isinstance(invite_id, uuid.UUID):
        return invite_id
    try:
        return uuid.UUID(str(invite_id).strip())
    except (TypeError, ValueError, AttributeError):
        return None


def _pair_clause(planner_email: str, user_email: str):
    return (
        func.lower(Invite.planner_email) == normalize_email(planner_email),
        func.lower(Invite.user_email) == normalize_email(user_email),
    )


async def get_pending_invite(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Optional[Invite]:
    """Get the pair's pending invite, if any."""
    stmt = (
        select(Invite)
        .where(*_pair_clause(planner_email, user_email), Invite.used_at.is_(None))
        .order_by(Invite.created_at.desc())
        .limit(1)
    )
    async with store_errors("read pending invite"):
        result = await session.execute(stmt)
        return result.scalars().first()


async def get_invite_by_id(session: AsyncSession, invite_id) -> Optional[Invite]:
    """
    Look up an invite by id.

    Returns:
        Invite if found, None for unknown or malformed ids
    """
    parsed = _parse_invite_id(invite_id)
    if parsed is None:
        return None
    async with store_errors("read invite"):
        result = await session.execute(select(Invite).where(Invite.id == parsed))
        return result.scalars().first()


async def get_invite_by_emails(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Optional[Invite]:
    """
    Look up the pair's invite: the newest pending one, else the newest used one.
    """
    pending = await get_pending_invite(session, planner_email, user_email)
    if pending:
        return pending

    stmt = (
        select(Invite)
        .where(*_pair_clause(planner_email, user_email))
        .order_by(Invite.created_at.desc())
        .limit(1)
    )
    async with store_errors("read invite"):
        result = await session.execute(stmt)
        return result.scalars().first()


async def get_pending_invite_for_user(session: AsyncSession, user_email: str) -> Optional[Invite]:
    """Newest pending invite for a user across all planners."""
    stmt = (
        select(Invite)
        .where(
            func.lower(Invite.user_email) == normalize_email(user_email),
            Invite.used_at.is_(None),
        )
        .order_by(Invite.created_at.desc())
        .limit(1)
    )
    async with store_errors("read pending invite"):
        result = await session.execute(stmt)
        return result.scalars().first()


async def create_or_reuse_invite(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> Invite:
    """
    Return the pair's pending invite, creating one if none exists.

    Two callers racing past the lookup both try to insert; the loser trips
    the pending-pair unique index, rolls back and returns the winner's row.
    Also makes sure an 'invited' connection row exists for the pair.

    Raises:
        InputValidationError: If either email is malformed
        PersistenceError: If the database write fails
    """
    planner = require_email(planner_email, "plannerEmail")
    user = require_email(user_email, "userEmail")

    invite = await get_pending_invite(session, planner, user)
    if invite:
        logger.info(f"Reusing pending invite {invite.id} for {user} (planner {planner})")
    else:
        invite = Invite(planner_email=planner, user_email=user)
        session.add(invite)
        try:
            await session.commit()
            logger.info(f"Created invite {invite.id} for {user} (planner {planner})")
        except IntegrityError:
            await session.rollback()
            invite = await get_pending_invite(session, planner, user)
            if invite is None:
                raise PersistenceError("Database error (create invite)")
            logger.info(f"Invite for {user} (planner {planner}) created concurrently; reusing {invite.id}")
        except SQLAlchemyError as e:
            await session.rollback()
            raise PersistenceError("Database error (create invite)", original_error=e) from e

    await ensure_connection(session, planner, user)
    return invite


async def mark_invite_used(session: AsyncSession, invite_id) -> bool:
    """
    Set used_at on a pending invite.

    Idempotent: an already-used, unknown or malformed id is a no-op.

    Returns:
        True if this call consumed the invite
    """
    parsed = _parse_invite_id(invite_id)
    if parsed is None:
        return False

    stmt = (
        update(Invite)
        .where(Invite.id == parsed, Invite.used_at.is_(None))
        .values(used_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError("Database error (mark invite used)", original_error=e) from e

    consumed = bool(result.rowcount)
    if consumed:
        logger.info(f"Marked invite {parsed} used")
    return consumed


async def remove_pending_invites(
    session: AsyncSession,
    planner_email: str,
    user_email: str,
) -> int:
    """
    Delete the pair's pending invites. Used invites are kept.

    Returns:
        Number of invites removed
    """
    if not normalize_email(planner_email) or not normalize_email(user_email):
        raise InputValidationError("Missing plannerEmail or userEmail")

    stmt = (
        delete(Invite)
        .where(*_pair_clause(planner_email, user_email), Invite.used_at.is_(None))
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError("Database error (remove invites)", original_error=e) from e

    removed = result.rowcount or 0
    logger.info(f"Removed {removed} pending invite(s) for {normalize_email(user_email)}")
    return removed


async def accept_invite(session: AsyncSession, invite_id) -> Optional[AcceptedInvite]:
    """
    Follow an email invite link.

    Consumes the invite and makes sure the pair has a connection row. The
    row only becomes 'connected' once OAuth completes.

    Returns:
        AcceptedInvite, or None for an unknown invite
    """
    invite = await get_invite_by_id(session, invite_id)
    if invite is None:
        return None

    already_used = not invite.is_pending
    connection = await ensure_connection(session, invite.planner_email, invite.user_email)
    if not already_used:
        await mark_invite_used(session, invite.id)

    return AcceptedInvite(invite=invite, connection=connection, already_used=already_used)


async def get_invite_status(
    session: AsyncSession,
    invite_id: Optional[str] = None,
    planner_email: Optional[str] = None,
    user_email: Optional[str] = None,
) -> InviteStatus:
    """
    Describe the invite and connection state for a token or a pair.

    Raises:
        InputValidationError: If neither a token nor both emails are given
    """
    planner = normalize_email(planner_email) or None
    user = normalize_email(user_email) or None
    invite: Optional[Invite] = None

    if invite_id:
        invite = await get_invite_by_id(session, invite_id)
        if invite:
            planner = normalize_email(invite.planner_email)
            user = normalize_email(invite.user_email)
    elif planner and user:
        invite = await get_invite_by_emails(session, planner, user)
    else:
        raise InputValidationError("Provide i=token or plannerEmail & userEmail")

    connection_status = "missing"
    if planner and user:
        connection = await get_connection(session, planner, user)
        if connection:
            connection_status = connection.status

    return InviteStatus(
        planner_email=planner,
        user_email=user,
        invite_id=str(invite.id) if invite else None,
        invite_status=invite.status if invite else "missing",
        connection_status=connection_status,
    )
