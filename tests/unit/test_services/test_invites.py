"""
Unit tests for invite management.
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from plan2tasks.auth.connection_store import get_connection
from plan2tasks.exceptions import InputValidationError
from plan2tasks.models import Invite
from plan2tasks.models.base import utcnow
from plan2tasks.services import invites as invite_service
from plan2tasks.services.invites import (
    accept_invite,
    create_or_reuse_invite,
    get_invite_by_emails,
    get_invite_by_id,
    get_invite_status,
    get_pending_invite_for_user,
    mark_invite_used,
    remove_pending_invites,
)

PLANNER = "planner@example.com"
USER = "user@example.com"


async def count_invites(session, pending_only: bool = False) -> int:
    stmt = select(func.count()).select_from(Invite)
    if pending_only:
        stmt = stmt.where(Invite.used_at.is_(None))
    return (await session.execute(stmt)).scalar_one()


class TestCreateOrReuseInvite:

    async def test_creates_invite_and_invited_connection(self, session):
        invite = await create_or_reuse_invite(session, " Planner@Example.com ", "USER@example.com")

        assert invite.planner_email == PLANNER
        assert invite.user_email == USER
        assert invite.is_pending
        connection = await get_connection(session, PLANNER, USER)
        assert connection.status == "invited"

    async def test_reuses_pending_invite(self, session):
        first = await create_or_reuse_invite(session, PLANNER, USER)
        second = await create_or_reuse_invite(session, PLANNER.upper(), USER)

        assert first.id == second.id
        assert await count_invites(session) == 1

    async def test_new_invite_after_previous_used(self, session):
        first = await create_or_reuse_invite(session, PLANNER, USER)
        await mark_invite_used(session, first.id)

        second = await create_or_reuse_invite(session, PLANNER, USER)

        assert second.id != first.id
        assert await count_invites(session, pending_only=True) == 1

    async def test_does_not_downgrade_connected_pair(self, session, make_connection):
        await make_connection(status="connected")

        await create_or_reuse_invite(session, PLANNER, USER)

        assert (await get_connection(session, PLANNER, USER)).status == "connected"

    @pytest.mark.parametrize("planner,user", [("", USER), (PLANNER, "bad"), (None, USER)])
    async def test_rejects_bad_emails(self, session, planner, user):
        with pytest.raises(InputValidationError):
            await create_or_reuse_invite(session, planner, user)

    async def test_concurrent_insert_returns_existing_row(self, session):
        """A writer that loses the race re-reads the winner's invite."""
        winner = Invite(planner_email=PLANNER, user_email=USER)
        session.add(winner)
        await session.commit()
        winner_id = winner.id

        real_lookup = invite_service.get_pending_invite
        calls = []

        async def racing_lookup(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                # Simulate reading before the other writer committed
                return None
            return await real_lookup(*args, **kwargs)

        with patch("plan2tasks.services.invites.get_pending_invite", racing_lookup):
            invite = await create_or_reuse_invite(session, PLANNER, USER)

        assert invite.id == winner_id
        assert await count_invites(session) == 1


class TestMarkInviteUsed:

    async def test_marks_once(self, session):
        invite = await create_or_reuse_invite(session, PLANNER, USER)

        assert await mark_invite_used(session, invite.id) is True
        used_at = (await get_invite_by_id(session, invite.id)).used_at
        assert await mark_invite_used(session, str(invite.id)) is False
        assert (await get_invite_by_id(session, invite.id)).used_at == used_at

    @pytest.mark.parametrize("invite_id", [None, "", "not-a-uuid", str(uuid.uuid4())])
    async def test_unknown_or_malformed_ids_are_noops(self, session, invite_id):
        assert await mark_invite_used(session, invite_id) is False


class TestReads:

    async def test_get_invite_by_emails_prefers_pending(self, session):
        used = await create_or_reuse_invite(session, PLANNER, USER)
        await mark_invite_used(session, used.id)
        pending = await create_or_reuse_invite(session, PLANNER, USER)

        found = await get_invite_by_emails(session, PLANNER, USER)

        assert found.id == pending.id

    async def test_get_invite_by_emails_falls_back_to_used(self, session):
        used = await create_or_reuse_invite(session, PLANNER, USER)
        await mark_invite_used(session, used.id)

        found = await get_invite_by_emails(session, PLANNER, USER)

        assert found.id == used.id

    async def test_get_invite_by_id_malformed(self, session):
        assert await get_invite_by_id(session, "nope") is None

    async def test_pending_invite_for_user_across_planners(self, session):
        invite = await create_or_reuse_invite(session, "other@example.com", USER)

        found = await get_pending_invite_for_user(session, USER.upper())

        assert found.id == invite.id


class TestRemovePendingInvites:

    async def test_removes_only_pending(self, session):
        used = await create_or_reuse_invite(session, PLANNER, USER)
        await mark_invite_used(session, used.id)
        await create_or_reuse_invite(session, PLANNER, USER)

        removed = await remove_pending_invites(session, PLANNER, USER)

        assert removed == 1
        assert await count_invites(session) == 1
        assert await get_invite_by_id(session, used.id) is not None

    async def test_requires_both_emails(self, session):
        with pytest.raises(InputValidationError):
            await remove_pending_invites(session, "", USER)


class TestAcceptInvite:

    async def test_accept_consumes_invite_without_connecting(self, session):
        invite = await create_or_reuse_invite(session, PLANNER, USER)

        accepted = await accept_invite(session, str(invite.id))

        assert accepted.already_used is False
        assert accepted.connection.status == "invited"
        assert (await get_invite_by_id(session, invite.id)).used_at is not None

    async def test_accept_twice(self, session):
        invite = await create_or_reuse_invite(session, PLANNER, USER)
        await accept_invite(session, invite.id)

        accepted = await accept_invite(session, invite.id)

        assert accepted.already_used is True

    async def test_accept_unknown(self, session):
        assert await accept_invite(session, str(uuid.uuid4())) is None


class TestInviteStatus:

    async def test_status_by_id(self, session):
        invite = await create_or_reuse_invite(session, PLANNER, USER)

        status = (await get_invite_status(session, invite_id=str(invite.id))).to_dict()

        assert status["invite"] == {"id": str(invite.id), "status": "pending"}
        assert status["connection"] == {"status": "invited"}
        assert status["plannerEmail"] == PLANNER

    async def test_status_by_emails_after_use(self, session):
        invite = await create_or_reuse_invite(session, PLANNER, USER)
        invite.used_at = utcnow()
        await session.commit()

        status = await get_invite_status(session, planner_email=PLANNER, user_email=USER)

        assert status.invite_status == "used"

    async def test_status_missing(self, session):
        status = await get_invite_status(session, planner_email=PLANNER, user_email=USER)

        assert status.invite_status == "missing"
        assert status.connection_status == "missing"

    async def test_status_requires_token_or_pair(self, session):
        with pytest.raises(InputValidationError):
            await get_invite_status(session, planner_email=PLANNER)
