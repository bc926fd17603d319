"""
Invite API routes.

Planners create invites; users follow the emailed link
(/api/invite/accept), which leads them into the OAuth flow.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.api.dependencies import get_app_settings, get_session
from plan2tasks.api.models import CreateInviteRequest, InviteResponse, RemoveInviteRequest
from plan2tasks.api.pages import invite_accepted_page, invite_missing_page
from plan2tasks.config import Settings
from plan2tasks.services.invites import (
    accept_invite,
    create_or_reuse_invite,
    get_invite_status,
    remove_pending_invites,
)
from plan2tasks.validation import require_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invite", tags=["invites"])


def _base_url(request: Request, settings: Settings) -> str:
    return settings.public_base_url or str(request.base_url).rstrip("/")


def start_url_for(base_url: str, invite_id: str) -> str:
    return f"{base_url}/api/google/start?invite={invite_id}"


@router.post("", response_model=InviteResponse)
async def create_invite(
    body: CreateInviteRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> InviteResponse:
    """
    Create an invite for a pair, or return the pending one.

    Also creates an 'invited' connection row when the pair has none.
    """
    invite = await create_or_reuse_invite(session, body.planner_email, body.user_email)
    base = _base_url(request, settings)
    invite_id = str(invite.id)
    return InviteResponse(
        invite_id=invite_id,
        planner_email=invite.planner_email,
        user_email=invite.user_email,
        invite_url=f"{base}/api/invite/accept?i={invite_id}",
        start_url=start_url_for(base, invite_id),
    )


@router.get("/accept")
async def accept(
    request: Request,
    i: Optional[str] = Query(None, description="Invite id"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Landing page for the emailed invite link."""
    accepted = await accept_invite(session, i) if i else None
    if accepted is None:
        logger.info("Invite link opened with a missing or unknown invite")
        return invite_missing_page()

    start_url = start_url_for(_base_url(request, settings), str(accepted.invite.id))
    return invite_accepted_page(start_url, accepted.already_used)


@router.get("/status")
async def invite_status(
    i: Optional[str] = Query(None, description="Invite id"),
    planner_email: Optional[str] = Query(None, alias="plannerEmail"),
    user_email: Optional[str] = Query(None, alias="userEmail"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Invite status (pending, used, missing) plus the pair's connection status."""
    status = await get_invite_status(session, invite_id=i, planner_email=planner_email, user_email=user_email)
    return status.to_dict()


@router.post("/remove")
async def remove_invite(
    body: RemoveInviteRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Delete the pair's pending invites."""
    planner = require_email(body.planner_email, "plannerEmail")
    user = require_email(body.user_email, "userEmail")
    removed = await remove_pending_invites(session, planner, user)
    return {"ok": True, "removed": removed}
