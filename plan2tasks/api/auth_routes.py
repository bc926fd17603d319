"""
Authentication API routes for Google OAuth.

Handles the OAuth 2.0 authorization code flow:
1. /api/google/start - Start OAuth flow (redirect to Google)
2. /api/google/callback - Handle OAuth callback (exchange code, store tokens)
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.api.dependencies import get_app_settings, get_callback_handler, get_oauth_flow, get_session
from plan2tasks.api.pages import authorization_failed_page, connected_page, server_error_page
from plan2tasks.auth.callback import OAuthCallbackHandler
from plan2tasks.auth.google_oauth import GoogleOAuthFlow
from plan2tasks.config import Settings
from plan2tasks.exceptions import InputValidationError, PersistenceError, Plan2TasksError
from plan2tasks.services.invites import get_invite_by_id, get_pending_invite_for_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/google", tags=["authentication"])


@router.get("/start")
async def google_start(
    user_email: Optional[str] = Query(None, alias="userEmail", description="User who will grant access"),
    invite: Optional[str] = Query(None, description="Invite id from the invite link"),
    planner_email: Optional[str] = Query(None, alias="plannerEmail"),
    session: AsyncSession = Depends(get_session),
    flow: GoogleOAuthFlow = Depends(get_oauth_flow),
) -> RedirectResponse:
    """
    Start the Google OAuth flow.

    The invite (when given and known) fixes the planner and user. With
    only a userEmail, the user's newest pending invite is attached if one
    exists. Redirects (302) to Google's consent screen.
    """
    invite_id = None
    if invite:
        row = await get_invite_by_id(session, invite)
        if row is None:
            raise InputValidationError("Unknown invite")
        invite_id = str(row.id)
        user_email = row.user_email
        planner_email = row.planner_email
    elif user_email and not planner_email:
        row = await get_pending_invite_for_user(session, user_email)
        if row is not None:
            invite_id = str(row.id)
            planner_email = row.planner_email

    if not user_email:
        raise InputValidationError("Missing userEmail")

    url = flow.build_authorization_url(user_email, invite_id=invite_id, planner_email=planner_email)
    logger.info(f"Redirecting {user_email} to Google consent (invite={invite_id})")
    return RedirectResponse(url, status_code=302)


@router.get("/callback")
async def google_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="Signed state from /api/google/start"),
    error: Optional[str] = Query(None, description="Error from Google OAuth"),
    response_format: Literal["html", "json"] = Query("html", alias="format"),
    session: AsyncSession = Depends(get_session),
    handler: OAuthCallbackHandler = Depends(get_callback_handler),
    settings: Settings = Depends(get_app_settings),
):
    """
    Handle the Google OAuth callback.

    Browsers get a static HTML page; ``format=json`` returns the outcome
    (and any provider error details) as JSON for operators and tests.
    """
    as_json = response_format == "json"

    # User denied access, or Google refused before issuing a code
    if error:
        logger.warning(f"OAuth error from Google: {error}")
        if as_json:
            return JSONResponse(
                status_code=400,
                content={
                    "ok": False,
                    "error_type": "provider_rejected",
                    "error": error,
                    "message": f"OAuth authorization failed: {error}",
                    "retryable": False,
                },
            )
        return authorization_failed_page()

    try:
        outcome = await handler.complete(session, code=code, raw_state=state)
    except Plan2TasksError as e:
        if as_json:
            raise
        logger.warning(f"OAuth callback failed ({e.error_code}): {e.message}")
        if isinstance(e, PersistenceError):
            return server_error_page(e.status_code)
        return authorization_failed_page(e.status_code if e.status_code < 500 else 400)

    if as_json:
        return {
            "ok": True,
            "plannerEmail": outcome.planner_email,
            "userEmail": outcome.user_email,
            "status": outcome.status,
            "inviteId": outcome.invite_id,
            "inviteConsumed": outcome.invite_consumed,
        }
    return connected_page(settings.public_base_url)
