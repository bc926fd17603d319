"""
OAuth callback handling.

Runs one callback invocation through its steps:
receive → decode state → exchange code → resolve identity → commit →
finalize invite. Nothing is written before the exchange succeeds and the
(planner, user) pair is known. Any store failure after a successful
exchange leaves Google-issued tokens orphaned and is reported as
TokenPersistenceError.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.connection_store import get_connection, upsert_connection_tokens
from plan2tasks.auth.google_oauth import GoogleOAuthFlow, OAuthTokens
from plan2tasks.auth.state import OAuthState
from plan2tasks.exceptions import (
    ConnectionStateError,
    InputValidationError,
    PersistenceError,
    Plan2TasksError,
    ProviderRejectedError,
    TokenPersistenceError,
    UnresolvedConnectionError,
)
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import STATUS_DELETED
from plan2tasks.services.invites import get_invite_by_id, mark_invite_used
from plan2tasks.validation import is_plausible_email, normalize_email

logger = logging.getLogger(__name__)

ORPHANED_TOKENS_EVENT = "oauth_tokens_orphaned"


@dataclass
class CallbackOutcome:
    """Result of a completed callback. Holds no token values."""

    planner_email: str
    user_email: str
    invite_id: Optional[str]
    invite_consumed: bool
    status: str


class OAuthCallbackHandler:
    """
    Completes the OAuth flow for one redirect.

    Usage:
        handler = OAuthCallbackHandler(flow)
        outcome = await handler.complete(session, code=code, raw_state=state)
    """

    def __init__(self, flow: GoogleOAuthFlow, clock: Callable[[], datetime] = utcnow):
        self._flow = flow
        self._clock = clock

    async def complete(
        self,
        session: AsyncSession,
        code: Optional[str],
        raw_state: Optional[str],
    ) -> CallbackOutcome:
        """
        Exchange the code and store the connection.

        Raises:
            InputValidationError: Missing code
            ProviderRejectedError: Google rejected the code, or issued no refresh token
            ProviderUnavailableError: Google could not be reached
            UnresolvedConnectionError: Planner or user could not be determined
            ConnectionStateError: The pair was deleted by the planner
            TokenPersistenceError: Tokens were issued but could not be stored
        """
        if not code:
            raise InputValidationError("Missing code")

        state = self._flow.state_codec.decode(raw_state)
        if state.is_empty:
            logger.info("OAuth callback without usable state; continuing without invite context")

        tokens = await self._flow.exchange_code(code)

        # From here on Google has issued tokens; any store failure orphans them
        planner_email = user_email = invite_id = None
        try:
            planner_email, user_email, invite_id = await self._resolve_identity(session, state, tokens)

            existing = await get_connection(session, planner_email, user_email)
            if existing and existing.status == STATUS_DELETED:
                logger.warning(f"OAuth callback for deleted user {user_email} (planner {planner_email}); tokens discarded")
                raise ConnectionStateError("This user was removed by the planner and cannot reconnect")
            if not tokens.refresh_token and not (existing and existing.refresh_token):
                logger.warning(f"Google issued no refresh token for {user_email} and none is stored")
                raise ProviderRejectedError(
                    "missing_refresh_token",
                    "Google did not grant offline access; restart the authorization",
                )

            connection = await upsert_connection_tokens(
                session,
                planner_email=planner_email,
                user_email=user_email,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                scope=tokens.scope or None,
                token_type=tokens.token_type,
                token_expiry=tokens.expiry(self._clock()),
            )
        except PersistenceError as e:
            logger.critical(
                f"OAuth tokens issued for {user_email or 'unknown user'} (planner {planner_email or 'unknown'}) "
                f"could not be stored; manual reconciliation or re-authorization required: {e.original_error!r}",
                extra={
                    "event": ORPHANED_TOKENS_EVENT,
                    "planner_email": planner_email,
                    "user_email": user_email,
                    "invite_id": invite_id or state.invite_id,
                },
            )
            raise TokenPersistenceError(
                "Authorization succeeded but the connection could not be saved",
                original_error=e,
            ) from e

        invite_consumed = False
        if invite_id:
            try:
                invite_consumed = await mark_invite_used(session, invite_id)
            except PersistenceError as e:
                # The connection is already committed; the invite stays pending
                logger.error(f"Could not mark invite {invite_id} used: {e.original_error!r}")

        logger.info(f"OAuth completed for {user_email} (planner {planner_email})")
        return CallbackOutcome(
            planner_email=connection.planner_email,
            user_email=connection.user_email,
            invite_id=invite_id,
            invite_consumed=invite_consumed,
            status=connection.status,
        )

    async def _resolve_identity(
        self,
        session: AsyncSession,
        state: OAuthState,
        tokens: OAuthTokens,
    ) -> tuple[str, str, Optional[str]]:
        """
        Determine the (planner, user) pair for this authorization.

        Precedence: invite row > emails in state > Google userinfo (user only).
        """
        planner_email = normalize_email(state.planner_email) or None
        user_email = normalize_email(state.user_email) or None
        invite_id = None

        if state.invite_id:
            invite = await get_invite_by_id(session, state.invite_id)
            if invite:
                invite_id = str(invite.id)
                planner_email = normalize_email(invite.planner_email)
                user_email = normalize_email(invite.user_email)
            else:
                logger.warning(f"OAuth state referenced unknown invite {state.invite_id}")

        if not user_email:
            try:
                user_info = await self._flow.get_user_info(tokens.access_token)
                user_email = normalize_email(user_info.email)
            except Plan2TasksError as e:
                logger.warning(f"Could not look up Google account email: {e.message}")

        if not planner_email or not is_plausible_email(user_email):
            logger.warning(
                f"OAuth callback could not resolve planner/user "
                f"(planner={planner_email}, user={user_email}); tokens discarded"
            )
            raise UnresolvedConnectionError("Could not determine the planner/user for this authorization")

        return planner_email, user_email, invite_id
