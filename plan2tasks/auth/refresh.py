"""
Token refresh service.

Redeems a stored refresh token for a fresh access token and writes the
result back to the credential store. A dry run performs the real exchange
(so it validates the refresh token) but skips the write.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.connection_store import get_latest_connection, update_refreshed_tokens
from plan2tasks.auth.google_oauth import GoogleOAuthFlow
from plan2tasks.exceptions import NotConnectedError, ProviderRejectedError
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import Connection
from plan2tasks.validation import require_email

logger = logging.getLogger(__name__)


@dataclass
class RefreshedToken:
    """A freshly minted access token."""

    access_token: str = field(repr=False)
    token_type: str
    scope: Optional[str]
    expiry: datetime

    @property
    def expiry_epoch(self) -> int:
        return int(self.expiry.timestamp())

    @property
    def expiry_iso(self) -> str:
        return self.expiry.isoformat()


@dataclass
class RefreshResult:
    """Outcome of refresh_and_persist. Serializes without any token values."""

    user_email: str
    dry_run: bool
    token: RefreshedToken
    rows_updated: int = 0

    def to_dict(self) -> dict:
        metadata = {
            "google_token_type": self.token.token_type,
            "google_scope": self.token.scope,
            "google_token_expiry": self.token.expiry_epoch,
            "google_expires_at": self.token.expiry_iso,
        }
        key = "wouldUpdate" if self.dry_run else "updated"
        return {
            "ok": True,
            "dryRun": self.dry_run,
            "userEmail": self.user_email,
            key: metadata,
        }


class TokenRefreshService:
    """
    Refreshes access tokens.

    Usage:
        service = TokenRefreshService(flow)
        token = await service.refresh(refresh_token)
        result = await service.refresh_and_persist(session, "user@example.com", dry_run=True)
    """

    def __init__(self, flow: GoogleOAuthFlow, clock: Callable[[], datetime] = utcnow):
        self._flow = flow
        self._clock = clock

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        """
        Redeem a refresh token.

        Raises:
            NotConnectedError: If no refresh token is given
            ProviderRejectedError: If Google rejects it (invalid_grant when revoked)
            ProviderUnavailableError: If Google cannot be reached
        """
        if not refresh_token:
            raise NotConnectedError("No refresh token stored; the user must re-authorize")

        tokens = await self._flow.refresh_token(refresh_token)
        return RefreshedToken(
            access_token=tokens.access_token,
            token_type=tokens.token_type or "Bearer",
            scope=tokens.scope or None,
            expiry=tokens.expiry(self._clock()),
        )

    async def refresh_connection(
        self,
        session: AsyncSession,
        connection: Connection,
        dry_run: bool = False,
    ) -> RefreshResult:
        """
        Refresh one stored connection.

        Falls back to the stored token type and scope when Google omits them.
        """
        user_email = connection.user_email
        refresh_token = connection.refresh_token
        if not refresh_token:
            raise NotConnectedError(f"No refresh token stored for {user_email}; the user must re-authorize")

        try:
            token = await self.refresh(refresh_token)
        except ProviderRejectedError as e:
            if e.is_invalid_grant:
                logger.warning(f"Refresh token for {user_email} was revoked or expired (invalid_grant)")
            raise

        token.token_type = token.token_type or connection.token_type or "Bearer"
        token.scope = token.scope or connection.scope

        if dry_run:
            logger.info(f"Dry-run refresh for {user_email} succeeded; nothing written")
            return RefreshResult(user_email=user_email, dry_run=True, token=token)

        rows = await update_refreshed_tokens(
            session,
            user_email=user_email,
            refresh_token=refresh_token,
            access_token=token.access_token,
            token_type=token.token_type,
            scope=token.scope,
            token_expiry=token.expiry,
        )
        logger.info(f"Refreshed access token for {user_email} ({rows} row(s) updated)")
        return RefreshResult(user_email=user_email, dry_run=False, token=token, rows_updated=rows)

    async def refresh_and_persist(
        self,
        session: AsyncSession,
        user_email: str,
        dry_run: bool = False,
    ) -> RefreshResult:
        """
        Refresh the most recently updated connection for a user.

        Raises:
            InputValidationError: If the email is malformed
            NotConnectedError: If the user has no connection or no refresh token
            ProviderRejectedError: If Google rejects the refresh token
            PersistenceError: If the update fails
        """
        email = require_email(user_email, "userEmail")
        connection = await get_latest_connection(session, email)
        if connection is None:
            raise NotConnectedError(f"No connection found for {email}")

        return await self.refresh_connection(session, connection, dry_run=dry_run)
