"""
Access token resolver.

The only path by which task delivery obtains an access token. Every call
re-reads the store; an expired or nearly expired token is refreshed
synchronously before it is returned.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.connection_store import get_connection, get_latest_connection
from plan2tasks.auth.refresh import TokenRefreshService
from plan2tasks.exceptions import NotConnectedError
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import STATUS_CONNECTED
from plan2tasks.validation import require_email

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = timedelta(seconds=60)


class AccessTokenResolver:
    """
    Returns a currently valid access token for a connected user.

    Usage:
        resolver = AccessTokenResolver(refresh_service)
        token = await resolver.get_valid_access_token(session, "user@example.com")
    """

    def __init__(
        self,
        refresh_service: TokenRefreshService,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._refresh_service = refresh_service
        self._safety_margin = safety_margin
        self._clock = clock

    async def get_valid_access_token(
        self,
        session: AsyncSession,
        user_email: str,
        planner_email: Optional[str] = None,
    ) -> str:
        """
        Get a valid access token, refreshing if necessary.

        Args:
            session: Database session
            user_email: The connected user
            planner_email: Restrict to this planner's connection

        Returns:
            Access token valid for at least the safety margin

        Raises:
            NotConnectedError: No connected row, or no refresh token to renew with
            ProviderRejectedError: Google rejected the refresh token
            ProviderUnavailableError: Google could not be reached
            PersistenceError: The refreshed token could not be stored
        """
        email = require_email(user_email, "userEmail")

        if planner_email:
            planner = require_email(planner_email, "plannerEmail")
            connection = await get_connection(session, planner, email)
            if connection is not None and connection.status != STATUS_CONNECTED:
                connection = None
        else:
            connection = await get_latest_connection(session, email, statuses=[STATUS_CONNECTED])

        if connection is None:
            raise NotConnectedError(f"{email} is not connected to Google Tasks")

        if not connection.needs_refresh(self._safety_margin, now=self._clock()):
            return connection.access_token

        if not connection.refresh_token:
            logger.warning(f"Token expired and no refresh token for {email}")
            raise NotConnectedError(f"Missing refresh token for {email}; the user must re-authorize")

        result = await self._refresh_service.refresh_connection(session, connection)
        return result.token.access_token
