"""
Google OAuth 2.0 implementation for Google Tasks access.

Implements the OAuth 2.0 authorization code flow:
1. Generate authorization URL → user redirected to Google
2. User grants permission → Google redirects back with code
3. Exchange code for tokens → access_token + refresh_token
4. Use access_token to call the Tasks API
5. Refresh access_token when expired using refresh_token

Token endpoint calls are never retried here; callers may re-invoke.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx

from plan2tasks.auth.state import OAuthState, StateCodec
from plan2tasks.config import Settings
from plan2tasks.exceptions import ProviderRejectedError, ProviderUnavailableError
from plan2tasks.models.base import utcnow
from plan2tasks.validation import require_email

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Tasks delivery needs the tasks scope; email identifies the user
TASKS_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/tasks",
]

DEFAULT_EXPIRES_IN = 3600


@dataclass
class OAuthTokens:
    """OAuth token response from Google."""

    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_in: int = DEFAULT_EXPIRES_IN
    token_type: str = "Bearer"
    scope: str = ""

    def expiry(self, now: Optional[datetime] = None) -> datetime:
        """Absolute expiry instant computed from expires_in."""
        return (now or utcnow()) + timedelta(seconds=self.expires_in)


@dataclass
class GoogleUserInfo:
    """User info from Google OAuth."""

    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


def _parse_expires_in(value, default: int) -> int:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return default
    return seconds if seconds > 0 else default


class GoogleOAuthFlow:
    """
    Manages the Google OAuth 2.0 flow.

    Usage:
        flow = GoogleOAuthFlow(settings, http_client)

        # Step 1: Get authorization URL
        auth_url = flow.build_authorization_url("user@example.com", invite_id=invite_id)
        # Redirect user to auth_url

        # Step 2: Handle callback with authorization code
        tokens = await flow.exchange_code(code)

        # Step 3: Refresh token when expired
        new_tokens = await flow.refresh_token(stored_refresh_token)
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        state_codec: Optional[StateCodec] = None,
    ):
        settings.validate_google_oauth_config()

        self.client_id = settings.google_oauth_client_id
        self.client_secret = settings.google_oauth_client_secret
        self.redirect_uri = settings.google_oauth_redirect_uri
        self.default_expires_in = settings.default_token_lifetime_seconds
        self.timeout = settings.http_timeout_seconds
        self.state_codec = state_codec or StateCodec(settings.state_signing_key)
        self._http = http_client

    def build_authorization_url(
        self,
        user_email: str,
        invite_id: Optional[str] = None,
        planner_email: Optional[str] = None,
    ) -> str:
        """
        Generate the Google OAuth authorization URL.

        Args:
            user_email: User who will grant access
            invite_id: Invite being redeemed, if any
            planner_email: Planner the user connects to, if known

        Returns:
            URL to redirect user to for authorization

        Raises:
            InputValidationError: If user_email is not a plausible email
        """
        email = require_email(user_email, "userEmail")
        state = self.state_codec.encode(
            OAuthState(
                user_email=email,
                planner_email=require_email(planner_email, "plannerEmail") if planner_email else None,
                invite_id=str(invite_id) if invite_id else None,
            )
        )

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(TASKS_SCOPES),
            "access_type": "offline",  # Get refresh token
            "include_granted_scopes": "true",
            "prompt": "consent",  # Always show consent screen (ensures refresh token)
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _post_token(self, data: dict, action: str) -> dict:
        """POST to the token endpoint and return the JSON body."""
        try:
            response = await self._http.post(GOOGLE_TOKEN_URL, data=data, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"Google token endpoint timed out ({action})", original_error=e) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(f"Google token endpoint unreachable ({action})", original_error=e) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200 or body.get("error"):
            error = body.get("error") or f"http_{response.status_code}"
            description = body.get("error_description")
            logger.warning(f"Google rejected {action}: {error} ({description})")
            raise ProviderRejectedError(error, description, http_status=response.status_code)

        if not body.get("access_token"):
            raise ProviderRejectedError(
                "invalid_response",
                "Token response did not include an access_token",
                http_status=response.status_code,
            )
        return body

    def _tokens_from(self, body: dict, refresh_token: Optional[str] = None) -> OAuthTokens:
        return OAuthTokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or refresh_token,
            expires_in=_parse_expires_in(body.get("expires_in"), self.default_expires_in),
            token_type=body.get("token_type") or "Bearer",
            scope=body.get("scope") or "",
        )

    async def exchange_code(self, code: str) -> OAuthTokens:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            code: Authorization code from OAuth callback

        Returns:
            OAuthTokens (refresh_token may be None on repeat consent)

        Raises:
            ProviderRejectedError: Google returned an error
            ProviderUnavailableError: Google could not be reached
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        body = await self._post_token(data, "code exchange")
        logger.info("Successfully exchanged authorization code for tokens")
        return self._tokens_from(body)

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """
        Refresh an expired access token.

        Args:
            refresh_token: The refresh token from initial authorization

        Returns:
            New OAuthTokens with fresh access_token

        Raises:
            ProviderRejectedError: Google returned an error (invalid_grant when revoked)
            ProviderUnavailableError: Google could not be reached
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        body = await self._post_token(data, "token refresh")
        logger.info("Successfully refreshed access token")
        return self._tokens_from(body, refresh_token=refresh_token)

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        """
        Get user info from Google using access token.

        Raises:
            ProviderRejectedError: If Google rejects the token
            ProviderUnavailableError: Google could not be reached
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await self._http.get(GOOGLE_USERINFO_URL, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise ProviderUnavailableError("Google userinfo endpoint unreachable", original_error=e) from e

        if response.status_code != 200:
            raise ProviderRejectedError("userinfo_failed", http_status=response.status_code)

        try:
            user_data = response.json()
        except ValueError:
            user_data = {}
        if not isinstance(user_data, dict) or not user_data.get("email"):
            raise ProviderRejectedError("userinfo_failed", "Userinfo response had no email")

        return GoogleUserInfo(
            email=user_data["email"],
            name=user_data.get("name"),
            picture=user_data.get("picture"),
        )
