"""
Authentication module for Plan2Tasks.

Provides the Google OAuth 2.0 flow, the credential store, token refresh
and the access token resolver used by task delivery. The callback handler
lives in plan2tasks.auth.callback (it depends on the invite service).
"""

from plan2tasks.auth.google_oauth import (
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    TASKS_SCOPES,
    GoogleOAuthFlow,
    GoogleUserInfo,
    OAuthTokens,
)
from plan2tasks.auth.refresh import RefreshedToken, RefreshResult, TokenRefreshService
from plan2tasks.auth.resolver import AccessTokenResolver
from plan2tasks.auth.state import OAuthState, StateCodec

__all__ = [
    # OAuth flow
    "GoogleOAuthFlow",
    "OAuthTokens",
    "GoogleUserInfo",
    "GOOGLE_AUTH_URL",
    "GOOGLE_TOKEN_URL",
    "GOOGLE_USERINFO_URL",
    "TASKS_SCOPES",
    # State
    "OAuthState",
    "StateCodec",
    # Refresh
    "TokenRefreshService",
    "RefreshedToken",
    "RefreshResult",
    "AccessTokenResolver",
]
