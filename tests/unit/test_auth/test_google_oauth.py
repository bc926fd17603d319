"""
Unit tests for the Google OAuth flow.

Google is faked with httpx.MockTransport (see conftest.FakeGoogle).
"""

from urllib.parse import parse_qs, urlparse

import pytest

from plan2tasks.auth.google_oauth import GOOGLE_AUTH_URL, TASKS_SCOPES, GoogleOAuthFlow
from plan2tasks.config import Settings
from plan2tasks.exceptions import (
    ConfigurationError,
    InputValidationError,
    ProviderRejectedError,
    ProviderUnavailableError,
)


@pytest.fixture
def flow(settings, http_client) -> GoogleOAuthFlow:
    return GoogleOAuthFlow(settings, http_client)


class TestFlowConfiguration:

    def test_missing_config_fails_closed(self, http_client, monkeypatch):
        for name in ("GOOGLE_OAUTH_CLIENT_ID", "GOOGLE_OAUTH_CLIENT_SECRET", "GOOGLE_OAUTH_REDIRECT_URI"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            GoogleOAuthFlow(Settings(_env_file=None), http_client)

        assert "GOOGLE_OAUTH_REDIRECT_URI" in str(exc_info.value)


class TestAuthorizationUrl:
    """Test build_authorization_url."""

    def test_url_parameters(self, flow, settings):
        url = flow.build_authorization_url("User@Example.com", invite_id="inv-1", planner_email="planner@example.com")

        parsed = urlparse(url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        assert url.startswith(GOOGLE_AUTH_URL)
        assert params["client_id"] == "test-client-id"
        assert params["redirect_uri"] == settings.google_oauth_redirect_uri
        assert params["response_type"] == "code"
        assert params["scope"].split() == TASKS_SCOPES
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert params["include_granted_scopes"] == "true"

    def test_state_carries_context(self, flow):
        url = flow.build_authorization_url("User@Example.com", invite_id="inv-1", planner_email="planner@example.com")
        state = parse_qs(urlparse(url).query)["state"][0]

        decoded = flow.state_codec.decode(state)

        assert decoded.user_email == "user@example.com"
        assert decoded.planner_email == "planner@example.com"
        assert decoded.invite_id == "inv-1"

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "two words@example.com"])
    def test_rejects_bad_email(self, flow, email):
        with pytest.raises(InputValidationError):
            flow.build_authorization_url(email)

    def test_makes_no_network_calls(self, flow, google):
        flow.build_authorization_url("user@example.com")
        assert google.requests == []


class TestExchangeCode:

    async def test_exchange_success(self, flow, google, settings):
        google.queue_token(
            access_token="ya29.access",
            refresh_token="1//refresh",
            expires_in=1800,
            token_type="Bearer",
            scope="openid https://www.googleapis.com/auth/tasks",
        )

        tokens = await flow.exchange_code("auth-code")

        assert tokens.access_token == "ya29.access"
        assert tokens.refresh_token == "1//refresh"
        assert tokens.expires_in == 1800
        form = google.exchange_requests[0]
        assert form["code"] == "auth-code"
        assert form["redirect_uri"] == settings.google_oauth_redirect_uri
        assert form["client_secret"] == "test-client-secret"

    async def test_missing_expires_in_defaults_to_an_hour(self, flow, google):
        google.queue_token(access_token="a", refresh_token="r")

        tokens = await flow.exchange_code("auth-code")

        assert tokens.expires_in == 3600

    async def test_provider_error_is_carried_verbatim(self, flow, google):
        google.queue_token(400, error="invalid_grant", error_description="Bad Request")

        with pytest.raises(ProviderRejectedError) as exc_info:
            await flow.exchange_code("used-code")

        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.error_description == "Bad Request"
        assert exc_info.value.http_status == 400
        assert exc_info.value.retryable is False

    async def test_error_in_200_body(self, flow, google):
        google.queue_token(200, error="redirect_uri_mismatch")

        with pytest.raises(ProviderRejectedError) as exc_info:
            await flow.exchange_code("code")

        assert exc_info.value.error == "redirect_uri_mismatch"

    async def test_network_failure_is_retryable(self, flow, google):
        google.unreachable = True

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await flow.exchange_code("code")

        assert exc_info.value.retryable is True


class TestRefreshToken:

    async def test_refresh_keeps_original_refresh_token(self, flow, google):
        google.queue_token(access_token="new-access", expires_in=3599)

        tokens = await flow.refresh_token("1//stored")

        assert tokens.access_token == "new-access"
        assert tokens.refresh_token == "1//stored"
        assert google.refresh_requests[0]["refresh_token"] == "1//stored"

    async def test_invalid_grant(self, flow, google):
        google.queue_token(400, error="invalid_grant", error_description="Token has been expired or revoked.")

        with pytest.raises(ProviderRejectedError) as exc_info:
            await flow.refresh_token("1//revoked")

        assert exc_info.value.is_invalid_grant is True


class TestUserInfo:

    async def test_user_info(self, flow, google):
        google.userinfo_email = "person@example.com"

        info = await flow.get_user_info("token")

        assert info.email == "person@example.com"

    async def test_user_info_rejected(self, flow, google):
        with pytest.raises(ProviderRejectedError):
            await flow.get_user_info("bad-token")
