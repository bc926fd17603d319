"""
Integration test fixtures for Plan2Tasks.

Wires the real OAuth flow, refresh service, resolver and callback handler
together over the fake Google transport and an in-memory database.
"""

from dataclasses import dataclass

import pytest

from plan2tasks.auth.callback import OAuthCallbackHandler
from plan2tasks.auth.google_oauth import GoogleOAuthFlow
from plan2tasks.auth.refresh import TokenRefreshService
from plan2tasks.auth.resolver import AccessTokenResolver
from plan2tasks.services.delivery import TaskDeliveryService


# =============================================================================
# Pytest Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


@dataclass
class OAuthStack:
    flow: GoogleOAuthFlow
    callback: OAuthCallbackHandler
    refresh: TokenRefreshService
    resolver: AccessTokenResolver
    delivery: TaskDeliveryService


@pytest.fixture
def stack(settings, http_client) -> OAuthStack:
    """Every component built the way the API dependencies build them."""
    flow = GoogleOAuthFlow(settings, http_client)
    refresh = TokenRefreshService(flow)
    resolver = AccessTokenResolver(refresh)
    return OAuthStack(
        flow=flow,
        callback=OAuthCallbackHandler(flow),
        refresh=refresh,
        resolver=resolver,
        delivery=TaskDeliveryService(resolver, http_client),
    )
