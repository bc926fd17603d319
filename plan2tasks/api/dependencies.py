"""
FastAPI dependency injection providers.

The app lifespan creates one Database and one httpx.AsyncClient and keeps
them on ``app.state``; everything here is built per request from those.
"""

import logging
from datetime import timedelta
from typing import AsyncGenerator

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.callback import OAuthCallbackHandler
from plan2tasks.auth.google_oauth import GoogleOAuthFlow
from plan2tasks.auth.refresh import TokenRefreshService
from plan2tasks.auth.resolver import AccessTokenResolver
from plan2tasks.config import Settings
from plan2tasks.database import Database
from plan2tasks.services.delivery import TaskDeliveryService

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


async def get_session(
    database: Database = Depends(get_database),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection for database session.

    Yields a session that is committed (or rolled back) when the request ends.
    """
    async with database.session() as session:
        yield session


def get_oauth_flow(
    settings: Settings = Depends(get_app_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> GoogleOAuthFlow:
    """
    OAuth flow for the configured Google client.

    Raises:
        ConfigurationError: If any GOOGLE_OAUTH_* setting is missing
    """
    return GoogleOAuthFlow(settings, http_client)


def get_refresh_service(flow: GoogleOAuthFlow = Depends(get_oauth_flow)) -> TokenRefreshService:
    return TokenRefreshService(flow)


def get_resolver(
    refresh_service: TokenRefreshService = Depends(get_refresh_service),
    settings: Settings = Depends(get_app_settings),
) -> AccessTokenResolver:
    return AccessTokenResolver(
        refresh_service,
        safety_margin=timedelta(seconds=settings.token_refresh_margin_seconds),
    )


def get_callback_handler(flow: GoogleOAuthFlow = Depends(get_oauth_flow)) -> OAuthCallbackHandler:
    return OAuthCallbackHandler(flow)


def get_delivery_service(
    resolver: AccessTokenResolver = Depends(get_resolver),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
) -> TaskDeliveryService:
    return TaskDeliveryService(
        resolver,
        http_client,
        max_concurrency=settings.push_max_concurrency,
        timeout=settings.http_timeout_seconds,
    )
