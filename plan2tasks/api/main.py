"""
FastAPI application for Plan2Tasks.

This is the main entry point for the HTTP API, providing:
- Invite endpoints (create, accept, status, remove)
- Google OAuth start and callback
- Connection refresh, diagnostics and user life cycle
- Task delivery (single and bulk push)
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from plan2tasks import __version__
from plan2tasks.api.auth_routes import router as auth_router
from plan2tasks.api.connection_routes import router as connections_router
from plan2tasks.api.connection_routes import users_router
from plan2tasks.api.invite_routes import router as invite_router
from plan2tasks.api.middleware import RequestLoggingMiddleware, get_request_id
from plan2tasks.api.models import HealthResponse
from plan2tasks.api.push_routes import router as push_router
from plan2tasks.config import Settings, configure_logging, get_settings
from plan2tasks.database import Database
from plan2tasks.exceptions import Plan2TasksError, ProviderRejectedError

logger = logging.getLogger(__name__)


def error_body(exc: Plan2TasksError) -> dict:
    """Standard JSON error envelope. Never contains token values."""
    body = {
        "ok": False,
        "error_type": exc.error_code,
        "error": exc.message,
        "message": exc.message,
        "retryable": exc.retryable,
    }
    if isinstance(exc, ProviderRejectedError):
        body["error"] = exc.error
        body["error_description"] = exc.error_description
    return body


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (default: get_settings())
        http_client: Shared client for calls to Google (default: one owned by the app)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(settings)
        settings.validate_production_config()
        logger.info("Starting Plan2Tasks API")

        database = Database(settings.database_url)
        if settings.is_development:
            await database.create_all()

        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

        app.state.settings = settings
        app.state.database = database
        app.state.http_client = client

        if not settings.uses_google_oauth:
            logger.warning("Google OAuth is not configured; OAuth and push endpoints will fail")
        logger.info("Plan2Tasks API started")

        yield

        logger.info("Shutting down Plan2Tasks API")
        if owns_client:
            await client.aclose()
        await database.dispose()

    app = FastAPI(
        title="Plan2Tasks API",
        description="Invite users, connect their Google Tasks via OAuth, and push plans to them.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(auth_router)
    app.include_router(invite_router)
    app.include_router(connections_router)
    app.include_router(users_router)
    app.include_router(push_router)

    @app.exception_handler(Plan2TasksError)
    async def plan2tasks_exception_handler(request: Request, exc: Plan2TasksError):
        """Map domain errors to the JSON error envelope."""
        if exc.status_code >= 500:
            logger.error(f"[{get_request_id()}] {exc.error_code} on {request.url.path}: {exc.message}")
        else:
            logger.info(f"[{get_request_id()}] {exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle malformed request bodies with the same envelope."""
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in errors
        ) or "Invalid request"
        return JSONResponse(
            status_code=400,
            content={
                "ok": False,
                "error_type": "invalid_request",
                "error": message,
                "message": message,
                "retryable": False,
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "ok": False,
                "error_type": "http_error",
                "error": str(exc.detail),
                "message": str(exc.detail),
                "retryable": exc.status_code >= 500,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"[{get_request_id()}] Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error_type": "internal_error",
                "error": "internal_error",
                "message": "An unexpected error occurred",
                "retryable": True,
            },
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health check",
        tags=["System"],
    )
    async def health_check(request: Request) -> HealthResponse:
        """Check API health, including the database connection."""
        database_connected = await request.app.state.database.check_connection()
        return HealthResponse(
            status="healthy" if database_connected else "unhealthy",
            version=__version__,
            database_connected=database_connected,
            google_oauth_configured=settings.uses_google_oauth,
        )

    return app


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "plan2tasks.app:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    settings = get_settings()
    run_server(host=settings.api_host, port=settings.api_port, reload=settings.api_reload)
