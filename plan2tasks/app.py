"""
ASGI entry point for the Plan2Tasks API.

Builds the app from environment settings; serve with
``uvicorn plan2tasks.app:app``.
"""

from plan2tasks.api.main import create_app

app = create_app()

__all__ = ["app"]
