"""
Plan2Tasks API module.

Provides FastAPI HTTP endpoints for invites, OAuth and task delivery.
"""

from plan2tasks.api.main import create_app, run_server

__all__ = ["create_app", "run_server"]
