"""
SQLAlchemy models for Plan2Tasks.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

from plan2tasks.models.base import Base, BaseModel, GUID, as_utc, utcnow
from plan2tasks.models.connections import (
    CONNECTION_STATUSES,
    STATUS_ARCHIVED,
    STATUS_CONNECTED,
    STATUS_DELETED,
    STATUS_INVITED,
    Connection,
)
from plan2tasks.models.invites import Invite

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "as_utc",
    "utcnow",
    # Connection model
    "Connection",
    "CONNECTION_STATUSES",
    "STATUS_INVITED",
    "STATUS_CONNECTED",
    "STATUS_ARCHIVED",
    "STATUS_DELETED",
    # Invite model
    "Invite",
]
