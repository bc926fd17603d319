"""
Connection model.

Stores one Google OAuth connection per (planner, user) pair together
with its life-cycle status.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from plan2tasks.models.base import BaseModel, as_utc, utcnow

STATUS_INVITED = "invited"
STATUS_CONNECTED = "connected"
STATUS_ARCHIVED = "archived"
STATUS_DELETED = "deleted"

CONNECTION_STATUSES = (STATUS_INVITED, STATUS_CONNECTED, STATUS_ARCHIVED, STATUS_DELETED)


class Connection(BaseModel):
    """
    OAuth credential and status record for a (planner, user) pair.

    Attributes:
        planner_email: Planner who manages this user
        user_email: Connected user whose Google Tasks receive plans
        provider: OAuth provider (always 'google')
        access_token: Short-lived access token (untrusted past token_expiry)
        refresh_token: Long-lived refresh token
        scope: Granted scopes (space-separated)
        token_type: Token type reported by Google (usually 'Bearer')
        token_expiry: Absolute instant the access token expires
        status: 'invited', 'connected', 'archived' or 'deleted'
    """

    __tablename__ = "user_connections"

    planner_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        doc="Planner email (normalized lowercase)"
    )

    user_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        index=True,
        doc="Connected user email (normalized lowercase)"
    )

    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="google",
        doc="OAuth provider (google)"
    )

    access_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth access token"
    )

    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth refresh token (for obtaining new access tokens)"
    )

    scope: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth scopes granted (space-separated)"
    )

    token_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Token type (Bearer)"
    )

    token_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the access token expires"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STATUS_INVITED,
        doc="Status: 'invited', 'connected', 'archived', 'deleted'"
    )

    __table_args__ = (
        Index("ix_user_connections_planner_user", "planner_email", "user_email", unique=True),
        Index("ix_user_connections_status", "status"),
    )

    @property
    def expires_at(self) -> Optional[datetime]:
        """Token expiry as an aware UTC datetime."""
        return as_utc(self.token_expiry)

    @property
    def expiry_epoch(self) -> Optional[int]:
        """Token expiry in epoch seconds."""
        expires_at = self.expires_at
        return int(expires_at.timestamp()) if expires_at else None

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the access token is expired."""
        expires_at = self.expires_at
        if expires_at is None:
            return True
        return (now or utcnow()) >= expires_at

    def needs_refresh(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        """
        Check if the cached access token is unusable.

        A token is usable only if present and expiring more than
        ``margin`` from now.
        """
        expires_at = self.expires_at
        if not self.access_token or expires_at is None:
            return True
        return (now or utcnow()) + margin >= expires_at

    def __repr__(self) -> str:
        # Never include token values
        return (
            f"<Connection(planner_email={self.planner_email}, "
            f"user_email={self.user_email}, status={self.status})>"
        )
