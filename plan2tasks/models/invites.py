"""
Invite model.

An invite binds a planner to a user before any OAuth handshake happens.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from plan2tasks.models.base import BaseModel


class Invite(BaseModel):
    """
    One invitation attempt.

    Immutable except for ``used_at``, which goes from NULL to a timestamp
    exactly once. At most one pending (unused) invite exists per pair.
    """

    __tablename__ = "invites"

    planner_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        doc="Planner email (normalized lowercase)"
    )

    user_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        index=True,
        doc="Invited user email (normalized lowercase)"
    )

    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        doc="When the invite was consumed (NULL while pending)"
    )

    __table_args__ = (
        Index("ix_invites_planner_user", "planner_email", "user_email"),
        Index(
            "uq_invites_pending_pair",
            "planner_email",
            "user_email",
            unique=True,
            sqlite_where=text("used_at IS NULL"),
            postgresql_where=text("used_at IS NULL"),
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.used_at is None

    @property
    def status(self) -> str:
        """'pending' or 'used'."""
        return "pending" if self.is_pending else "used"

    def __repr__(self) -> str:
        return (
            f"<Invite(id={self.id}, planner_email={self.planner_email}, "
            f"user_email={self.user_email}, status={self.status})>"
        )
