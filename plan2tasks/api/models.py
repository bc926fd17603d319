"""
Pydantic request and response models for the Plan2Tasks API.

Request bodies use camelCase field names on the wire. Emails are left as
plain strings; the service layer normalizes and validates them so every
malformed email is reported the same way (400, invalid_request).
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from plan2tasks.services.delivery import DEFAULT_TIMEZONE, Plan, PlanItem


class CamelModel(BaseModel):
    """Base model accepting camelCase (and snake_case) field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Request Models
# =============================================================================


class PairRequest(CamelModel):
    """A (planner, user) pair."""

    planner_email: Optional[str] = Field(None, description="Planner email")
    user_email: Optional[str] = Field(None, description="Connected user email")


class CreateInviteRequest(PairRequest):
    """Create or reuse an invite for a pair."""


class RemoveInviteRequest(PairRequest):
    """Remove pending invites for a pair."""


class ArchiveUserRequest(PairRequest):
    """Archive (true) or restore (false) a user."""

    archived: bool = Field(True, description="Archive when true, restore when false")


class PlanItemModel(CamelModel):
    """One task in a plan."""

    title: str = Field("", max_length=1024)
    day_offset: int = Field(0, ge=0, le=3660, description="Days after startDate")
    time: Optional[str] = Field(None, description="Wall time HH:MM in the plan's time zone")
    duration_mins: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None

    def to_item(self) -> PlanItem:
        return PlanItem(
            title=self.title,
            day_offset=self.day_offset,
            time=self.time,
            duration_mins=self.duration_mins,
            notes=self.notes,
        )


class PlanRequest(CamelModel):
    """Plan fields shared by single and bulk push."""

    planner_email: Optional[str] = None
    list_title: Optional[str] = Field(None, description="Target Google Tasks list title")
    start_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    timezone: str = Field(DEFAULT_TIMEZONE, description="IANA time zone for item times")
    mode: Literal["append", "replace"] = "append"
    items: list[PlanItemModel] = Field(default_factory=list)

    def to_plan(self) -> Plan:
        return Plan(
            list_title=self.list_title or "",
            start_date=self.start_date or "",
            items=[item.to_item() for item in self.items],
            timezone=self.timezone or DEFAULT_TIMEZONE,
            mode=self.mode,
        )


class PushRequest(PlanRequest):
    """Deliver a plan to one user."""

    user_email: Optional[str] = None


class BulkPushRequest(PlanRequest):
    """Deliver a plan to many users."""

    user_emails: list[str] = Field(default_factory=list)


# =============================================================================
# Response Models
# =============================================================================


class InviteResponse(BaseModel):
    """Invite created or reused."""

    ok: bool = True
    invite_id: str = Field(..., serialization_alias="inviteId")
    planner_email: str = Field(..., serialization_alias="plannerEmail")
    user_email: str = Field(..., serialization_alias="userEmail")
    invite_url: str = Field(..., serialization_alias="inviteUrl")
    start_url: str = Field(..., serialization_alias="startUrl")


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    version: str
    database_connected: bool
    google_oauth_configured: bool


class ErrorResponse(BaseModel):
    """Error envelope returned by every JSON endpoint."""

    ok: bool = False
    error_type: str
    error: str
    message: str
    retryable: bool = False
