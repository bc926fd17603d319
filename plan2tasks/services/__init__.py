"""
Service layer for Plan2Tasks.

Provides business logic for:
- Invites (create/reuse, accept, status, removal)
- Connection life cycle (archive, soft delete, purge, diagnostics)
- Task delivery to Google Tasks (single and bulk push)
"""

from plan2tasks.services.invites import (
    AcceptedInvite,
    InviteStatus,
    accept_invite,
    create_or_reuse_invite,
    get_invite_by_emails,
    get_invite_by_id,
    get_invite_status,
    get_pending_invite_for_user,
    mark_invite_used,
    remove_pending_invites,
)
from plan2tasks.services.connections import (
    archive_user,
    describe_connection,
    get_connection_status,
    purge_user,
    remove_user,
)
from plan2tasks.services.delivery import (
    BulkPushResult,
    Plan,
    PlanItem,
    PushResult,
    TaskDeliveryService,
)
from plan2tasks.services.tasks_client import GoogleTasksClient

__all__ = [
    # Invites
    "AcceptedInvite",
    "InviteStatus",
    "accept_invite",
    "create_or_reuse_invite",
    "get_invite_by_emails",
    "get_invite_by_id",
    "get_invite_status",
    "get_pending_invite_for_user",
    "mark_invite_used",
    "remove_pending_invites",
    # Connections
    "archive_user",
    "describe_connection",
    "get_connection_status",
    "purge_user",
    "remove_user",
    # Delivery
    "BulkPushResult",
    "Plan",
    "PlanItem",
    "PushResult",
    "TaskDeliveryService",
    "GoogleTasksClient",
]
