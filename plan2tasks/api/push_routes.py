"""
Task delivery API routes.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.api.dependencies import get_delivery_service, get_session
from plan2tasks.api.models import BulkPushRequest, ErrorResponse, PushRequest
from plan2tasks.services.delivery import TaskDeliveryService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["push"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid plan or provider rejected the refresh"},
        404: {"model": ErrorResponse, "description": "User is not connected"},
        502: {"model": ErrorResponse, "description": "Google unreachable or Tasks API failure"},
    },
)


@router.post("/push")
async def push(
    body: PushRequest,
    session: AsyncSession = Depends(get_session),
    service: TaskDeliveryService = Depends(get_delivery_service),
) -> dict:
    """
    Deliver a plan to one user's Google Tasks.

    Errors (not connected, refresh rejected, Tasks API failure) come back
    in the standard error envelope.
    """
    result = await service.push_plan(session, body.planner_email, body.user_email, body.to_plan())
    return {"ok": True, **result.to_dict()}


@router.post("/push-bulk")
async def push_bulk(
    body: BulkPushRequest,
    session: AsyncSession = Depends(get_session),
    service: TaskDeliveryService = Depends(get_delivery_service),
) -> dict:
    """
    Deliver a plan to many users.

    Always 200 once the plan is valid; see okCount and the per-user results.
    """
    result = await service.push_bulk(session, body.planner_email, body.user_emails, body.to_plan())
    return result.to_dict()
