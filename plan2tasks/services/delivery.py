"""
Task delivery service.

Pushes a plan (a dated list of items) into a connected user's Google Tasks.
Access tokens come only from the AccessTokenResolver. Bulk pushes resolve
tokens one user at a time (the session is not shared across tasks), then
deliver in parallel with bounded concurrency; each user's outcome is
independent and nothing already delivered is undone.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time as wall_time, timedelta, tzinfo
from typing import Optional

import httpx
from dateutil import tz
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.auth.resolver import AccessTokenResolver
from plan2tasks.exceptions import InputValidationError, Plan2TasksError, TaskDeliveryError
from plan2tasks.services.tasks_client import GoogleTasksClient
from plan2tasks.validation import normalize_email, require_email

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Chicago"
PUSH_MODES = ("append", "replace")

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


@dataclass
class PlanItem:
    """One task in a plan, positioned relative to the plan's start date."""

    title: str
    day_offset: int = 0
    time: Optional[str] = None  # HH:MM wall time in the plan's time zone
    duration_mins: Optional[int] = None
    notes: Optional[str] = None


@dataclass
class Plan:
    """A plan to deliver into one Google Tasks list."""

    list_title: str
    start_date: str  # YYYY-MM-DD
    items: list[PlanItem]
    timezone: str = DEFAULT_TIMEZONE
    mode: str = "append"


@dataclass
class PushResult:
    """Outcome of delivering a plan to one user."""

    user_email: str
    ok: bool
    list_title: Optional[str] = None
    list_id: Optional[str] = None
    created: int = 0
    cleared: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.ok:
            return {
                "userEmail": self.user_email,
                "ok": False,
                "error": self.error,
                "error_type": self.error_type,
            }
        return {
            "userEmail": self.user_email,
            "ok": True,
            "listTitle": self.list_title,
            "listId": self.list_id,
            "created": self.created,
            "cleared": self.cleared,
        }


@dataclass
class BulkPushResult:
    results: list[PushResult] = field(default_factory=list)

    @property
    def ok_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def total(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "okCount": self.ok_count,
            "total": self.total,
            "results": [r.to_dict() for r in self.results],
        }


def parse_start_date(value: str) -> date:
    try:
        return date.fromisoformat((value or "").strip())
    except ValueError as e:
        raise InputValidationError(f"Invalid startDate (expected YYYY-MM-DD): {value}") from e


def resolve_timezone(name: str) -> tzinfo:
    zone = tz.gettz(name or DEFAULT_TIMEZONE)
    if zone is None:
        raise InputValidationError(f"Unknown timezone: {name}")
    return zone


def compute_due(start: date, item: PlanItem, zone) -> str:
    """
    Compute an item's due instant as a UTC RFC 3339 string.

    Date-only items are due at midnight UTC of their day (Google Tasks
    stores only the date part). Timed items are interpreted as wall time
    in ``zone``.
    """
    day = start + timedelta(days=int(item.day_offset or 0))
    if not item.time:
        return f"{day.isoformat()}T00:00:00.000Z"

    match = _TIME_RE.match(item.time.strip())
    if not match:
        raise InputValidationError(f"Invalid time (expected HH:MM): {item.time}")

    local = datetime.combine(day, wall_time(int(match.group(1)), int(match.group(2))), tzinfo=zone)
    due = local.astimezone(tz.UTC)
    return due.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def build_task_body(start: date, item: PlanItem, zone) -> dict:
    notes = (item.notes or "").strip()
    if item.duration_mins:
        duration = f"Duration: {int(item.duration_mins)} min"
        notes = f"{notes}\n{duration}" if notes else duration

    body = {
        "title": (item.title or "").strip() or "Untitled",
        "due": compute_due(start, item, zone),
        "status": "needsAction",
    }
    if notes:
        body["notes"] = notes
    return body


def validate_plan(plan: Plan) -> tuple[date, tzinfo]:
    """
    Check a plan before any provider call.

    Returns:
        (start date, time zone)
    """
    if not (plan.list_title or "").strip():
        raise InputValidationError("Missing listTitle")
    if not plan.items:
        raise InputValidationError("Missing items (array)")
    if plan.mode not in PUSH_MODES:
        raise InputValidationError(f"Invalid mode: {plan.mode}")

    start = parse_start_date(plan.start_date)
    zone = resolve_timezone(plan.timezone)
    for item in plan.items:
        if item.time:
            compute_due(start, item, zone)
    return start, zone


class TaskDeliveryService:
    """
    Delivers plans to Google Tasks.

    Usage:
        service = TaskDeliveryService(resolver, http_client)
        result = await service.push_plan(session, planner, user, plan)
    """

    def __init__(
        self,
        resolver: AccessTokenResolver,
        http_client: httpx.AsyncClient,
        max_concurrency: int = 4,
        timeout: float = 10.0,
    ):
        self._resolver = resolver
        self._http = http_client
        self._max_concurrency = max(1, max_concurrency)
        self._timeout = timeout

    async def push_plan(
        self,
        session: AsyncSession,
        planner_email: Optional[str],
        user_email: str,
        plan: Plan,
    ) -> PushResult:
        """
        Deliver a plan to one user.

        Raises:
            InputValidationError: Bad plan or email
            NotConnectedError: User has no usable connection
            ProviderRejectedError / ProviderUnavailableError: Token refresh failed
            TaskDeliveryError: Google Tasks rejected a call
        """
        start, zone = validate_plan(plan)
        user = require_email(user_email, "userEmail")

        token = await self._resolver.get_valid_access_token(session, user, planner_email=planner_email or None)
        return await self._deliver(user, token, plan, start, zone)

    async def push_bulk(
        self,
        session: AsyncSession,
        planner_email: Optional[str],
        user_emails: list[str],
        plan: Plan,
    ) -> BulkPushResult:
        """
        Deliver the same plan to many users.

        Errors are reported per user; a plan that fails validation fails
        the whole batch before any delivery.
        """
        start, zone = validate_plan(plan)

        emails: list[str] = []
        for raw in user_emails:
            email = normalize_email(raw)
            if email and email not in emails:
                emails.append(email)
        if not emails:
            raise InputValidationError("Missing userEmails")

        results: dict[str, PushResult] = {}
        tokens: dict[str, str] = {}
        for email in emails:
            try:
                require_email(email, "userEmail")
                tokens[email] = await self._resolver.get_valid_access_token(
                    session, email, planner_email=planner_email or None
                )
            except Plan2TasksError as e:
                logger.warning(f"Bulk push: no token for {email}: {e.message}")
                results[email] = PushResult(user_email=email, ok=False, error=e.message, error_type=e.error_code)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def deliver_one(email: str) -> PushResult:
            async with semaphore:
                try:
                    return await self._deliver(email, tokens[email], plan, start, zone)
                except Plan2TasksError as e:
                    logger.warning(f"Bulk push to {email} failed: {e.message}")
                    return PushResult(user_email=email, ok=False, error=e.message, error_type=e.error_code)

        delivered = await asyncio.gather(*(deliver_one(email) for email in tokens))
        for result in delivered:
            results[result.user_email] = result

        bulk = BulkPushResult(results=[results[email] for email in emails])
        logger.info(f"Bulk push finished: {bulk.ok_count}/{bulk.total} succeeded")
        return bulk

    async def _deliver(self, user_email: str, access_token: str, plan: Plan, start: date, zone) -> PushResult:
        client = GoogleTasksClient(self._http, access_token, timeout=self._timeout)

        task_list = await client.ensure_task_list(plan.list_title)
        list_id = task_list.get("id")
        if not list_id:
            raise TaskDeliveryError("Task list response had no id")

        cleared = 0
        if plan.mode == "replace":
            cleared = await client.clear_task_list(list_id)

        created = 0
        for item in plan.items:
            await client.insert_task(list_id, build_task_body(start, item, zone))
            created += 1

        logger.info(f"Pushed {created} task(s) to '{plan.list_title}' for {user_email}")
        return PushResult(
            user_email=user_email,
            ok=True,
            list_title=task_list.get("title", plan.list_title),
            list_id=list_id,
            created=created,
            cleared=cleared,
        )
