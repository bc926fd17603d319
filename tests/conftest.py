"""
Pytest configuration and fixtures for Plan2Tasks tests.

Provides an in-memory database, test settings, and a fake Google
(token, userinfo and Tasks endpoints) served through httpx.MockTransport.
"""

import json
from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional
from urllib.parse import parse_qsl, unquote

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from plan2tasks.config import Settings
from plan2tasks.database import Database
from plan2tasks.models.base import utcnow
from plan2tasks.models.connections import STATUS_CONNECTED, Connection

PLANNER = "planner@example.com"
USER = "user@example.com"
REDIRECT_URI = "https://app.example.com/api/google/callback"


class FakeGoogle:
    """
    In-process stand-in for Google's OAuth and Tasks endpoints.

    Token responses are served from a queue (``queue_token``); once the
    queue is empty a successful response is generated. Task lists and
    tasks live in memory.
    """

    def __init__(self):
        self.token_queue: list[tuple[int, dict]] = []
        self.token_requests: list[dict] = []
        self.userinfo_email: Optional[str] = None
        self.userinfo_requests = 0
        self.task_lists: dict[str, dict] = {}
        self.tasks: dict[str, list[dict]] = {}
        self.tasks_page_size = 100
        self.failing_tokens: dict[str, int] = {}
        self.unreachable = False
        self.requests: list[httpx.Request] = []
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    # Token endpoint ---------------------------------------------------------

    def queue_token(self, status_code: int = 200, **body) -> None:
        self.token_queue.append((status_code, body))

    @property
    def refresh_requests(self) -> list[dict]:
        return [r for r in self.token_requests if r.get("grant_type") == "refresh_token"]

    @property
    def exchange_requests(self) -> list[dict]:
        return [r for r in self.token_requests if r.get("grant_type") == "authorization_code"]

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.token_requests.append(form)

        if self.token_queue:
            status_code, body = self.token_queue.pop(0)
            return httpx.Response(status_code, json=body)

        body = {
            "access_token": self._next_id("access"),
            "expires_in": 3600,
            "token_type": "Bearer",
            "scope": "openid https://www.googleapis.com/auth/tasks",
        }
        if form.get("grant_type") == "authorization_code":
            body["refresh_token"] = self._next_id("refresh")
        return httpx.Response(200, json=body)

    # Userinfo ---------------------------------------------------------------

    def _userinfo(self, request: httpx.Request) -> httpx.Response:
        self.userinfo_requests += 1
        if not self.userinfo_email:
            return httpx.Response(401, json={"error": "invalid_token"})
        return httpx.Response(200, json={"email": self.userinfo_email})

    # Tasks API --------------------------------------------------------------

    def all_tasks(self, title: str) -> list[dict]:
        for list_id, task_list in self.task_lists.items():
            if task_list["title"] == title:
                return self.tasks[list_id]
        return []

    def _tasks_api(self, request: httpx.Request) -> httpx.Response:
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token in self.failing_tokens:
            status_code = self.failing_tokens[token]
            return httpx.Response(status_code, json={"error": {"code": status_code, "message": "Tasks API failure"}})

        parts = unquote(request.url.path).split("/")[3:]  # after /tasks/v1
        method = request.method

        if parts[:3] == ["users", "@me", "lists"]:
            if method == "GET":
                return httpx.Response(200, json={"items": list(self.task_lists.values())})
            title = json.loads(request.content)["title"]
            list_id = self._next_id("list")
            self.task_lists[list_id] = {"id": list_id, "title": title}
            self.tasks[list_id] = []
            return httpx.Response(200, json=self.task_lists[list_id])

        if parts[0] == "lists" and len(parts) >= 3 and parts[2] == "tasks":
            list_id = parts[1]
            if list_id not in self.tasks:
                return httpx.Response(404, json={"error": {"code": 404, "message": "Task list not found"}})
            items = self.tasks[list_id]

            if len(parts) == 4 and method == "DELETE":
                self.tasks[list_id] = [t for t in items if t["id"] != parts[3]]
                return httpx.Response(204)
            if method == "GET":
                page = items[: self.tasks_page_size]
                body = {"items": page}
                if len(items) > self.tasks_page_size:
                    body["nextPageToken"] = "more"
                return httpx.Response(200, json=body)
            if method == "POST":
                task = dict(json.loads(request.content), id=self._next_id("task"))
                items.append(task)
                return httpx.Response(200, json=task)

        return httpx.Response(404, json={"error": {"code": 404, "message": "Not found"}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        host = request.url.host
        if host == "oauth2.googleapis.com" and request.url.path == "/token":
            return self._token(request)
        if host == "www.googleapis.com" and request.url.path.startswith("/oauth2/"):
            return self._userinfo(request)
        if host == "tasks.googleapis.com":
            return self._tasks_api(request)
        return httpx.Response(404)


@pytest.fixture
def settings() -> Settings:
    """Settings with Google OAuth configured and an in-memory database."""
    return Settings(
        _env_file=None,
        python_env="development",
        log_level="INFO",
        database_url="sqlite:///:memory:",
        site_url="https://app.example.com/",
        google_oauth_client_id="test-client-id",
        google_oauth_client_secret="test-client-secret",
        google_oauth_redirect_uri=REDIRECT_URI,
        oauth_state_secret="test-state-secret",
    )


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
async def http_client(google: FakeGoogle) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(google.handler)) as client:
        yield client


@pytest.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Fresh in-memory database per test."""
    db = Database("sqlite:///:memory:")
    await db.create_all()
    try:
        yield db
    finally:
        await db.dispose()


@pytest.fixture
async def session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def make_connection(session: AsyncSession):
    """Factory for stored connections with explicit token state."""

    async def _make(
        planner_email: str = PLANNER,
        user_email: str = USER,
        access_token: Optional[str] = "stored-access",
        refresh_token: Optional[str] = "stored-refresh",
        expires_in: Optional[timedelta] = timedelta(hours=1),
        status: str = STATUS_CONNECTED,
        updated_at: Optional[datetime] = None,
        scope: Optional[str] = "https://www.googleapis.com/auth/tasks",
    ) -> Connection:
        now = utcnow()
        connection = Connection(
            planner_email=planner_email,
            user_email=user_email,
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="Bearer",
            scope=scope,
            token_expiry=now + expires_in if expires_in is not None else None,
            status=status,
            updated_at=updated_at or now,
        )
        session.add(connection)
        await session.commit()
        return connection

    return _make
