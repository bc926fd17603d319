"""
Google Tasks API client.

Thin async wrapper over the Tasks REST API (Bearer-authenticated JSON).
Calls are bounded by the shared client's timeout and never retried here.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from plan2tasks.exceptions import ProviderUnavailableError, TaskDeliveryError

logger = logging.getLogger(__name__)

TASKS_API_BASE = "https://tasks.googleapis.com/tasks/v1"


def _error_message(response: httpx.Response) -> str:
    """Pull the most useful message out of a Google error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        if error.get("message"):
            return error["message"]
        errors = error.get("errors") or []
        if errors and errors[0].get("message"):
            return errors[0]["message"]
    if isinstance(error, str):
        return error
    return f"HTTP {response.status_code}"


class GoogleTasksClient:
    """
    Wrapper around Google Tasks API v1 for one user's access token.

    Provides:
    - Task list lookup and find-or-create by title
    - Task insertion
    - Clearing a list (paged delete) for replace-mode pushes
    """

    def __init__(self, http_client: httpx.AsyncClient, access_token: str, timeout: float = 10.0):
        self._http = http_client
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._timeout = timeout

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{TASKS_API_BASE}{path}"
        try:
            response = await self._http.request(
                method, url, headers=self._headers, timeout=self._timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(f"Google Tasks unreachable ({method} {path})", original_error=e) from e

        if response.status_code == 204:
            return {}
        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(f"Google Tasks {method} {path} failed ({response.status_code}): {message}")
            raise TaskDeliveryError(message, http_status=response.status_code)
        try:
            return response.json()
        except ValueError:
            return {}

    async def list_task_lists(self) -> list[dict[str, Any]]:
        """Return the user's task lists (first 100)."""
        data = await self._request("GET", "/users/@me/lists", params={"maxResults": 100})
        return data.get("items", [])

    async def ensure_task_list(self, title: str) -> dict[str, Any]:
        """Find a task list by exact (trimmed) title, creating it if missing."""
        wanted = title.strip()
        for task_list in await self.list_task_lists():
            if (task_list.get("title") or "").strip() == wanted:
                return task_list

        logger.info(f"Creating task list '{wanted}'")
        return await self._request("POST", "/users/@me/lists", json={"title": wanted})

    async def insert_task(self, list_id: str, task: dict[str, Any]) -> dict[str, Any]:
        """Insert one task into a list."""
        return await self._request("POST", f"/lists/{quote(list_id, safe='')}/tasks", json=task)

    async def clear_task_list(self, list_id: str) -> int:
        """
        Delete every task in a list.

        Returns:
            Number of tasks deleted
        """
        deleted = 0
        page_token: Optional[str] = None
        list_path = f"/lists/{quote(list_id, safe='')}/tasks"

        while True:
            params = {"maxResults": 100, "showHidden": "true"}
            if page_token:
                params["pageToken"] = page_token
            page = await self._request("GET", list_path, params=params)

            for task in page.get("items", []):
                await self._request("DELETE", f"{list_path}/{quote(task['id'], safe='')}")
                deleted += 1

            page_token = page.get("nextPageToken")
            if not page_token:
                return deleted
