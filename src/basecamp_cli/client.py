"""Async client for the Basecamp 4 API.

Every request is scoped to one account: ``https://3.basecampapi.com/<id>/``.
HTTP status codes are mapped to CLI errors here so callers only deal with
``BasecampCliError`` subclasses.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from basecamp_cli.errors import (
    OAUTH_UNAUTHORIZED_RELOGIN_MESSAGE,
    GenericError,
    NoAccountError,
    oauth_error_from_status,
)
from basecamp_cli.models import (
    CreatedTodo,
    CreateTodoPayload,
    PersonProfile,
    Project,
    Todo,
    Todolist,
    TodoSearchResult,
    UpdateTodoPayload,
)
from basecamp_cli.oauth import DEFAULT_TIMEOUT, SSL_CONTEXT, USER_AGENT

API_BASE = "https://3.basecampapi.com"
TODO_SEARCH_TYPE = "Todo"
TODO_NOT_FOUND_MESSAGE = "Target project/todo was not found or is not accessible."
TODOLIST_NOT_FOUND_MESSAGE = "Target project/list was not found or is not accessible."


class BasecampClient:
    """Bearer-authenticated client for a single Basecamp account.

    Use as an async context manager, or call ``close()`` when done.

    Args:
        account_id: Account (tenant) id every request is scoped to.
        access_token: OAuth access token.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        account_id: int,
        access_token: str,
        *,
        base_url: str = API_BASE,
        timeout: int = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._account_id = account_id
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout,
            verify=SSL_CONTEXT,
            transport=transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
        )

    @property
    def account_id(self) -> int:
        return self._account_id

    async def fetch_my_profile(self) -> PersonProfile:
        return await self._get_json(
            "my/profile.json",
            PersonProfile,
            context="whoami profile",
            forbidden_message="Basecamp denied access (403 Forbidden).",
        )

    async def list_projects(self) -> list[Project]:
        return await self._get_json(
            "projects.json",
            list[Project],
            context="projects",
            forbidden_message="Basecamp denied access to projects (403 Forbidden).",
            not_found_message=(
                "Basecamp projects endpoint was not found or is not accessible."
            ),
        )

    async def list_todolists(self, project_id: int, todoset_id: int) -> list[Todolist]:
        return await self._get_json(
            f"buckets/{project_id}/todosets/{todoset_id}/todolists.json",
            list[Todolist],
            context="to-do lists",
            forbidden_message="Basecamp denied access to to-do lists (403 Forbidden).",
            not_found_message=(
                "Basecamp to-do lists endpoint was not found or is not accessible."
            ),
        )

    async def list_todolist_groups(
        self, project_id: int, todolist_id: int
    ) -> list[Todolist]:
        return await self._get_json(
            f"buckets/{project_id}/todolists/{todolist_id}/groups.json",
            list[Todolist],
            context="to-do groups",
            forbidden_message="Basecamp denied access to to-do groups (403 Forbidden).",
            not_found_message=(
                "Basecamp to-do groups endpoint was not found or is not accessible."
            ),
        )

    async def create_todo(
        self, project_id: int, todolist_id: int, payload: CreateTodoPayload
    ) -> CreatedTodo:
        """Create a to-do in a list or group."""
        response = await self._send(
            "POST",
            f"buckets/{project_id}/todolists/{todolist_id}/todos.json",
            context="todo creation",
            json=payload.model_dump(exclude_none=True),
        )
        _ensure_success(
            response,
            context="todo creation",
            forbidden_message="Basecamp denied todo creation (403 Forbidden).",
            not_found_message=TODOLIST_NOT_FOUND_MESSAGE,
        )
        return _decode(response, CreatedTodo, "created todo")

    async def update_todo(
        self, project_id: int, todo_id: int, payload: UpdateTodoPayload
    ) -> Todo:
        """Replace a to-do's content, description and due date."""
        response = await self._send(
            "PUT",
            f"buckets/{project_id}/todos/{todo_id}.json",
            context="todo update",
            json=payload.model_dump(),
        )
        _ensure_success(
            response,
            context="todo update",
            forbidden_message="Basecamp denied todo update (403 Forbidden).",
            not_found_message=TODO_NOT_FOUND_MESSAGE,
        )
        return _decode(response, Todo, "updated todo")

    async def get_todo(self, project_id: int, todo_id: int) -> Todo:
        return await self._get_json(
            f"buckets/{project_id}/todos/{todo_id}.json",
            Todo,
            context="to-do details",
            forbidden_message="Basecamp denied to-do details access (403 Forbidden).",
            not_found_message=TODO_NOT_FOUND_MESSAGE,
        )

    async def search_todos(
        self,
        query: str,
        project_id: int | None = None,
        per_page: int = 50,
        max_pages: int = 20,
    ) -> list[TodoSearchResult]:
        """Collect to-do search results page by page.

        Stops after a short page or after ``max_pages`` pages.
        """
        if per_page <= 0 or max_pages <= 0:
            return []

        matches: list[TodoSearchResult] = []
        page = 1
        while True:
            params: dict[str, Any] = {
                "q": query,
                "type": TODO_SEARCH_TYPE,
                "page": page,
                "per_page": per_page,
            }
            if project_id is not None:
                params["bucket_id"] = project_id

            recordings = await self._get_json(
                "search.json",
                list[TodoSearchResult],
                params=params,
                context="to-do search",
                forbidden_message=(
                    "Basecamp denied to-do search access (403 Forbidden)."
                ),
                not_found_message=(
                    "Basecamp to-do search endpoint was not found or is not accessible."
                ),
            )
            matches.extend(recordings)
            logger.debug("Search page {} returned {} results", page, len(recordings))

            if len(recordings) < per_page or page >= max_pages:
                break
            page += 1

        return matches

    async def complete_todo(self, project_id: int, todo_id: int) -> None:
        response = await self._send(
            "POST",
            f"buckets/{project_id}/todos/{todo_id}/completion.json",
            context="todo completion",
        )
        _ensure_success(
            response,
            context="todo completion",
            forbidden_message="Basecamp denied todo completion (403 Forbidden).",
            not_found_message=TODO_NOT_FOUND_MESSAGE,
        )

    async def re_open_todo(self, project_id: int, todo_id: int) -> None:
        response = await self._send(
            "DELETE",
            f"buckets/{project_id}/todos/{todo_id}/completion.json",
            context="todo re-open",
        )
        _ensure_success(
            response,
            context="todo re-open",
            forbidden_message="Basecamp denied todo re-open (403 Forbidden).",
            not_found_message=TODO_NOT_FOUND_MESSAGE,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> BasecampClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _account_url(self, path: str) -> str:
        return f"{self._base_url}/{self._account_id}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        context: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method, self._account_url(path), params=params, json=json
            )
        except httpx.RequestError as e:
            raise GenericError(f"Failed to request {context}: {e}") from e

    async def _get_json(
        self,
        path: str,
        response_type: Any,
        *,
        context: str,
        forbidden_message: str,
        not_found_message: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._send("GET", path, context=context, params=params)
        _ensure_success(
            response,
            context=context,
            forbidden_message=forbidden_message,
            not_found_message=not_found_message,
        )
        return _decode(response, response_type, context)


def _decode(response: httpx.Response, response_type: Any, context: str) -> Any:
    try:
        return TypeAdapter(response_type).validate_json(response.content)
    except ValidationError as e:
        raise GenericError(f"Failed to decode {context} response: {e}") from e


def _ensure_success(
    response: httpx.Response,
    *,
    context: str,
    forbidden_message: str,
    not_found_message: str | None = None,
) -> None:
    """Raise the CLI error matching a non-2xx response."""
    status = response.status_code
    error = oauth_error_from_status(
        status,
        unauthorized_message=OAUTH_UNAUTHORIZED_RELOGIN_MESSAGE,
        forbidden_message=forbidden_message,
    )
    if error is not None:
        raise error

    if status == 404 and not_found_message is not None:
        raise NoAccountError(not_found_message)

    if not response.is_success:
        raise GenericError(f"Basecamp {context} request failed with status {status}.")
