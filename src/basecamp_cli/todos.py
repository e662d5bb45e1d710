"""To-do operations for the current session.

Search, completion and re-open, plus creating and editing to-dos. Everything is
flag-driven: ids come from the command line, never from interactive menus.
"""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from basecamp_cli.client import BasecampClient
from basecamp_cli.errors import InvalidInputError, NoAccountError
from basecamp_cli.models import (
    CreateTodoPayload,
    Project,
    Todolist,
    TodoSearchResult,
    UpdateTodoPayload,
)

SEARCH_PER_PAGE = 50
SEARCH_MAX_PAGES = 20
TODOSET_DOCK_NAME = "todoset"
DUE_DATE_FORMAT_MESSAGE = "Invalid due date. Use YYYY-MM-DD format."


class CompletionFilter(Enum):
    INCOMPLETE = "incomplete"
    COMPLETED = "completed"

    def matches(self, completed: bool) -> bool:
        if self is CompletionFilter.COMPLETED:
            return completed
        return not completed


@dataclass(frozen=True)
class TodoMatch:
    todo_id: int
    project_id: int
    project_name: str
    content: str

    def label(self) -> str:
        return (
            f"{self.content} (id: {self.todo_id}, "
            f"project: {self.project_name} / {self.project_id})"
        )


@dataclass
class TodoActionResult:
    """Outcome of ``todo complete`` or ``todo reopen``."""

    ok: bool
    action: str
    todo_id: int
    project_id: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TodoAddRequest:
    """What ``todo add`` creates and where.

    ``todolist_id`` may be omitted when the project has exactly one list.
    ``group_id`` places the to-do in a group of that list.
    """

    project_id: int
    content: str
    todolist_id: int | None = None
    group_id: int | None = None
    notes: str | None = None
    due_on: str | None = None
    assignee_id: int | None = None
    notify_ids: tuple[int, ...] = field(default_factory=tuple)


@dataclass
class TodoAddResult:
    ok: bool
    project_id: int
    project_name: str
    todolist_id: int
    todolist_name: str
    todo_id: int
    content: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TodoEditRequest:
    """Changes for ``todo edit``.

    None leaves a field as it is. An empty ``notes`` or ``due_on`` clears it;
    an empty ``content`` is rejected.
    """

    project_id: int
    todo_id: int
    content: str | None = None
    notes: str | None = None
    due_on: str | None = None


@dataclass
class TodoEditResult:
    ok: bool
    project_id: int
    todo_id: int
    content: str
    description: str | None = None
    due_on: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


async def search_todos(
    client: BasecampClient,
    query: str,
    project_id: int | None = None,
    completion_filter: CompletionFilter = CompletionFilter.INCOMPLETE,
) -> list[TodoMatch]:
    """Search to-dos and keep those matching ``completion_filter``.

    Raises:
        InvalidInputError: If ``query`` is blank.
    """
    query = query.strip()
    if not query:
        raise InvalidInputError("Search text is required.")

    recordings = await client.search_todos(
        query, project_id, SEARCH_PER_PAGE, SEARCH_MAX_PAGES
    )
    matches = [
        match
        for match in (to_todo_match(r, completion_filter) for r in recordings)
        if match is not None
    ]
    logger.info(
        "To-do search matched {} of {} recordings", len(matches), len(recordings)
    )
    return matches


def to_todo_match(
    recording: TodoSearchResult, completion_filter: CompletionFilter
) -> TodoMatch | None:
    """Convert a search recording, or return None if it should be skipped."""
    if recording.recording_type != "Todo":
        return None
    if not completion_filter.matches(bool(recording.completed)):
        return None
    if recording.bucket is None:
        return None

    bucket = recording.bucket
    return TodoMatch(
        todo_id=recording.id,
        project_id=bucket.id,
        project_name=_normalize(bucket.name) or f"Project {bucket.id}",
        content=_recording_content(recording),
    )


async def complete_todo(
    client: BasecampClient, project_id: int, todo_id: int
) -> TodoActionResult:
    await client.complete_todo(project_id, todo_id)
    logger.info("Completed to-do {} in project {}", todo_id, project_id)
    return TodoActionResult(
        ok=True, action="complete", todo_id=todo_id, project_id=project_id
    )


async def re_open_todo(
    client: BasecampClient, project_id: int, todo_id: int
) -> TodoActionResult:
    await client.re_open_todo(project_id, todo_id)
    logger.info("Re-opened to-do {} in project {}", todo_id, project_id)
    return TodoActionResult(
        ok=True, action="reopen", todo_id=todo_id, project_id=project_id
    )


async def add_todo(client: BasecampClient, request: TodoAddRequest) -> TodoAddResult:
    """Create a to-do in a project's list, or in a group of that list.

    Raises:
        InvalidInputError: On blank content, a malformed due date, or several
            lists with no ``todolist_id`` to choose between them.
        NoAccountError: If the project, list or group cannot be found.
    """
    content = _normalize(request.content)
    if content is None:
        raise InvalidInputError("Title/content is required.")
    due_on = _normalize(request.due_on)
    if due_on is not None:
        validate_due_date(due_on)

    projects = await client.list_projects()
    if not projects:
        raise NoAccountError("No Basecamp projects were found for the current account.")
    project = next((p for p in projects if p.id == request.project_id), None)
    if project is None:
        raise NoAccountError(
            f"Project {request.project_id} was not found in the current account."
        )

    todoset_id = resolve_todoset_id(project)
    todolists = await client.list_todolists(project.id, todoset_id)
    if not todolists:
        raise NoAccountError(f'Project "{project.name}" has no to-do lists.')
    todolist = _select_todolist(project, todolists, request.todolist_id)

    target_id = todolist.id
    target_name = todolist_display_name(todolist)
    if request.group_id is not None:
        groups = await client.list_todolist_groups(project.id, todolist.id)
        group = next((g for g in groups if g.id == request.group_id), None)
        if group is None:
            raise NoAccountError(
                f'Group {request.group_id} was not found in to-do list "{target_name}".'
            )
        target_id = group.id
        target_name = f"{target_name} / {todolist_display_name(group)}"

    payload = CreateTodoPayload(
        content=content,
        description=_normalize(request.notes),
        assignee_ids=[request.assignee_id] if request.assignee_id is not None else None,
        completion_subscriber_ids=list(request.notify_ids) or None,
        due_on=due_on,
    )
    created = await client.create_todo(project.id, target_id, payload)
    logger.info("Created to-do {} in list {}", created.id, target_id)

    return TodoAddResult(
        ok=True,
        project_id=project.id,
        project_name=project.name,
        todolist_id=target_id,
        todolist_name=target_name,
        todo_id=created.id,
        content=created.content,
    )


async def edit_todo(client: BasecampClient, request: TodoEditRequest) -> TodoEditResult:
    """Update a to-do, keeping the current value of every field not given.

    Raises:
        InvalidInputError: If nothing is to change, content is blank or the due
            date is malformed.
    """
    if request.content is None and request.notes is None and request.due_on is None:
        raise InvalidInputError("Nothing to change. Pass --content, --notes or --due-on.")

    content_override: str | None = None
    if request.content is not None:
        content_override = _normalize(request.content)
        if content_override is None:
            raise InvalidInputError("`--content` cannot be blank.")

    due_on_override = _normalize(request.due_on)
    if due_on_override is not None:
        validate_due_date(due_on_override)

    todo = await client.get_todo(request.project_id, request.todo_id)

    content = content_override or _normalize(todo.content) or todo.content
    notes = (
        _normalize(request.notes)
        if request.notes is not None
        else _normalize(todo.description)
    )
    due_on = due_on_override if request.due_on is not None else _normalize(todo.due_on)

    updated = await client.update_todo(
        request.project_id,
        request.todo_id,
        UpdateTodoPayload(content=content, description=notes, due_on=due_on),
    )
    logger.info("Updated to-do {} in project {}", updated.id, request.project_id)

    return TodoEditResult(
        ok=True,
        project_id=request.project_id,
        todo_id=updated.id,
        content=_normalize(updated.content) or content,
        description=_normalize(updated.description) or notes,
        due_on=_normalize(updated.due_on) or due_on,
    )


def validate_due_date(value: str) -> None:
    """Require a real calendar date written as ``YYYY-MM-DD``.

    Raises:
        InvalidInputError: Naming the part of the date that is wrong.
    """
    if len(value) != 10 or value[4] != "-" or value[7] != "-":
        raise InvalidInputError(DUE_DATE_FORMAT_MESSAGE)

    year = _date_part(value[0:4], "year")
    month = _date_part(value[5:7], "month")
    day = _date_part(value[8:10], "day")

    if year == 0:
        raise InvalidInputError("Invalid year in due date.")
    if not 1 <= month <= 12:
        raise InvalidInputError("Invalid month in due date.")
    if not 1 <= day <= calendar.monthrange(year, month)[1]:
        raise InvalidInputError("Invalid day in due date.")


def resolve_todoset_id(project: Project) -> int:
    """Return the id of the project's enabled to-do set.

    Raises:
        NoAccountError: If the dock has no enabled ``todoset`` entry.
    """
    for item in project.dock:
        if item.name == TODOSET_DOCK_NAME and item.enabled:
            return item.id
    raise NoAccountError(
        f'Project "{project.name}" does not expose a usable todoset in dock.'
    )


def todolist_display_name(todolist: Todolist) -> str:
    return (
        _normalize(todolist.title)
        or _normalize(todolist.name)
        or f"List {todolist.id}"
    )


def _select_todolist(
    project: Project, todolists: list[Todolist], todolist_id: int | None
) -> Todolist:
    if todolist_id is not None:
        for todolist in todolists:
            if todolist.id == todolist_id:
                return todolist
        raise NoAccountError(
            f'To-do list {todolist_id} was not found in project "{project.name}".'
        )

    if len(todolists) == 1:
        return todolists[0]
    raise InvalidInputError(
        f'Project "{project.name}" has {len(todolists)} to-do lists. '
        "Pass --todolist-id to choose one."
    )


def _date_part(value: str, name: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise InvalidInputError(f"Invalid {name} in due date.")
    return int(value)


def _recording_content(recording: TodoSearchResult) -> str:
    return (
        _normalize(recording.content)
        or _normalize(recording.title)
        or f"Todo {recording.id}"
    )


def _normalize(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None
