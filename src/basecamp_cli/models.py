"""Pydantic models for Basecamp API responses.

Basecamp sends ids as numbers in most payloads and as numeric strings in a
few; ``RecordId`` accepts both.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _coerce_id(value: Any) -> Any:
    if isinstance(value, str):
        return int(value.strip())
    return value


RecordId = Annotated[int, BeforeValidator(_coerce_id)]


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PersonProfile(_ApiModel):
    id: RecordId
    name: str
    email_address: str | None = None
    title: str | None = None
    admin: bool | None = None
    owner: bool | None = None
    client: bool | None = None
    employee: bool | None = None
    time_zone: str | None = None


class ProjectDock(_ApiModel):
    id: RecordId
    name: str
    enabled: bool = True


class Project(_ApiModel):
    id: RecordId
    name: str
    dock: list[ProjectDock] = Field(default_factory=list)


class Todo(_ApiModel):
    id: RecordId
    content: str = ""
    description: str | None = None
    completed: bool = False
    due_on: str | None = None


class SearchBucket(_ApiModel):
    id: RecordId
    name: str = ""


class TodoSearchResult(_ApiModel):
    """One recording from ``search.json``."""

    id: RecordId
    recording_type: str = Field(alias="type")
    title: str | None = None
    content: str | None = None
    completed: bool | None = None
    bucket: SearchBucket | None = None


class Todolist(_ApiModel):
    """A to-do list, or a group inside one. Groups share the list shape."""

    id: RecordId
    title: str = ""
    name: str = ""


class CreatedTodo(_ApiModel):
    id: RecordId
    content: str


class CreateTodoPayload(BaseModel):
    """Body for ``POST .../todolists/<id>/todos.json``. Unset fields are omitted."""

    content: str
    description: str | None = None
    assignee_ids: list[int] | None = None
    completion_subscriber_ids: list[int] | None = None
    due_on: str | None = None


class UpdateTodoPayload(BaseModel):
    """Body for ``PUT .../todos/<id>.json``.

    Basecamp clears any field left out of an update, so every field is sent,
    with null for an empty value.
    """

    content: str
    description: str | None = None
    due_on: str | None = None
