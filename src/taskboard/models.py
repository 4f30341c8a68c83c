"""Pydantic models for tasks, comments, notifications and reference data."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TEMP_ID_PREFIX = "temp-"


class Record(BaseModel):
    """Base for rows read from the store. Numeric ids are coerced to strings."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class Status(Record):
    id: str
    name: str


class Project(Record):
    id: str
    name: str


class Profile(Record):
    """Public display identity of a user."""

    id: str
    name: str | None = None
    avatar_url: str | None = None


class Task(Record):
    """A unit of work. ``user_id`` is the owner and never changes after creation."""

    id: str
    title: str
    description: str | None = None
    status_id: str | None = None
    project_id: str | None = None
    user_id: str
    assignee_id: str | None = None
    created_at: datetime | None = None

    # Display-only, resolved from reference data
    status_name: str | None = None
    project_name: str | None = None

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


class TaskCreate(BaseModel):
    """Fields a user supplies when creating a task."""

    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    title: str = Field(min_length=1)
    description: str | None = None
    status_id: str
    project_id: str
    assignee_id: str | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class TaskPatch(BaseModel):
    """Partial task update. The owner is not patchable."""

    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    title: str | None = None
    description: str | None = None
    status_id: str | None = None
    project_id: str | None = None
    assignee_id: str | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @model_validator(mode="after")
    def _reject_null_title(self) -> TaskPatch:
        if "title" in self.model_fields_set and self.title is None:
            raise ValueError("title must not be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set by the caller, including an explicit null assignee."""
        return self.model_dump(exclude_unset=True)


class Comment(Record):
    """A comment on a task. Immutable after creation."""

    id: str
    task_id: str
    user_id: str
    content: str
    created_at: datetime | None = None

    author_name: str | None = None
    author_avatar_url: str | None = None

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


class CommentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    task_id: str
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content must not be blank")
        return v


class NotificationType(StrEnum):
    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    COMMENT_ADDED = "comment_added"


class NotificationCreate(BaseModel):
    """Insert request produced by the dispatch rules."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    creator_id: str
    message: str
    type: NotificationType
    reference_id: str


class Notification(Record):
    """An alert for one recipient. Only the read flag ever changes."""

    id: str
    user_id: str
    creator_id: str
    message: str
    type: NotificationType
    reference_id: str
    read: bool = False
    created_at: datetime | None = None

    actor_name: str | None = None
