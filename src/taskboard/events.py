"""Domain events that can produce notifications.

Events are a tagged union on ``event_type``. Each variant carries the fields
its dispatch rule needs, so a malformed event is rejected when it is built
rather than when a rule trips over a missing attribute.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from taskboard.exceptions import ValidationError
from taskboard.models import Task


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", coerce_numbers_to_str=True)

    task_id: str
    task_title: str
    actor_id: str
    candidate_recipient_ids: tuple[str, ...] = ()


class TaskUpdated(_Event):
    event_type: Literal["task_updated"] = "task_updated"


class TaskAssigned(_Event):
    event_type: Literal["task_assigned"] = "task_assigned"


class CommentAdded(_Event):
    event_type: Literal["comment_added"] = "comment_added"

    task_owner_id: str

    @classmethod
    def for_task(cls, task: Task, actor_id: str) -> CommentAdded:
        """Build the event for a comment on ``task``: owner and assignee are candidates."""
        candidates = [task.user_id]
        if task.assignee_id and task.assignee_id not in candidates:
            candidates.append(task.assignee_id)
        return cls(
            task_id=task.id,
            task_title=task.title,
            actor_id=actor_id,
            task_owner_id=task.user_id,
            candidate_recipient_ids=tuple(candidates),
        )


DispatchEvent = Annotated[
    TaskUpdated | TaskAssigned | CommentAdded,
    Field(discriminator="event_type"),
]

_event_adapter: TypeAdapter[DispatchEvent] = TypeAdapter(DispatchEvent)


def parse_event(payload: dict[str, Any]) -> TaskUpdated | TaskAssigned | CommentAdded:
    """Validate a loose mapping into a concrete event. Raises ValidationError."""
    try:
        return _event_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Malformed event") from e
