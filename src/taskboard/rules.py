"""Notification dispatch rules.

Pure functions: given an event, decide who is notified and with what message.
Nothing here touches the store.
"""

from __future__ import annotations

from collections.abc import Iterable

from taskboard.events import CommentAdded, TaskAssigned, TaskUpdated
from taskboard.models import NotificationCreate, NotificationType, Task

Event = TaskUpdated | TaskAssigned | CommentAdded


def message_for(event: Event) -> str:
    match event:
        case TaskUpdated():
            return f'Task "{event.task_title}" has been updated'
        case CommentAdded():
            return f"New comment on your task: {event.task_title}"
        case TaskAssigned():
            return f"You've been assigned to the task: {event.task_title}"
    raise TypeError(f"Unknown event: {event!r}")


def _unique(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for user_id in ids:
        if user_id and user_id not in seen:
            seen.add(user_id)
            out.append(user_id)
    return out


def recipients_for(event: Event) -> list[str]:
    """Candidates minus the actor, deduplicated in candidate order.

    Comment notifications are only sent when the commenter owns the task.
    """
    if isinstance(event, CommentAdded) and event.actor_id != event.task_owner_id:
        return []
    return [uid for uid in _unique(event.candidate_recipient_ids) if uid != event.actor_id]


def notifications_for(event: Event) -> list[NotificationCreate]:
    """One insert request per eligible recipient. An empty list is a valid answer."""
    message = message_for(event)
    notification_type = NotificationType(event.event_type)
    return [
        NotificationCreate(
            user_id=recipient,
            creator_id=event.actor_id,
            message=message,
            type=notification_type,
            reference_id=event.task_id,
        )
        for recipient in recipients_for(event)
    ]


def events_for_task_change(before: Task | None, after: Task, actor_id: str) -> list[Event]:
    """Events implied by a successful task create (``before`` is None) or update.

    - new assignee (on create, or changed on update) -> TaskAssigned
    - unchanged assignee on update -> TaskUpdated
    - no assignee -> nothing
    """
    if not after.assignee_id:
        return []

    common = dict(
        task_id=after.id,
        task_title=after.title,
        actor_id=actor_id,
        candidate_recipient_ids=(after.assignee_id,),
    )
    if before is None or before.assignee_id != after.assignee_id:
        return [TaskAssigned(**common)]
    return [TaskUpdated(**common)]
