"""Notification dispatch.

Applies the dispatch rules and persists the result. Notifying is a side
channel: any failure here is logged and never reaches the mutation that
triggered it.
"""

from __future__ import annotations

import logging

from taskboard.events import CommentAdded, TaskAssigned, TaskUpdated
from taskboard.exceptions import StoreError
from taskboard.logging import format_component
from taskboard.models import Notification, Task
from taskboard.rules import Event, events_for_task_change, notifications_for
from taskboard.store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, store: NotificationStore) -> None:
        self.store = store

    async def dispatch(self, event: Event) -> list[Notification]:
        """Insert one notification per eligible recipient. Returns what was persisted."""
        sent: list[Notification] = []
        for request in notifications_for(event):
            try:
                sent.append(await self.store.insert(request))
            except StoreError as e:
                logger.warning(
                    f"{format_component('DISPATCH')} {event.event_type} for task {event.task_id} "
                    f"to {request.user_id} failed: {e.message}"
                )
            except Exception:
                logger.exception(
                    f"{format_component('DISPATCH')} {event.event_type} for task {event.task_id} "
                    f"to {request.user_id} failed unexpectedly"
                )
        if sent:
            logger.info(f"{format_component('DISPATCH')} {event.event_type} task={event.task_id} recipients={len(sent)}")
        return sent

    async def dispatch_on_task_update(self, event: TaskUpdated | TaskAssigned) -> list[Notification]:
        return await self.dispatch(event)

    async def dispatch_on_comment_added(self, event: CommentAdded) -> list[Notification]:
        return await self.dispatch(event)

    async def dispatch_for_task_change(self, before: Task | None, after: Task, actor_id: str) -> list[Notification]:
        sent: list[Notification] = []
        for event in events_for_task_change(before, after, actor_id):
            sent.extend(await self.dispatch(event))
        return sent
