"""Per-user session: the interface the UI layer talks to.

A session is created on sign-in and closed on sign-out::

    async with TaskboardSession(backend, user_id) as session:
        handle = await session.mutate_task_optimistic(UpdateTask(task_id=..., patch=...))
        await handle.commit()

Entering mounts the realtime notification subscription; leaving releases it.
Nothing here is process-global, so sessions for different users stay isolated.
"""

from __future__ import annotations

import logging
from types import TracebackType

from taskboard.backend import Backend
from taskboard.cache import QueryCache
from taskboard.dispatch import NotificationDispatcher
from taskboard.events import CommentAdded, TaskAssigned, TaskUpdated
from taskboard.models import Comment, Notification, Profile, Project, Status, Task
from taskboard.optimistic import (
    PROFILES_KEY,
    PROJECTS_KEY,
    STATUSES_KEY,
    CreateComment,
    CreateTask,
    DeleteTask,
    MutationHandle,
    OptimisticMutationCoordinator,
    UpdateTask,
    comments_key,
    task_key,
    tasks_key,
)
from taskboard.realtime import NotificationListener, RealtimeSubscriptionManager
from taskboard.repository import TaskRepository
from taskboard.store import NotificationStore

logger = logging.getLogger(__name__)


class TaskboardSession:
    def __init__(self, backend: Backend, user_id: str, *, page_size: int | None = None) -> None:
        self.backend = backend
        self.user_id = user_id
        self.cache = QueryCache()
        self.store = NotificationStore(backend)
        self.repository = TaskRepository(backend)
        self.dispatcher = NotificationDispatcher(self.store)
        self.notifications = RealtimeSubscriptionManager(backend, self.store, page_size=page_size)
        self.coordinator = OptimisticMutationCoordinator(self.repository, self.dispatcher, self.cache, user_id)

    async def __aenter__(self) -> TaskboardSession:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def open(self) -> None:
        await self.notifications.mount(self.user_id)

    async def close(self) -> None:
        await self.notifications.unmount()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def list_notifications(self) -> list[Notification]:
        return self.notifications.notifications

    def unread_count(self) -> int:
        return self.notifications.unread_count

    async def mark_read(self, notification_id: str) -> None:
        await self.notifications.mark_read(notification_id)

    async def mark_all_read(self) -> None:
        await self.notifications.mark_all_read()

    def on_notification(self, listener: NotificationListener):
        return self.notifications.add_listener(listener)

    async def dispatch_on_task_update(self, event: TaskUpdated | TaskAssigned) -> list[Notification]:
        return await self.dispatcher.dispatch_on_task_update(event)

    async def dispatch_on_comment_added(self, event: CommentAdded) -> list[Notification]:
        return await self.dispatcher.dispatch_on_comment_added(event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def load_reference_data(self) -> tuple[list[Status], list[Project], list[Profile]]:
        statuses = await self.cache.fetch(STATUSES_KEY, self.repository.list_statuses)
        projects = await self.cache.fetch(PROJECTS_KEY, self.repository.list_projects)
        profiles = await self.cache.fetch(PROFILES_KEY, self.repository.list_profiles)
        return statuses, projects, profiles

    async def load_tasks(self) -> list[Task]:
        return await self.cache.fetch(tasks_key(self.user_id), self.repository.list_tasks)

    async def load_task(self, task_id: str) -> Task | None:
        return await self.cache.fetch(task_key(task_id), lambda: self.repository.get_task(task_id))

    async def load_comments(self, task_id: str) -> list[Comment]:
        return await self.cache.fetch(comments_key(task_id), lambda: self.repository.list_comments(task_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def mutate_task_optimistic(
        self, change: CreateTask | UpdateTask | DeleteTask | CreateComment
    ) -> MutationHandle:
        return await self.coordinator.mutate_task_optimistic(change)

    async def mutate(self, change: CreateTask | UpdateTask | DeleteTask | CreateComment) -> Task | Comment | None:
        return await self.coordinator.run(change)
