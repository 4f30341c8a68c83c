"""Optimistic task and comment mutations.

A mutation runs in two halves. ``mutate_task_optimistic`` cancels in-flight
reads for the affected cache keys, snapshots them and applies a provisional
record so the change is visible immediately. ``MutationHandle.commit`` then
issues the real write: on success the provisional state is replaced by the
server record and the keys are refetched; on failure the snapshot is restored
exactly and the error is re-raised. There is no retry.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from taskboard.cache import QueryCache, QueryKey, Snapshot
from taskboard.dispatch import NotificationDispatcher
from taskboard.events import CommentAdded
from taskboard.exceptions import StoreError, ValidationError
from taskboard.logging import format_component
from taskboard.models import (
    TEMP_ID_PREFIX,
    Comment,
    CommentCreate,
    Profile,
    Project,
    Status,
    Task,
    TaskCreate,
    TaskPatch,
)
from taskboard.repository import TaskRepository

logger = logging.getLogger(__name__)

STATUSES_KEY: QueryKey = ("statuses",)
PROJECTS_KEY: QueryKey = ("projects",)
PROFILES_KEY: QueryKey = ("profiles",)


def tasks_key(user_id: str) -> QueryKey:
    return ("tasks", user_id)


def task_key(task_id: str) -> QueryKey:
    return ("task", task_id)


def comments_key(task_id: str) -> QueryKey:
    return ("comments", task_id)


def temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


# ---------------------------------------------------------------------------
# Changes
# ---------------------------------------------------------------------------


class _Change(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", coerce_numbers_to_str=True)


class CreateTask(_Change):
    kind: Literal["create_task"] = "create_task"
    body: TaskCreate


class UpdateTask(_Change):
    kind: Literal["update_task"] = "update_task"
    task_id: str
    patch: TaskPatch


class DeleteTask(_Change):
    kind: Literal["delete_task"] = "delete_task"
    task_id: str


class CreateComment(_Change):
    kind: Literal["create_comment"] = "create_comment"
    body: CommentCreate


Change = Annotated[CreateTask | UpdateTask | DeleteTask | CreateComment, Field(discriminator="kind")]

_change_adapter: TypeAdapter[Change] = TypeAdapter(Change)


def parse_change(payload: dict[str, Any]) -> CreateTask | UpdateTask | DeleteTask | CreateComment:
    try:
        return _change_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Invalid change") from e


# ---------------------------------------------------------------------------
# Handle
# ---------------------------------------------------------------------------


class MutationState(StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class MutationHandle:
    """A provisional change waiting to be committed or rolled back."""

    def __init__(
        self,
        coordinator: OptimisticMutationCoordinator,
        change: CreateTask | UpdateTask | DeleteTask | CreateComment,
        keys: list[QueryKey],
        snapshot: Snapshot,
        provisional: Task | Comment | None,
        before: Task | None,
    ) -> None:
        self.coordinator = coordinator
        self.change = change
        self.keys = keys
        self.snapshot = snapshot
        self.provisional = provisional
        self.before = before
        self.state = MutationState.PENDING

    async def commit(self) -> Task | Comment | None:
        """Issue the real mutation. Any failure, cancellation included, rolls back and re-raises."""
        if self.state is not MutationState.PENDING:
            raise RuntimeError(f"Mutation already {self.state}")
        try:
            result = await self.coordinator._execute(self)
        except StoreError as e:
            logger.warning(f"{format_component('MUTATION')} {self.change.kind} failed, rolling back: {e.message}")
            self.rollback()
            raise
        except BaseException:
            logger.warning(f"{format_component('MUTATION')} {self.change.kind} interrupted, rolling back")
            self.rollback()
            raise
        self.state = MutationState.COMMITTED
        self.coordinator._release(self.keys)
        await self.coordinator._settle(self, result)
        return result

    def rollback(self) -> None:
        """Restore the pre-mutation snapshot. No-op if already rolled back."""
        if self.state is MutationState.ROLLED_BACK:
            return
        if self.state is MutationState.COMMITTED:
            raise RuntimeError("Cannot roll back a committed mutation")
        self.coordinator.cache.restore(self.snapshot)
        self.state = MutationState.ROLLED_BACK
        self.coordinator._release(self.keys)


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class OptimisticMutationCoordinator:
    def __init__(
        self,
        repository: TaskRepository,
        dispatcher: NotificationDispatcher,
        cache: QueryCache,
        actor_id: str,
    ) -> None:
        self.repository = repository
        self.dispatcher = dispatcher
        self.cache = cache
        self.actor_id = actor_id
        self._outstanding: Counter[QueryKey] = Counter()

    def outstanding(self, key: QueryKey) -> int:
        """Number of uncommitted provisional mutations touching ``key``."""
        return self._outstanding[key]

    def _release(self, keys: list[QueryKey]) -> None:
        for key in keys:
            self._outstanding[key] -= 1
            if self._outstanding[key] <= 0:
                del self._outstanding[key]

    def _keys_for(self, change: CreateTask | UpdateTask | DeleteTask | CreateComment) -> list[QueryKey]:
        match change:
            case CreateTask():
                return [tasks_key(self.actor_id)]
            case UpdateTask() | DeleteTask():
                return [tasks_key(self.actor_id), task_key(change.task_id)]
            case CreateComment():
                return [comments_key(change.body.task_id)]
        raise TypeError(f"Unknown change: {change!r}")

    async def run(self, change: CreateTask | UpdateTask | DeleteTask | CreateComment) -> Task | Comment | None:
        handle = await self.mutate_task_optimistic(change)
        return await handle.commit()

    async def mutate_task_optimistic(
        self, change: CreateTask | UpdateTask | DeleteTask | CreateComment
    ) -> MutationHandle:
        """Apply ``change`` locally and return a handle to commit or roll it back."""
        if isinstance(change, UpdateTask) and not change.patch.changes():
            raise ValidationError("Nothing to update", {"patch": "empty patch"})

        keys = self._keys_for(change)
        for key in keys:
            await self.cache.cancel(key)
        snapshot = self.cache.snapshot(keys)
        before = None
        if isinstance(change, UpdateTask | DeleteTask):
            before = self._cached_task(change.task_id)

        provisional = self._apply(change)
        for key in keys:
            self._outstanding[key] += 1
        logger.debug(f"{format_component('MUTATION')} Applied provisional {change.kind} on {keys}")
        return MutationHandle(self, change, keys, snapshot, provisional, before)

    # ------------------------------------------------------------------
    # Provisional state
    # ------------------------------------------------------------------

    def _cached_task(self, task_id: str) -> Task | None:
        task = self.cache.get(task_key(task_id))
        if task is not None:
            return task.model_copy(deep=True)
        for item in self.cache.get(tasks_key(self.actor_id)) or []:
            if item.id == task_id:
                return item.model_copy(deep=True)
        return None

    def _status_name(self, status_id: str | None) -> str | None:
        statuses: list[Status] = self.cache.get(STATUSES_KEY) or []
        return next((s.name for s in statuses if s.id == status_id), None)

    def _project_name(self, project_id: str | None) -> str | None:
        projects: list[Project] = self.cache.get(PROJECTS_KEY) or []
        return next((p.name for p in projects if p.id == project_id), None)

    def _author(self, user_id: str) -> Profile | None:
        profiles: list[Profile] = self.cache.get(PROFILES_KEY) or []
        return next((p for p in profiles if p.id == user_id), None)

    def _merge(self, task: Task, changes: dict[str, Any]) -> Task:
        update = dict(changes)
        if "status_id" in changes:
            update["status_name"] = self._status_name(changes["status_id"])
        if "project_id" in changes:
            update["project_name"] = self._project_name(changes["project_id"])
        return task.model_copy(update=update)

    def _apply(self, change: CreateTask | UpdateTask | DeleteTask | CreateComment) -> Task | Comment | None:
        list_key = tasks_key(self.actor_id)
        match change:
            case CreateTask(body=body):
                task = Task(
                    id=temp_id(),
                    user_id=self.actor_id,
                    created_at=datetime.now(UTC),
                    status_name=self._status_name(body.status_id),
                    project_name=self._project_name(body.project_id),
                    **body.model_dump(),
                )
                self.cache.set(list_key, lambda old: [*(old or []), task])
                return task

            case UpdateTask(task_id=task_id, patch=patch):
                changes = patch.changes()
                detail = self.cache.get(task_key(task_id))
                if detail is not None:
                    self.cache.set(task_key(task_id), self._merge(detail, changes))
                if self.cache.get(list_key) is not None:
                    self.cache.set(
                        list_key,
                        lambda old: [self._merge(t, changes) if t.id == task_id else t for t in old or []],
                    )
                return self.cache.get(task_key(task_id)) or self._cached_task(task_id)

            case DeleteTask(task_id=task_id):
                if self.cache.get(list_key) is not None:
                    self.cache.set(list_key, lambda old: [t for t in old or [] if t.id != task_id])
                if self.cache.get(task_key(task_id)) is not None:
                    self.cache.set(task_key(task_id), None)
                return None

            case CreateComment(body=body):
                author = self._author(self.actor_id)
                comment = Comment(
                    id=temp_id(),
                    task_id=body.task_id,
                    user_id=self.actor_id,
                    content=body.content,
                    created_at=datetime.now(UTC),
                    author_name=author.name if author else None,
                    author_avatar_url=author.avatar_url if author else None,
                )
                self.cache.set(comments_key(body.task_id), lambda old: [comment, *(old or [])])
                return comment
        raise TypeError(f"Unknown change: {change!r}")

    # ------------------------------------------------------------------
    # Server round trip
    # ------------------------------------------------------------------

    async def _execute(self, handle: MutationHandle) -> Task | Comment | None:
        change = handle.change
        match change:
            case CreateTask(body=body):
                return await self.repository.create_task(self.actor_id, body)

            case UpdateTask(task_id=task_id, patch=patch):
                if handle.before is None:
                    handle.before = await self.repository.get_task(task_id)
                task = await self.repository.update_task(task_id, patch)
                if task is None:
                    raise StoreError(f"Task {task_id} not found")
                return task

            case DeleteTask(task_id=task_id):
                await self.repository.delete_task(task_id)
                return None

            case CreateComment(body=body):
                return await self.repository.create_comment(self.actor_id, body)
        raise TypeError(f"Unknown change: {change!r}")

    async def _settle(self, handle: MutationHandle, result: Task | Comment | None) -> None:
        """Swap provisional records for the server's, refetch, then notify."""
        change = handle.change
        provisional_id = handle.provisional.id if handle.provisional is not None else None
        list_key = tasks_key(self.actor_id)

        if isinstance(result, Task):
            replace_id = provisional_id if isinstance(change, CreateTask) else result.id
            if self.cache.get(list_key) is not None:
                self.cache.set(list_key, lambda old: [result if t.id == replace_id else t for t in old or []])
            if isinstance(change, UpdateTask) and self.cache.get(task_key(result.id)) is not None:
                self.cache.set(task_key(result.id), result)
        elif isinstance(result, Comment):
            key = comments_key(result.task_id)
            self.cache.set(key, lambda old: [result if c.id == provisional_id else c for c in old or []])

        for key in handle.keys:
            try:
                await self.cache.invalidate(key)
            except StoreError as e:
                logger.warning(f"{format_component('MUTATION')} Refetch of {key!r} failed: {e.message}")

        await self._notify(handle, result)

    async def _notify(self, handle: MutationHandle, result: Task | Comment | None) -> None:
        try:
            if isinstance(result, Task):
                await self.dispatcher.dispatch_for_task_change(handle.before, result, self.actor_id)
            elif isinstance(result, Comment):
                task = self._cached_task(result.task_id) or await self.repository.get_task(result.task_id)
                if task is not None:
                    await self.dispatcher.dispatch_on_comment_added(CommentAdded.for_task(task, self.actor_id))
        except StoreError as e:
            logger.warning(f"{format_component('DISPATCH')} Notification for {handle.change.kind} skipped: {e.message}")
        except Exception:
            logger.exception(f"{format_component('DISPATCH')} Notification for {handle.change.kind} skipped")
