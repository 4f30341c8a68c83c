"""Task, comment and reference-data persistence."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from taskboard.backend import Backend, Order, Row
from taskboard.exceptions import ValidationError
from taskboard.logging import format_component
from taskboard.models import Comment, CommentCreate, Profile, Project, Status, Task, TaskCreate, TaskPatch

logger = logging.getLogger(__name__)

TASKS = "tasks"
COMMENTS = "comments"
STATUSES = "statuses"
PROJECTS = "projects"
PROFILES = "profiles"


class TaskRepository:
    """CRUD over tasks and comments, decorating rows with display names."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def list_statuses(self) -> list[Status]:
        rows = await self.backend.query(STATUSES, order=Order("id"))
        return [Status.model_validate(row) for row in rows]

    async def list_projects(self) -> list[Project]:
        rows = await self.backend.query(PROJECTS, order=Order("name"))
        return [Project.model_validate(row) for row in rows]

    async def list_profiles(self) -> list[Profile]:
        rows = await self.backend.query(PROFILES, order=Order("name"))
        return [Profile.model_validate(row) for row in rows]

    async def get_profiles(self, user_ids: Iterable[str]) -> dict[str, Profile]:
        ids = sorted({str(uid) for uid in user_ids if uid})
        if not ids:
            return {}
        rows = await self.backend.query(PROFILES, {"id": ids})
        return {p.id: p for p in (Profile.model_validate(row) for row in rows)}

    async def _decorate(self, rows: list[Row]) -> list[Task]:
        tasks = [Task.model_validate(row) for row in rows]
        if not tasks:
            return tasks
        statuses = {s.id: s.name for s in await self.list_statuses()}
        projects = {p.id: p.name for p in await self.list_projects()}
        return [
            task.model_copy(
                update={
                    "status_name": statuses.get(task.status_id or ""),
                    "project_name": projects.get(task.project_id or ""),
                }
            )
            for task in tasks
        ]

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        rows = await self.backend.query(TASKS, order=Order("created_at"))
        return await self._decorate(rows)

    async def get_task(self, task_id: str) -> Task | None:
        rows = await self.backend.query(TASKS, {"id": task_id}, limit=1)
        tasks = await self._decorate(rows)
        return tasks[0] if tasks else None

    async def create_task(self, owner_id: str, body: TaskCreate) -> Task:
        row = {**body.model_dump(), "user_id": owner_id}
        rows = await self.backend.insert(TASKS, [row])
        (task,) = await self._decorate(rows[:1])
        logger.info(f"{format_component('STORE')} Task {task.id} created by {owner_id}")
        return task

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task | None:
        changes = patch.changes()
        if not changes:
            raise ValidationError("Nothing to update", {"__root__": "empty patch"})
        rows = await self.backend.update(TASKS, {"id": task_id}, changes)
        tasks = await self._decorate(rows[:1])
        return tasks[0] if tasks else None

    async def delete_task(self, task_id: str) -> None:
        await self.backend.delete(TASKS, {"id": task_id})
        logger.info(f"{format_component('STORE')} Task {task_id} deleted")

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def _with_authors(self, rows: list[Row]) -> list[Comment]:
        comments = [Comment.model_validate(row) for row in rows]
        profiles = await self.get_profiles(c.user_id for c in comments)
        return [
            c.model_copy(
                update={
                    "author_name": profiles[c.user_id].name if c.user_id in profiles else None,
                    "author_avatar_url": profiles[c.user_id].avatar_url if c.user_id in profiles else None,
                }
            )
            for c in comments
        ]

    async def list_comments(self, task_id: str) -> list[Comment]:
        """Newest first."""
        rows = await self.backend.query(COMMENTS, {"task_id": task_id}, order=Order("created_at", desc=True))
        return await self._with_authors(rows)

    async def create_comment(self, author_id: str, body: CommentCreate) -> Comment:
        rows = await self.backend.insert(COMMENTS, [{**body.model_dump(), "user_id": author_id}])
        (comment,) = await self._with_authors(rows[:1])
        return comment
