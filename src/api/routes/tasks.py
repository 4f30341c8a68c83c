"""Task, comment and reference data routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from api.utils import CurrentUser, Dispatcher, Repository
from taskboard.events import CommentAdded
from taskboard.exceptions import ValidationError
from taskboard.models import Comment, CommentCreate, Project, Status, Task, TaskCreate, TaskPatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Tasks"])


class CommentBody(BaseModel):
    content: str


async def _require_task(repository: Repository, task_id: str) -> Task:
    task = await repository.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return task


@router.get("/statuses")
async def api_list_statuses(repository: Repository, user_id: CurrentUser) -> list[Status]:
    return await repository.list_statuses()


@router.get("/projects")
async def api_list_projects(repository: Repository, user_id: CurrentUser) -> list[Project]:
    return await repository.list_projects()


@router.get("/tasks")
async def api_list_tasks(repository: Repository, user_id: CurrentUser) -> list[Task]:
    """List tasks, oldest first, with status and project names."""
    return await repository.list_tasks()


@router.post("/tasks", status_code=201)
async def api_create_task(
    body: TaskCreate, repository: Repository, dispatcher: Dispatcher, user_id: CurrentUser
) -> Task:
    """Create a task owned by the caller. Assigning someone at creation notifies them."""
    task = await repository.create_task(user_id, body)
    await dispatcher.dispatch_for_task_change(None, task, user_id)
    return task


@router.get("/tasks/{task_id}")
async def api_get_task(task_id: str, repository: Repository, user_id: CurrentUser) -> Task:
    return await _require_task(repository, task_id)


@router.patch("/tasks/{task_id}")
async def api_update_task(
    task_id: str, body: TaskPatch, repository: Repository, dispatcher: Dispatcher, user_id: CurrentUser
) -> Task:
    """
    Apply a partial update.

    A changed assignee is notified with `task_assigned`; otherwise the current
    assignee (if any, and not the caller) gets `task_updated`.
    """
    before = await _require_task(repository, task_id)
    after = await repository.update_task(task_id, body)
    if after is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    await dispatcher.dispatch_for_task_change(before, after, user_id)
    return after


@router.delete("/tasks/{task_id}", status_code=204)
async def api_delete_task(task_id: str, repository: Repository, user_id: CurrentUser) -> Response:
    await _require_task(repository, task_id)
    await repository.delete_task(task_id)
    return Response(status_code=204)


@router.get("/tasks/{task_id}/comments")
async def api_list_comments(task_id: str, repository: Repository, user_id: CurrentUser) -> list[Comment]:
    """Comments on a task, newest first."""
    return await repository.list_comments(task_id)


@router.post("/tasks/{task_id}/comments", status_code=201)
async def api_create_comment(
    task_id: str, body: CommentBody, repository: Repository, dispatcher: Dispatcher, user_id: CurrentUser
) -> Comment:
    try:
        request = CommentCreate(task_id=task_id, content=body.content)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Invalid comment") from e

    task = await _require_task(repository, task_id)
    comment = await repository.create_comment(user_id, request)
    await dispatcher.dispatch_on_comment_added(CommentAdded.for_task(task, user_id))
    return comment
