"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, WebSocket

from taskboard.backend import Backend
from taskboard.dispatch import NotificationDispatcher
from taskboard.repository import TaskRepository
from taskboard.store import NotificationStore


def get_backend(request: Request) -> Backend:
    """Backend created by the app lifespan."""
    return request.app.state.backend


def get_repository(backend: Annotated[Backend, Depends(get_backend)]) -> TaskRepository:
    return TaskRepository(backend)


def get_store(backend: Annotated[Backend, Depends(get_backend)]) -> NotificationStore:
    return NotificationStore(backend)


def get_dispatcher(store: Annotated[NotificationStore, Depends(get_store)]) -> NotificationDispatcher:
    return NotificationDispatcher(store)


def bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    return authorization[7:]


async def current_user_id(
    backend: Annotated[Backend, Depends(get_backend)],
    authorization: str | None = Header(None),
) -> str:
    """Resolve the caller from ``Authorization: Bearer <jwt>``."""
    user_id = await backend.get_user_id(bearer_token(authorization))
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id


async def websocket_user_id(websocket: WebSocket, token: str | None) -> str | None:
    """Browsers cannot set headers on WebSocket upgrades, so the token comes as a query param."""
    if not token:
        return None
    backend: Backend = websocket.app.state.backend
    return await backend.get_user_id(token)


Repository = Annotated[TaskRepository, Depends(get_repository)]
Store = Annotated[NotificationStore, Depends(get_store)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
CurrentUser = Annotated[str, Depends(current_user_id)]
