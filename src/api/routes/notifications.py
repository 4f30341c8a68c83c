"""Notification routes (REST and WebSocket)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import APIRouter, Query, Response, WebSocket, WebSocketDisconnect, status

from api.utils import CurrentUser, Store, websocket_user_id
from taskboard.logging import format_component
from taskboard.models import Notification
from taskboard.realtime import RealtimeSubscriptionManager
from taskboard.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
async def api_list_notifications(
    store: Store,
    user_id: CurrentUser,
    limit: int = Query(default=settings.notification_page_size, ge=1, le=100),
) -> list[Notification]:
    """The caller's most recent notifications, newest first."""
    return await store.list_for_user(user_id, limit=limit)


@router.get("/unread-count")
async def api_unread_count(store: Store, user_id: CurrentUser) -> dict[str, int]:
    return {"unread_count": await store.unread_count(user_id)}


@router.post("/read-all")
async def api_mark_all_read(store: Store, user_id: CurrentUser) -> dict[str, int]:
    updated = await store.mark_all_read(user_id)
    logger.info(f"{format_component('API')} Marked {updated} notifications read for user {user_id}")
    return {"updated": updated}


@router.post("/{notification_id}/read", status_code=204)
async def api_mark_read(notification_id: str, store: Store, user_id: CurrentUser) -> Response:
    await store.mark_read(notification_id, user_id)
    return Response(status_code=204)


def _snapshot_frame(manager: RealtimeSubscriptionManager) -> dict[str, Any]:
    return {
        "type": "snapshot",
        "data": {
            "notifications": [n.model_dump(mode="json") for n in manager.notifications],
            "unread_count": manager.unread_count,
            "error": manager.feed.error,
        },
    }


async def _send_frames(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        frame = await outbox.get()
        await websocket.send_json(frame)


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket, token: str | None = None) -> None:
    """
    Stream the caller's notifications.

    The first frame is `{"type": "snapshot", "data": {...}}` with the current
    list; every notification inserted afterwards arrives once as
    `{"type": "notification", "data": {...}}`. Incoming messages are ignored.
    """
    user_id = await websocket_user_id(websocket, token)
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info(f"{format_component('WS')} Notification stream opened for user {user_id}")

    manager = RealtimeSubscriptionManager(websocket.app.state.backend)
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async with manager.mounted(user_id):
        # Snapshot and listener are registered together so no merge falls between them
        outbox.put_nowait(_snapshot_frame(manager))
        manager.add_listener(
            lambda n: outbox.put_nowait({"type": "notification", "data": n.model_dump(mode="json")})
        )
        sender = asyncio.create_task(_send_frames(websocket, outbox))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"{format_component('WS')} Notification stream closed for user {user_id}")
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
