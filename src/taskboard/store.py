"""Notification store adapter.

Thin wrapper over the ``notifications`` collection. Every read is filtered by
recipient; failures surface as StoreError and are never retried here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from taskboard.backend import Backend, Order, Row
from taskboard.exceptions import StoreError
from taskboard.logging import format_component
from taskboard.models import Notification, NotificationCreate, Profile

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
PROFILES = "profiles"


class NotificationStore:
    """Persisted notifications for recipients."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    async def insert(self, request: NotificationCreate) -> Notification:
        rows = await self.backend.insert(NOTIFICATIONS, [request.model_dump(mode="json")])
        if not rows:
            raise StoreError(f"Insert into {NOTIFICATIONS} returned no row for user {request.user_id}")
        notification = Notification.model_validate(rows[0])
        logger.debug(f"{format_component('STORE')} Notification {notification.id} -> user {notification.user_id}")
        return notification

    async def insert_many(self, requests: Iterable[NotificationCreate]) -> list[Notification]:
        payload = [r.model_dump(mode="json") for r in requests]
        if not payload:
            return []
        rows = await self.backend.insert(NOTIFICATIONS, payload)
        return [Notification.model_validate(row) for row in rows]

    async def list_for_user(self, user_id: str, limit: int = 20) -> list[Notification]:
        """Most recent first, with the actor's display name filled in."""
        rows = await self.backend.query(
            NOTIFICATIONS,
            {"user_id": user_id},
            order=Order("created_at", desc=True),
            limit=limit,
        )
        names = await self.actor_names({row["creator_id"] for row in rows if row.get("creator_id")})
        return [
            Notification.model_validate({**row, "actor_name": names.get(str(row.get("creator_id")))})
            for row in rows
        ]

    async def unread_count(self, user_id: str) -> int:
        rows = await self.backend.query(NOTIFICATIONS, {"user_id": user_id, "read": False}, columns="id")
        return len(rows)

    async def mark_read(self, notification_id: str, user_id: str | None = None) -> None:
        filters: dict[str, Any] = {"id": notification_id}
        if user_id is not None:
            filters["user_id"] = user_id
        await self.backend.update(NOTIFICATIONS, filters, {"read": True})

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every currently-unread notification of ``user_id`` as read. Returns rows touched."""
        rows: list[Row] = await self.backend.update(
            NOTIFICATIONS, {"user_id": user_id, "read": False}, {"read": True}
        )
        return len(rows)

    async def actor_names(self, user_ids: Iterable[str]) -> dict[str, str | None]:
        ids = sorted({str(uid) for uid in user_ids})
        if not ids:
            return {}
        rows = await self.backend.query(PROFILES, {"id": ids}, columns="id, name")
        profiles = [Profile.model_validate(row) for row in rows]
        return {p.id: p.name for p in profiles}

    async def actor_name(self, user_id: str) -> str | None:
        return (await self.actor_names([user_id])).get(str(user_id))
