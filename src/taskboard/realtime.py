"""Realtime notification subscription.

One ``RealtimeSubscriptionManager`` per mounted UI session. Mounting opens a
single subscription to notification inserts for the current user; each
subscription owns its own queue and consumer loop, so events are applied in
arrival order and an old subscription's events can never reach a new user.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from taskboard import feed as feeds
from taskboard.backend import Backend, Row
from taskboard.exceptions import StoreError
from taskboard.feed import NotificationFeed
from taskboard.logging import format_component
from taskboard.models import Notification
from taskboard.settings import settings
from taskboard.store import NOTIFICATIONS, NotificationStore

logger = logging.getLogger(__name__)

NotificationListener = Callable[[Notification], Awaitable[None] | None]


class SubscriptionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


@dataclass(eq=False)
class _Subscription:
    user_id: str
    queue: asyncio.Queue[Row] = field(default_factory=asyncio.Queue)
    handle: Any = None
    consumer: asyncio.Task[None] | None = None


class RealtimeSubscriptionManager:
    """Keeps a user's notification list in sync with the realtime insert feed."""

    def __init__(
        self,
        backend: Backend,
        store: NotificationStore | None = None,
        *,
        page_size: int | None = None,
    ) -> None:
        self.backend = backend
        self.store = store or NotificationStore(backend)
        self.page_size = page_size or settings.notification_page_size
        self.state = SubscriptionState.DISCONNECTED
        self.feed = NotificationFeed()
        self._sub: _Subscription | None = None
        self._listeners: list[NotificationListener] = []
        self._refresh_generation = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str | None:
        return self._sub.user_id if self._sub else None

    @property
    def notifications(self) -> list[Notification]:
        return list(self.feed.items)

    @property
    def unread_count(self) -> int:
        return self.feed.unread_count

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """Call ``listener`` once for every newly merged realtime notification.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self, user_id: str) -> None:
        """Subscribe for ``user_id``. Tears down any subscription for another user first."""
        if self._sub and self._sub.user_id == user_id:
            return
        await self.unmount()

        sub = _Subscription(user_id=user_id)
        self._sub = sub
        self.state = SubscriptionState.CONNECTING
        self.feed = NotificationFeed(is_loading=True)
        logger.info(f"{format_component('RT')} Connecting notifications for user {user_id}")

        try:
            handle = await self.backend.subscribe(
                NOTIFICATIONS,
                {"user_id": user_id},
                lambda row: self._enqueue(sub, row),
            )
        except StoreError as e:
            if self._sub is sub:
                self._sub = None
                self.state = SubscriptionState.DISCONNECTED
                self.feed = replace(self.feed, is_loading=False, error=e.message)
            logger.error(f"{format_component('RT')} Subscription failed for user {user_id}: {e.message}")
            return

        if self._sub is not sub:
            # Unmounted or remounted while connecting
            await self._release(handle)
            return

        sub.handle = handle
        sub.consumer = asyncio.create_task(self._consume(sub))
        self.state = SubscriptionState.SUBSCRIBED
        logger.info(f"{format_component('RT')} Subscribed to notifications for user {user_id}")
        await self.refresh()

    async def unmount(self) -> None:
        """Release the subscription. Safe to call when nothing is mounted."""
        sub, self._sub = self._sub, None
        self._refresh_generation += 1
        self.state = SubscriptionState.DISCONNECTED
        self.feed = NotificationFeed()
        if sub is None:
            return
        if sub.consumer:
            sub.consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sub.consumer
        if sub.handle is not None:
            await self._release(sub.handle)
        logger.info(f"{format_component('RT')} Disconnected notifications for user {sub.user_id}")

    @contextlib.asynccontextmanager
    async def mounted(self, user_id: str) -> AsyncIterator[RealtimeSubscriptionManager]:
        await self.mount(user_id)
        try:
            yield self
        finally:
            await self.unmount()

    async def _release(self, handle: Any) -> None:
        try:
            await self.backend.unsubscribe(handle)
        except StoreError as e:
            logger.warning(f"{format_component('RT')} Unsubscribe failed: {e.message}")

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Replace the list with server truth. A response superseded by a newer refresh is dropped."""
        sub = self._sub
        if sub is None:
            return
        self._refresh_generation += 1
        generation = self._refresh_generation
        self.feed = replace(self.feed, is_loading=True)
        try:
            items = await self.store.list_for_user(sub.user_id, limit=self.page_size)
        except StoreError as e:
            if generation == self._refresh_generation:
                self.feed = replace(self.feed, is_loading=False, error=e.message)
            logger.error(f"{format_component('RT')} Error loading notifications for user {sub.user_id}: {e.message}")
            return
        if generation != self._refresh_generation:
            logger.debug(f"{format_component('RT')} Discarding superseded notification fetch")
            return
        self.feed = feeds.replaced(self.feed, items)

    # ------------------------------------------------------------------
    # Realtime events
    # ------------------------------------------------------------------

    def _enqueue(self, sub: _Subscription, row: Row) -> None:
        if self._sub is not sub:
            return
        sub.queue.put_nowait(row)

    async def _consume(self, sub: _Subscription) -> None:
        while True:
            row = await sub.queue.get()
            try:
                await self._merge(sub, row)
            finally:
                sub.queue.task_done()

    async def _merge(self, sub: _Subscription, row: Row) -> None:
        try:
            notification = Notification.model_validate(row)
        except PydanticValidationError:
            logger.warning(f"{format_component('RT')} Dropping malformed notification payload: {row!r}")
            return
        if notification.user_id != sub.user_id:
            logger.debug(f"{format_component('RT')} Dropping notification {notification.id} for another user")
            return
        if notification.id in self.feed.ids():
            return

        try:
            actor_name = await self.store.actor_name(notification.creator_id)
        except StoreError as e:
            logger.warning(f"{format_component('RT')} Could not load actor for notification {notification.id}: {e.message}")
            actor_name = None
        notification = notification.model_copy(update={"actor_name": actor_name})

        if self._sub is not sub:
            return
        before = self.feed
        self.feed = feeds.with_incoming(self.feed, notification)
        if self.feed is not before:
            await self._notify(notification)

    async def _notify(self, notification: Notification) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(notification)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"{format_component('RT')} Notification listener failed for {notification.id}")

    async def drain(self) -> None:
        """Wait until every event received so far has been merged."""
        if self._sub is not None:
            await self._sub.queue.join()

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------

    async def mark_read(self, notification_id: str) -> None:
        """Optimistically mark one notification read; reverted if the store rejects it."""
        sub = self._sub
        if sub is None:
            return
        was_unread = notification_id in feeds.unread_ids(self.feed)
        self.feed = feeds.with_read(self.feed, [notification_id])
        try:
            await self.store.mark_read(notification_id, sub.user_id)
        except StoreError:
            if was_unread:
                self.feed = feeds.with_unread(self.feed, [notification_id])
            raise

    async def mark_all_read(self) -> None:
        sub = self._sub
        if sub is None:
            return
        ids = feeds.unread_ids(self.feed)
        self.feed = feeds.with_all_read(self.feed)
        try:
            await self.store.mark_all_read(sub.user_id)
        except StoreError:
            self.feed = feeds.with_unread(self.feed, ids)
            raise
