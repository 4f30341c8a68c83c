"""Local notification state.

``NotificationFeed`` is immutable and every update is a pure function of the
previous feed, so realtime inserts and read-state changes can interleave in
any order without clobbering each other.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace

from taskboard.models import Notification


@dataclass(frozen=True)
class NotificationFeed:
    items: tuple[Notification, ...] = ()
    is_loading: bool = False
    error: str | None = None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.items if not n.read)

    def ids(self) -> set[str]:
        return {n.id for n in self.items}


def replaced(feed: NotificationFeed, items: Iterable[Notification]) -> NotificationFeed:
    """Server truth from a full fetch.

    Local items newer than anything the fetch returned arrived over realtime
    while the fetch was in flight; they stay on top.
    """
    unique: dict[str, Notification] = {}
    for n in items:
        unique.setdefault(n.id, n)
    server = tuple(unique.values())
    newest = max((n.created_at for n in server if n.created_at), default=None)
    newer = tuple(
        n
        for n in feed.items
        if n.id not in unique and newest is not None and n.created_at is not None and n.created_at > newest
    )
    return replace(feed, items=newer + server, is_loading=False, error=None)


def with_incoming(feed: NotificationFeed, notification: Notification) -> NotificationFeed:
    """Prepend a realtime insert. A notification already present is ignored."""
    if notification.id in feed.ids():
        return feed
    return replace(feed, items=(notification, *feed.items))


def _set_read(feed: NotificationFeed, ids: set[str], read: bool) -> NotificationFeed:
    return replace(
        feed,
        items=tuple(
            n.model_copy(update={"read": read}) if n.id in ids and n.read != read else n
            for n in feed.items
        ),
    )


def with_read(feed: NotificationFeed, ids: Iterable[str]) -> NotificationFeed:
    return _set_read(feed, set(ids), True)


def with_unread(feed: NotificationFeed, ids: Iterable[str]) -> NotificationFeed:
    return _set_read(feed, set(ids), False)


def with_all_read(feed: NotificationFeed) -> NotificationFeed:
    return with_read(feed, (n.id for n in feed.items if not n.read))


def unread_ids(feed: NotificationFeed) -> list[str]:
    return [n.id for n in feed.items if not n.read]
