"""Keyed query cache with stale-response suppression.

Keys are tuples; operations that take a prefix apply to every key that starts
with it, so ``("tasks",)`` covers ``("tasks", user_id)``.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from taskboard.exceptions import StaleStateError
from taskboard.logging import format_component

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
Fetcher = Callable[[], Awaitable[Any]]

_MISSING = object()


@dataclass
class _Entry:
    data: Any = None
    has_data: bool = False
    fetcher: Fetcher | None = None
    generation: int = 0
    in_flight: asyncio.Task[Any] | None = None


@dataclass(frozen=True)
class Snapshot:
    """Deep copy of the data under a set of keys, taken before a mutation."""

    values: dict[QueryKey, Any]


def _matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    def __init__(self) -> None:
        self._entries: dict[QueryKey, _Entry] = {}

    def keys(self, prefix: QueryKey = ()) -> list[QueryKey]:
        return [k for k in self._entries if _matches(k, prefix)]

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return default
        return entry.data

    def set(self, key: QueryKey, value: Any) -> Any:
        """Store ``value``, or ``value(previous)`` when it is callable."""
        entry = self._entries.setdefault(key, _Entry())
        if callable(value):
            value = value(entry.data if entry.has_data else None)
        entry.data = value
        entry.has_data = True
        return value

    def remove(self, key: QueryKey) -> None:
        entry = self._entries.pop(key, None)
        if entry and entry.in_flight:
            entry.in_flight.cancel()

    async def fetch(self, key: QueryKey, fetcher: Fetcher | None = None) -> Any:
        """Run ``fetcher`` and store its result unless a newer fetch or a cancel superseded it.

        A superseded fetch returns whatever the cache holds at that point.
        """
        entry = self._entries.setdefault(key, _Entry())
        if fetcher is not None:
            entry.fetcher = fetcher
        if entry.fetcher is None:
            raise KeyError(f"No fetcher registered for {key!r}")

        try:
            return await self._run(key, entry)
        except StaleStateError:
            logger.debug(f"{format_component('CACHE')} Discarded stale response for {key!r}")
            return self.get(key)

    async def _run(self, key: QueryKey, entry: _Entry) -> Any:
        entry.generation += 1
        generation = entry.generation
        task = asyncio.ensure_future(entry.fetcher())
        entry.in_flight = task
        try:
            data = await task
        except asyncio.CancelledError:
            if task.cancelled() and self._superseded(key, entry, generation):
                raise StaleStateError(key) from None
            raise
        finally:
            if entry.in_flight is task:
                entry.in_flight = None
        if self._superseded(key, entry, generation):
            raise StaleStateError(key)
        entry.data = data
        entry.has_data = True
        return data

    def _superseded(self, key: QueryKey, entry: _Entry, generation: int) -> bool:
        return self._entries.get(key) is not entry or entry.generation != generation

    async def cancel(self, prefix: QueryKey) -> None:
        """Cancel in-flight fetches under ``prefix``; their responses will be ignored."""
        tasks = []
        for key in self.keys(prefix):
            entry = self._entries[key]
            entry.generation += 1
            if entry.in_flight and not entry.in_flight.done():
                entry.in_flight.cancel()
                tasks.append(entry.in_flight)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def invalidate(self, prefix: QueryKey) -> None:
        """Refetch every key under ``prefix`` that has a registered fetcher."""
        keys = [k for k in self.keys(prefix) if self._entries[k].fetcher is not None]
        await asyncio.gather(*(self.fetch(k) for k in keys))

    def snapshot(self, keys: list[QueryKey]) -> Snapshot:
        return Snapshot(
            {k: copy.deepcopy(self._entries[k].data) if self._has(k) else _MISSING for k in keys}
        )

    def restore(self, snapshot: Snapshot) -> None:
        for key, value in snapshot.values.items():
            if value is _MISSING:
                entry = self._entries.get(key)
                if entry:
                    entry.data = None
                    entry.has_data = False
                continue
            self.set(key, lambda _prev, v=value: copy.deepcopy(v))

    def _has(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.has_data
