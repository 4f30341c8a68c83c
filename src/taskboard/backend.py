"""Storage and realtime backend.

The core talks to the hosted backend through the small ``Backend`` protocol:
query/insert/update/delete over named collections plus insert subscriptions.
``SupabaseBackend`` implements it on the async Supabase client.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase._async.client import AsyncClient
from supabase._async.client import create_client as create_async_client

from taskboard.exceptions import AuthorizationError, ConfigError, StoreError, TransportError
from taskboard.logging import format_component
from taskboard.settings import Settings, settings

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Filters = Mapping[str, Any]
InsertCallback = Callable[[Row], None]

# PostgREST / Postgres codes that mean "this session may not do that"
AUTHORIZATION_CODES = frozenset({"42501", "PGRST301", "PGRST302", "401", "403"})


@dataclass(frozen=True)
class Order:
    column: str
    desc: bool = False


class Backend(Protocol):
    """Contract consumed from the storage/auth collaborator."""

    async def query(
        self,
        collection: str,
        filters: Filters | None = None,
        order: Order | None = None,
        limit: int | None = None,
        columns: str = "*",
    ) -> list[Row]: ...

    async def insert(self, collection: str, rows: list[Row]) -> list[Row]: ...

    async def update(self, collection: str, filters: Filters, patch: Row) -> list[Row]: ...

    async def delete(self, collection: str, filters: Filters) -> None: ...

    async def subscribe(self, collection: str, filters: Filters, on_insert: InsertCallback) -> Any: ...

    async def unsubscribe(self, handle: Any) -> None: ...

    async def get_user_id(self, access_token: str) -> str | None: ...


def translate_error(exc: Exception) -> StoreError:
    """Map a client-library exception onto the store error taxonomy."""
    if isinstance(exc, StoreError):
        return exc
    if isinstance(exc, APIError):
        code = str(exc.code or "")
        message = exc.message or str(exc)
        if code in AUTHORIZATION_CODES:
            return AuthorizationError(message)
        return StoreError(message)
    if isinstance(exc, (httpx.HTTPError, OSError)):
        return TransportError(str(exc) or exc.__class__.__name__)
    return StoreError(str(exc))


def extract_record(payload: dict[str, Any]) -> Row:
    """Pull the inserted row out of a realtime payload.

    supabase-py v2 nests it under ``data.record``; older payloads use ``new``.
    """
    return (
        payload.get("new")
        or (payload.get("data", {}) or {}).get("record")
        or payload.get("record")
        or {}
    )


def _eq_filter(filters: Filters) -> str | None:
    """Server-side realtime filter. Realtime supports a single ``column=eq.value`` clause."""
    if not filters:
        return None
    if len(filters) > 1:
        raise ValueError("Realtime subscriptions accept a single equality filter")
    ((column, value),) = filters.items()
    return f"{column}=eq.{value}"


class SupabaseBackend:
    """Backend implemented on the async Supabase client."""

    def __init__(self, client: AsyncClient, schema: str = "public") -> None:
        self.client = client
        self.schema = schema

    @classmethod
    async def connect(cls, config: Settings | None = None, *, service_role: bool = False) -> SupabaseBackend:
        """Create a backend from settings. Raises ConfigError if credentials are missing."""
        config = config or settings
        key = config.supabase_service_role_key if service_role else config.supabase_anon_key
        if not config.supabase_url or not key:
            missing = "SUPABASE_SERVICE_ROLE_KEY" if service_role else "SUPABASE_ANON_KEY"
            raise ConfigError(f"Missing SUPABASE_URL or {missing}")
        client = await create_async_client(config.supabase_url, key)
        return cls(client, schema=config.realtime_schema)

    @staticmethod
    def _apply_filters(builder: Any, filters: Filters | None) -> Any:
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set, frozenset)):
                builder = builder.in_(column, list(value))
            else:
                builder = builder.eq(column, value)
        return builder

    async def query(
        self,
        collection: str,
        filters: Filters | None = None,
        order: Order | None = None,
        limit: int | None = None,
        columns: str = "*",
    ) -> list[Row]:
        builder = self._apply_filters(self.client.table(collection).select(columns), filters)
        if order:
            builder = builder.order(order.column, desc=order.desc)
        if limit:
            builder = builder.limit(limit)
        try:
            response = await builder.execute()
        except Exception as e:
            raise translate_error(e) from e
        return list(response.data or [])

    async def insert(self, collection: str, rows: list[Row]) -> list[Row]:
        try:
            response = await self.client.table(collection).insert(rows).execute()
        except Exception as e:
            raise translate_error(e) from e
        return list(response.data or [])

    async def update(self, collection: str, filters: Filters, patch: Row) -> list[Row]:
        if not filters:
            raise ValueError("update requires a filter")
        builder = self._apply_filters(self.client.table(collection).update(patch), filters)
        try:
            response = await builder.execute()
        except Exception as e:
            raise translate_error(e) from e
        return list(response.data or [])

    async def delete(self, collection: str, filters: Filters) -> None:
        if not filters:
            raise ValueError("delete requires a filter")
        builder = self._apply_filters(self.client.table(collection).delete(), filters)
        try:
            await builder.execute()
        except Exception as e:
            raise translate_error(e) from e

    async def subscribe(self, collection: str, filters: Filters, on_insert: InsertCallback) -> Any:
        """Subscribe to INSERTs on ``collection`` matching ``filters``. Returns the channel."""
        channel = self.client.channel(f"{collection}-{uuid.uuid4().hex[:8]}")

        def _callback(payload: dict[str, Any]) -> None:
            record = extract_record(payload)
            if not record:
                logger.warning(f"{format_component('RT')} Empty realtime payload on {collection}")
                return
            on_insert(record)

        channel.on_postgres_changes(
            event="INSERT",
            schema=self.schema,
            table=collection,
            filter=_eq_filter(filters),
            callback=_callback,
        )
        try:
            await channel.subscribe()
        except Exception as e:
            raise TransportError(f"Realtime subscription failed: {e}") from e
        logger.info(f"{format_component('RT')} Subscribed to {collection} inserts ({_eq_filter(filters)})")
        return channel

    async def unsubscribe(self, handle: Any) -> None:
        try:
            await self.client.remove_channel(handle)
        except Exception as e:
            raise translate_error(e) from e

    async def get_user_id(self, access_token: str) -> str | None:
        """Resolve a Supabase access token to the user id, or None if it is not valid."""
        try:
            response = await self.client.auth.get_user(access_token)
        except (httpx.HTTPError, OSError) as e:
            raise TransportError(str(e)) from e
        except Exception:
            logger.debug("Access token rejected")
            return None
        if response and response.user:
            return str(response.user.id)
        return None
