"""Tests for the Supabase backend adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from taskboard.backend import Order, SupabaseBackend, _eq_filter, extract_record, translate_error
from taskboard.exceptions import AuthorizationError, ConfigError, StoreError, TransportError
from taskboard.settings import Settings


class MockSupabaseResponse:
    """Mock Supabase response."""

    def __init__(self, data: list | None = None) -> None:
        self.data = data


class MockSupabaseQuery:
    """Mock async Supabase query builder that records the chain."""

    def __init__(self, data: list | None = None, error: Exception | None = None) -> None:
        self._data = data
        self._error = error
        self.chain: list[tuple] = []

    def _record(self, *call) -> MockSupabaseQuery:
        self.chain.append(call)
        return self

    def select(self, columns: str) -> MockSupabaseQuery:
        return self._record("select", columns)

    def insert(self, rows: list) -> MockSupabaseQuery:
        return self._record("insert", rows)

    def update(self, patch: dict) -> MockSupabaseQuery:
        return self._record("update", patch)

    def delete(self) -> MockSupabaseQuery:
        return self._record("delete")

    def eq(self, column: str, value) -> MockSupabaseQuery:
        return self._record("eq", column, value)

    def in_(self, column: str, values: list) -> MockSupabaseQuery:
        return self._record("in_", column, values)

    def order(self, column: str, desc: bool = False) -> MockSupabaseQuery:
        return self._record("order", column, desc)

    def limit(self, n: int) -> MockSupabaseQuery:
        return self._record("limit", n)

    async def execute(self) -> MockSupabaseResponse:
        if self._error:
            raise self._error
        return MockSupabaseResponse(self._data)


def _client(query: MockSupabaseQuery) -> MagicMock:
    client = MagicMock()
    client.table.return_value = query
    return client


def _api_error(code: str, message: str = "rejected") -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


class TestQueries:
    @pytest.mark.asyncio
    async def test_query_builds_filter_chain(self) -> None:
        query = MockSupabaseQuery([{"id": "n-1"}])
        backend = SupabaseBackend(_client(query))

        rows = await backend.query(
            "notifications",
            {"user_id": "u-1", "id": ["a", "b"]},
            order=Order("created_at", desc=True),
            limit=20,
            columns="id",
        )

        assert rows == [{"id": "n-1"}]
        assert query.chain == [
            ("select", "id"),
            ("eq", "user_id", "u-1"),
            ("in_", "id", ["a", "b"]),
            ("order", "created_at", True),
            ("limit", 20),
        ]

    @pytest.mark.asyncio
    async def test_none_data_is_empty(self) -> None:
        backend = SupabaseBackend(_client(MockSupabaseQuery(None)))
        assert await backend.query("tasks") == []

    @pytest.mark.asyncio
    async def test_update_and_delete_require_filters(self) -> None:
        backend = SupabaseBackend(_client(MockSupabaseQuery([])))
        with pytest.raises(ValueError):
            await backend.update("tasks", {}, {"title": "x"})
        with pytest.raises(ValueError):
            await backend.delete("tasks", {})

    @pytest.mark.asyncio
    async def test_update_returns_rows(self) -> None:
        query = MockSupabaseQuery([{"id": "n-1", "read": True}])
        backend = SupabaseBackend(_client(query))
        rows = await backend.update("notifications", {"user_id": "u-1", "read": False}, {"read": True})
        assert rows == [{"id": "n-1", "read": True}]
        assert query.chain == [("update", {"read": True}), ("eq", "user_id", "u-1"), ("eq", "read", False)]

    @pytest.mark.asyncio
    async def test_authorization_error_mapped(self) -> None:
        backend = SupabaseBackend(_client(MockSupabaseQuery(error=_api_error("42501", "permission denied"))))
        with pytest.raises(AuthorizationError, match="permission denied"):
            await backend.insert("tasks", [{"title": "x"}])

    @pytest.mark.asyncio
    async def test_other_api_error_is_store_error(self) -> None:
        backend = SupabaseBackend(_client(MockSupabaseQuery(error=_api_error("23502", "null value"))))
        with pytest.raises(StoreError) as exc_info:
            await backend.delete("tasks", {"id": "t-1"})
        assert not isinstance(exc_info.value, AuthorizationError)

    @pytest.mark.asyncio
    async def test_transport_error_mapped(self) -> None:
        backend = SupabaseBackend(_client(MockSupabaseQuery(error=httpx.ConnectError("connection refused"))))
        with pytest.raises(TransportError):
            await backend.query("tasks")


class TestTranslateError:
    def test_store_errors_pass_through(self) -> None:
        error = TransportError("x")
        assert translate_error(error) is error

    def test_jwt_errors_are_authorization(self) -> None:
        assert isinstance(translate_error(_api_error("PGRST301")), AuthorizationError)

    def test_unknown_exception(self) -> None:
        error = translate_error(RuntimeError("weird"))
        assert type(error) is StoreError
        assert error.message == "weird"


class TestRealtime:
    def _channel_client(self) -> tuple[MagicMock, MagicMock]:
        channel = MagicMock()
        channel.subscribe = AsyncMock()
        client = MagicMock()
        client.channel.return_value = channel
        client.remove_channel = AsyncMock()
        return client, channel

    @pytest.mark.asyncio
    async def test_subscribe_registers_insert_listener(self) -> None:
        client, channel = self._channel_client()
        backend = SupabaseBackend(client, schema="public")
        received: list[dict] = []

        handle = await backend.subscribe("notifications", {"user_id": "u-1"}, received.append)

        assert handle is channel
        kwargs = channel.on_postgres_changes.call_args.kwargs
        assert kwargs["event"] == "INSERT"
        assert kwargs["schema"] == "public"
        assert kwargs["table"] == "notifications"
        assert kwargs["filter"] == "user_id=eq.u-1"
        channel.subscribe.assert_awaited_once()

        callback = kwargs["callback"]
        callback({"data": {"record": {"id": "n-1"}}})
        callback({"new": {"id": "n-2"}})
        callback({"data": {}})
        assert received == [{"id": "n-1"}, {"id": "n-2"}]

    @pytest.mark.asyncio
    async def test_subscribe_failure_is_transport_error(self) -> None:
        client, channel = self._channel_client()
        channel.subscribe.side_effect = RuntimeError("socket closed")
        backend = SupabaseBackend(client)

        with pytest.raises(TransportError, match="socket closed"):
            await backend.subscribe("notifications", {"user_id": "u-1"}, lambda row: None)

    @pytest.mark.asyncio
    async def test_unsubscribe_removes_channel(self) -> None:
        client, channel = self._channel_client()
        backend = SupabaseBackend(client)
        await backend.unsubscribe(channel)
        client.remove_channel.assert_awaited_once_with(channel)

    def test_eq_filter(self) -> None:
        assert _eq_filter({}) is None
        assert _eq_filter({"user_id": "u-1"}) == "user_id=eq.u-1"
        with pytest.raises(ValueError):
            _eq_filter({"user_id": "u-1", "read": False})

    def test_extract_record_shapes(self) -> None:
        assert extract_record({"new": {"id": 1}}) == {"id": 1}
        assert extract_record({"data": {"record": {"id": 2}}}) == {"id": 2}
        assert extract_record({"record": {"id": 3}}) == {"id": 3}
        assert extract_record({"data": None}) == {}


class TestAuth:
    @pytest.mark.asyncio
    async def test_get_user_id(self) -> None:
        client = MagicMock()
        client.auth.get_user = AsyncMock(return_value=SimpleNamespace(user=SimpleNamespace(id="u-1")))
        assert await SupabaseBackend(client).get_user_id("jwt") == "u-1"

    @pytest.mark.asyncio
    async def test_rejected_token_is_none(self) -> None:
        client = MagicMock()
        client.auth.get_user = AsyncMock(side_effect=Exception("invalid JWT"))
        assert await SupabaseBackend(client).get_user_id("bad") is None

    @pytest.mark.asyncio
    async def test_unreachable_auth_is_transport_error(self) -> None:
        client = MagicMock()
        client.auth.get_user = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))
        with pytest.raises(TransportError):
            await SupabaseBackend(client).get_user_id("jwt")


class TestConnect:
    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        config = Settings(_env_file=None, supabase_url=None, supabase_anon_key=None)
        with pytest.raises(ConfigError, match="SUPABASE_ANON_KEY"):
            await SupabaseBackend.connect(config)

    @pytest.mark.asyncio
    async def test_service_role_requires_its_key(self) -> None:
        config = Settings(
            _env_file=None,
            supabase_url="https://x.supabase.co",
            supabase_anon_key="anon",
            supabase_service_role_key=None,
        )
        with pytest.raises(ConfigError, match="SUPABASE_SERVICE_ROLE_KEY"):
            await SupabaseBackend.connect(config, service_role=True)

    @pytest.mark.asyncio
    async def test_connect_uses_configured_key(self) -> None:
        config = Settings(
            _env_file=None,
            supabase_url="https://x.supabase.co",
            supabase_anon_key="anon",
            realtime_schema="tenant",
        )
        client = MagicMock()
        with patch("taskboard.backend.create_async_client", new=AsyncMock(return_value=client)) as create:
            backend = await SupabaseBackend.connect(config)

        create.assert_awaited_once_with("https://x.supabase.co", "anon")
        assert backend.client is client
        assert backend.schema == "tenant"
