"""Testes dos caches da lista de emails (memória e Redis com mock)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.infra.stores.memory_email_cache import MemoryEmailCache
from app.infra.stores.redis_email_cache import RedisEmailCache


class TestMemoryEmailCache:
    @pytest.mark.anyio
    async def test_missing_key_returns_none(self) -> None:
        cache = MemoryEmailCache()
        assert await cache.get("emails") is None

    @pytest.mark.anyio
    async def test_set_then_get_returns_copy(self) -> None:
        cache = MemoryEmailCache()
        items = [{"id": "e1", "subject": "Oi"}]
        await cache.set("emails", items)
        items[0]["subject"] = "alterado"

        loaded = await cache.get("emails")
        assert loaded == [{"id": "e1", "subject": "Oi"}]
        loaded[0]["subject"] = "outra"
        assert (await cache.get("emails"))[0]["subject"] == "Oi"
        assert cache.writes == 1

    @pytest.mark.anyio
    async def test_ttl_expires_entry(self) -> None:
        cache = MemoryEmailCache(ttl_seconds=10)
        with patch("app.infra.stores.memory_email_cache.time.time", return_value=1000.0):
            await cache.set("emails", [{"id": "e1"}])
        with patch("app.infra.stores.memory_email_cache.time.time", return_value=1011.0):
            assert await cache.get("emails") is None


class TestRedisEmailCache:
    @pytest.mark.anyio
    async def test_set_without_ttl_uses_set(self) -> None:
        mock_redis = MagicMock()
        mock_redis.set = AsyncMock()
        cache = RedisEmailCache(mock_redis)

        await cache.set("emails", [{"id": "e1"}])

        mock_redis.set.assert_awaited_once()
        key, payload = mock_redis.set.call_args[0]
        assert key == "email_cache:emails"
        assert json.loads(payload) == [{"id": "e1"}]

    @pytest.mark.anyio
    async def test_set_with_ttl_uses_setex(self) -> None:
        mock_redis = MagicMock()
        mock_redis.setex = AsyncMock()
        cache = RedisEmailCache(mock_redis, ttl_seconds=3600)

        await cache.set("emails", [])

        mock_redis.setex.assert_awaited_once_with("email_cache:emails", 3600, "[]")

    @pytest.mark.anyio
    async def test_get_decodes_list(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get = AsyncMock(return_value=json.dumps([{"id": "e1"}, "lixo"]).encode())
        cache = RedisEmailCache(mock_redis)

        assert await cache.get("emails") == [{"id": "e1"}]

    @pytest.mark.anyio
    async def test_get_invalid_json_returns_none(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get = AsyncMock(return_value=b"{not json")
        cache = RedisEmailCache(mock_redis)

        assert await cache.get("emails") is None

    @pytest.mark.anyio
    async def test_get_non_list_returns_none(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get = AsyncMock(return_value=b'{"id": "e1"}')
        cache = RedisEmailCache(mock_redis)

        assert await cache.get("emails") is None

    @pytest.mark.anyio
    async def test_redis_failures_are_swallowed(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
        mock_redis.set = AsyncMock(side_effect=RedisConnectionError("down"))
        cache = RedisEmailCache(mock_redis)

        assert await cache.get("emails") is None
        await cache.set("emails", [{"id": "e1"}])
