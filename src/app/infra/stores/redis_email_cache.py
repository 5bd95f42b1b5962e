"""Redis Email Cache: blob JSON com a última lista conhecida de emails.

Usado para renderização instantânea no cold start. Falhas do Redis são
registradas e engolidas: o loader segue como se o cache estivesse vazio.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from app.protocols.email_cache import EmailCacheProtocol
from config.logging import log_degraded

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)

# Prefixo para namespace do cache
EMAIL_CACHE_PREFIX = "email_cache:"


class RedisEmailCache(EmailCacheProtocol):
    """Cache de emails usando Redis (Upstash compatível).

    Args:
        async_redis_client: Cliente Redis assíncrono
        ttl_seconds: TTL do blob (0 = sem expiração)
    """

    def __init__(self, async_redis_client: AsyncRedis[bytes], ttl_seconds: int = 0) -> None:
        self._redis = async_redis_client
        self._ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{EMAIL_CACHE_PREFIX}{key}"

    async def get(self, key: str) -> list[dict[str, Any]] | None:
        try:
            raw = await self._redis.get(self._key(key))
        except (RedisError, OSError) as exc:
            log_degraded(logger, "redis_email_cache", "get_failed", error_type=type(exc).__name__)
            return None
        if raw is None:
            return None
        try:
            items = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(
                "email_cache_decode_error",
                extra={"key": key, "error_type": type(exc).__name__},
            )
            return None
        if not isinstance(items, list):
            logger.warning("email_cache_invalid_type", extra={"key": key})
            return None
        return [item for item in items if isinstance(item, dict)]

    async def set(self, key: str, items: list[dict[str, Any]]) -> None:
        try:
            payload = json.dumps(items)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "email_cache_encode_error",
                extra={"key": key, "error_type": type(exc).__name__},
            )
            return
        try:
            if self._ttl_seconds > 0:
                await self._redis.setex(self._key(key), self._ttl_seconds, payload)
            else:
                await self._redis.set(self._key(key), payload)
            logger.debug("email_cache_written", extra={"key": key, "count": len(items)})
        except (RedisError, OSError) as exc:
            log_degraded(logger, "redis_email_cache", "set_failed", error_type=type(exc).__name__)
