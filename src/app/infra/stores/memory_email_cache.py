"""Cache de emails em memória: apenas para desenvolvimento e testes.

ATENÇÃO: Não usar em staging/production. Sem persistência entre reinícios.
"""

from __future__ import annotations

import copy
import time
from typing import Any

from app.protocols.email_cache import EmailCacheProtocol


class MemoryEmailCache(EmailCacheProtocol):
    """Cache de emails em memória com TTL opcional."""

    def __init__(self, ttl_seconds: int = 0) -> None:
        self._store: dict[str, tuple[list[dict[str, Any]], float | None]] = {}
        self._ttl_seconds = ttl_seconds
        self.writes = 0

    async def get(self, key: str) -> list[dict[str, Any]] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        items, expires_at = entry
        if expires_at is not None and time.time() > expires_at:
            del self._store[key]
            return None
        # Cópia para que o chamador não altere o estado do cache
        return copy.deepcopy(items)

    async def set(self, key: str, items: list[dict[str, Any]]) -> None:
        expires_at = time.time() + self._ttl_seconds if self._ttl_seconds > 0 else None
        self._store[key] = (copy.deepcopy(list(items)), expires_at)
        self.writes += 1
