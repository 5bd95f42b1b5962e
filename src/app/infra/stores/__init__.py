"""Stores: implementações concretas de persistência.

Módulos disponíveis:
    - firestore_email_fetcher: leitura paginada da collection `emails`
    - memory_email_cache: cache da lista em memória (dev/testes)
    - redis_email_cache: cache da lista no Redis (Upstash)
"""

from __future__ import annotations

from app.infra.stores.firestore_email_fetcher import (
    FetchPage,
    FirestoreEmailFetcher,
    PaginationState,
)
from app.infra.stores.memory_email_cache import MemoryEmailCache
from app.infra.stores.redis_email_cache import RedisEmailCache

__all__ = [
    # Firestore
    "FetchPage",
    "FirestoreEmailFetcher",
    "PaginationState",
    # Memory (dev/test)
    "MemoryEmailCache",
    # Redis (Upstash)
    "RedisEmailCache",
]
