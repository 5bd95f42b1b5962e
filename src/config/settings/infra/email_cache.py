"""Settings do cache persistido da lista de emails."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

EmailCacheBackend = Literal["memory", "redis"]


@dataclass(frozen=True)
class EmailCacheSettings:
    """Configurações do cache de emails.

    Attributes:
        backend: memory (dev/test) ou redis
        cache_key: Chave do blob com a última lista conhecida
        ttl_seconds: TTL do blob no Redis (0 = sem expiração)
    """

    backend: EmailCacheBackend = "memory"
    cache_key: str = "emails"
    ttl_seconds: int = 0

    def validate(self, redis_url: str) -> list[str]:
        errors: list[str] = []
        if self.backend not in ("memory", "redis"):
            errors.append(f"EMAIL_CACHE_BACKEND inválido: {self.backend}")
        if self.backend == "redis" and not redis_url:
            errors.append("EMAIL_CACHE_BACKEND=redis exige REDIS_URL")
        if not self.cache_key:
            errors.append("EMAIL_CACHE_KEY não pode ser vazio")
        if self.ttl_seconds < 0:
            errors.append("EMAIL_CACHE_TTL_SECONDS deve ser >= 0")
        return errors


def _load_email_cache_from_env() -> EmailCacheSettings:
    backend_str = os.getenv("EMAIL_CACHE_BACKEND", "memory").lower()
    backend: EmailCacheBackend = "redis" if backend_str == "redis" else "memory"
    return EmailCacheSettings(
        backend=backend,
        cache_key=os.getenv("EMAIL_CACHE_KEY", "emails"),
        ttl_seconds=int(os.getenv("EMAIL_CACHE_TTL_SECONDS", "0")),
    )


@lru_cache(maxsize=1)
def get_email_cache_settings() -> EmailCacheSettings:
    """Retorna instância cacheada de EmailCacheSettings."""
    return _load_email_cache_from_env()
