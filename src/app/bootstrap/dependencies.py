"""Factories de cache, fetcher e sessão: criação de implementações concretas.

Centraliza a escolha das implementações a partir das settings de
ambiente (EMAIL_CACHE_BACKEND, FIRESTORE_*, EMAIL_SYNC_*).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.bootstrap.clients import create_async_redis_client, create_firestore_client
from app.infra.stores import FirestoreEmailFetcher, MemoryEmailCache, RedisEmailCache
from app.services.email_sync import EmailSyncSession
from config.settings import (
    get_base_settings,
    get_email_cache_settings,
    get_email_sync_settings,
    get_firestore_settings,
)

if TYPE_CHECKING:
    from app.domain.identity import IdentityProviderProtocol
    from app.protocols import EmailCacheProtocol

logger = logging.getLogger(__name__)


def create_email_cache() -> EmailCacheProtocol:
    """Cria o cache da lista conforme EMAIL_CACHE_BACKEND.

    - "memory": MemoryEmailCache (dev/test)
    - "redis": RedisEmailCache (staging/production)
    """
    settings = get_email_cache_settings()

    if settings.backend == "redis":
        cache = RedisEmailCache(create_async_redis_client(), ttl_seconds=settings.ttl_seconds)
        logger.info("email_cache_created", extra={"backend": "redis"})
        return cache

    environment = get_base_settings().environment
    if environment not in ("development", "test"):
        logger.warning(
            "memory_store_in_non_dev",
            extra={"backend": "memory", "environment": environment},
        )
    logger.info("email_cache_created", extra={"backend": "memory"})
    return MemoryEmailCache(ttl_seconds=settings.ttl_seconds)


def create_email_fetcher() -> FirestoreEmailFetcher:
    return FirestoreEmailFetcher(
        create_firestore_client(),
        get_email_sync_settings(),
        collection=get_firestore_settings().collection_emails,
    )


def create_email_sync_session(
    identity_provider: IdentityProviderProtocol,
    *,
    emails_page_active: bool = True,
    cache: EmailCacheProtocol | None = None,
) -> EmailSyncSession:
    """Monta uma EmailSyncSession para o usuário do identity_provider.

    Args:
        identity_provider: Papel e email do usuário corrente
        emails_page_active: Tela de emails aberta (ver EmailSyncSession)
        cache: Cache a usar (padrão: create_email_cache())
    """
    return EmailSyncSession(
        fetcher=create_email_fetcher(),
        cache=cache if cache is not None else create_email_cache(),
        identity_provider=identity_provider,
        settings=get_email_sync_settings(),
        cache_key=get_email_cache_settings().cache_key,
        emails_page_active=emails_page_active,
    )

