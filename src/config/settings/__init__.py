"""Agregador de settings do serviço de sincronização de emails."""

from __future__ import annotations

from config.settings.base import (
    BaseSettings,
    Environment,
    get_base_settings,
)
from config.settings.email_sync import (
    EmailSyncSettings,
    get_email_sync_settings,
)
from config.settings.infra import (
    EmailCacheBackend,
    EmailCacheSettings,
    FirestoreSettings,
    get_email_cache_settings,
    get_firestore_settings,
)

__all__ = [
    "BaseSettings",
    "EmailCacheBackend",
    "EmailCacheSettings",
    "EmailSyncSettings",
    "Environment",
    "FirestoreSettings",
    "get_base_settings",
    "get_email_cache_settings",
    "get_email_sync_settings",
    "get_firestore_settings",
]
