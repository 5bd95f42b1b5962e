"""Settings de infraestrutura (Firestore, cache persistido)."""

from __future__ import annotations

from config.settings.infra.email_cache import (
    EmailCacheBackend,
    EmailCacheSettings,
    get_email_cache_settings,
)
from config.settings.infra.firestore import (
    FirestoreSettings,
    get_firestore_settings,
)

__all__ = [
    "EmailCacheBackend",
    "EmailCacheSettings",
    "FirestoreSettings",
    "get_email_cache_settings",
    "get_firestore_settings",
]
