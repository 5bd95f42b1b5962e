"""Protocolo do cache persistido da lista de emails.

Contrato best-effort: implementações registram falhas de backend e
devolvem None (get) ou retornam silenciosamente (set). O loader trata
cache ausente e cache com falha da mesma forma.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class EmailCacheProtocol(ABC):
    """Cache chave-valor assíncrono com a última lista conhecida de emails."""

    @abstractmethod
    async def get(self, key: str) -> list[dict[str, Any]] | None:
        """Lê a lista persistida.

        Args:
            key: Chave do blob (ex: "emails")

        Returns:
            Lista de dicts (formato camelCase do documento) ou None se
            ausente/ilegível.
        """

    @abstractmethod
    async def set(self, key: str, items: list[dict[str, Any]]) -> None:
        """Persiste a lista completa, substituindo a anterior.

        Args:
            key: Chave do blob
            items: Dicts JSON-safe (EmailRecord.to_cache_dict())
        """
