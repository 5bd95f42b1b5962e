"""Lista em memória de emails, indexada por id.

Toda mutação (merge, remoção, atualização de status) passa por aqui, o
que garante ids únicos: um documento que chega pelo cache, pela página
inicial e pelo tempo real ocupa uma única posição, com o último valor
recebido.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.domain.normalizer import ts_to_ms

if TYPE_CHECKING:
    from collections.abc import Iterable

    from app.domain.email_record import EmailRecord


def _sort_key(record: EmailRecord) -> int:
    return ts_to_ms(record.timestamp) or 0


class EmailList:
    """Conjunto de EmailRecord por id com visão ordenada (mais recente primeiro)."""

    def __init__(self) -> None:
        self._items: dict[str, EmailRecord] = {}
        self._sorted: list[EmailRecord] | None = None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._items

    def get(self, doc_id: str) -> EmailRecord | None:
        return self._items.get(doc_id)

    def ids(self) -> set[str]:
        return set(self._items)

    def records(self) -> list[EmailRecord]:
        """Snapshot ordenado por timestamp desc (lista nova a cada chamada)."""
        if self._sorted is None:
            self._sorted = sorted(self._items.values(), key=_sort_key, reverse=True)
        return list(self._sorted)

    def merge(self, records: Iterable[EmailRecord]) -> int:
        """Upsert por id; última escrita vence.

        Returns:
            Quantidade de ids novos na lista.
        """
        added = 0
        for record in records:
            if record.id not in self._items:
                added += 1
            self._items[record.id] = record
        self._sorted = None
        return added

    def replace(self, records: Iterable[EmailRecord]) -> None:
        self._items = {}
        self.merge(records)

    def remove(self, doc_id: str) -> bool:
        if self._items.pop(doc_id, None) is None:
            return False
        self._sorted = None
        return True

    def update_status(self, doc_id: str, status: str, updated_at: str) -> bool:
        record = self._items.get(doc_id)
        if record is None:
            return False
        self._items[doc_id] = record.with_status(status, updated_at)
        self._sorted = None
        return True

    def clear(self) -> None:
        self._items = {}
        self._sorted = None

    def to_cache_payload(self) -> list[dict]:
        return [record.to_cache_dict() for record in self.records()]
