"""Memo de contagem por pasta (folder + identidade) com TTL curto.

Contagens são recalculadas a partir da lista em memória; nunca disparam
consulta remota. Qualquer mutação da lista deve chamar invalidate().
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from app.domain.folders import DEFAULT_FOLDER_POLICY, FolderPolicy, filter_folder

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from app.domain.email_record import EmailRecord
    from app.domain.folders import Folder
    from app.domain.identity import Identity


class FolderCountCache:
    """Contagens memoizadas por `{folder}-{identidade}`.

    Args:
        ttl_seconds: Validade de cada entrada
        clock: Relógio monotônico (injetável em testes)
        policy: Janelas da pasta Scheduled
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        policy: FolderPolicy = DEFAULT_FOLDER_POLICY,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._policy = policy
        self._entries: dict[str, tuple[int, float]] = {}

    def count_for(
        self,
        folder: Folder,
        identity: Identity,
        records: Iterable[EmailRecord],
    ) -> int:
        key = f"{folder}-{identity.cache_scope}"
        now = self._clock()
        cached = self._entries.get(key)
        if cached is not None and now - cached[1] < self._ttl:
            return cached[0]

        count = len(filter_folder(records, folder, identity, policy=self._policy))
        self._entries[key] = (count, now)
        return count

    def invalidate(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
