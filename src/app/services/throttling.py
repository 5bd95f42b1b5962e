"""Escrita coalescida da lista no cache persistido.

Rajadas de snapshots de tempo real viram uma única escrita: o primeiro
pedido agenda a escrita para daqui a `delay_seconds`; pedidos durante a
espera são absorvidos e a escrita persiste o estado mais recente.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from config.logging import log_degraded

if TYPE_CHECKING:
    from collections.abc import Callable

    from app.protocols import EmailCacheProtocol

logger = logging.getLogger(__name__)


class CacheWriteThrottle:
    """Agenda escritas no cache com janela de coalescência.

    Args:
        cache: Cache persistido
        key: Chave do blob
        payload: Função que produz a lista a persistir (chamada na hora da escrita)
        delay_seconds: Janela de coalescência
        after_write: Callback chamado com a origem do pedido após cada escrita
    """

    def __init__(
        self,
        cache: EmailCacheProtocol,
        key: str,
        payload: Callable[[], list[dict[str, Any]]],
        delay_seconds: float = 0.5,
        after_write: Callable[[str], None] | None = None,
    ) -> None:
        self._cache = cache
        self._key = key
        self._payload = payload
        self._delay = delay_seconds
        self._after_write = after_write
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(self, source: str) -> bool:
        """Pede uma escrita.

        Returns:
            True se agendou uma escrita nova; False se absorvido por uma
            escrita já pendente.
        """
        if self.pending:
            return False
        self._task = asyncio.get_running_loop().create_task(self._write_later(source))
        return True

    async def _write_later(self, source: str) -> None:
        await asyncio.sleep(self._delay)
        await write_cache(self._cache, self._key, self._payload(), source=source)
        if self._after_write is not None:
            self._after_write(source)

    async def flush(self) -> None:
        """Aguarda a escrita pendente (se houver)."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def cancel(self) -> None:
        if self.pending:
            self._task.cancel()
        self._task = None


async def write_cache(
    cache: EmailCacheProtocol,
    key: str,
    items: list[dict[str, Any]],
    *,
    source: str,
) -> bool:
    """Escreve no cache sem propagar falhas (cache é best-effort)."""
    try:
        await cache.set(key, items)
    except Exception as exc:
        log_degraded(logger, "email_cache", reason=str(exc), source=source)
        return False
    logger.debug("email_cache_written", extra={"source": source, "count": len(items)})
    return True
