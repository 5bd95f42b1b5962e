"""Eventos da lista de emails para os consumidores (UI, workers).

Três nomes: `loaded` (carga inicial ou recarga), `loaded-more` (página
adicional) e `updated` (mudança via tempo real, coalescida).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

EventName = Literal["loaded", "loaded-more", "updated"]


@dataclass(frozen=True, slots=True)
class EmailsEvent:
    name: EventName
    detail: dict[str, Any] = field(default_factory=dict)


class EmailsEventBus:
    """Fan-out síncrono para listeners registrados.

    Erro em um listener é registrado e não interrompe os demais.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[EmailsEvent], None]] = []

    def subscribe(self, listener: Callable[[EmailsEvent], None]) -> Callable[[], None]:
        """Registra o listener; devolve a função que o remove."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, name: EventName, **detail: Any) -> EmailsEvent:
        event = EmailsEvent(name=name, detail=detail)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("emails_event_listener_failed", extra={"event": name})
        return event


class UpdateNotifier:
    """Coalesce eventos `updated`: no máximo um por janela.

    Eventos suprimidos entram na contagem `suppressed` do próximo evento
    emitido. Com um loop ativo, uma supressão agenda um evento final ao
    fim da janela para que o último estado sempre chegue aos listeners.

    Args:
        bus: Barramento de eventos
        throttle_seconds: Janela mínima entre dois `updated`
        clock: Relógio monotônico (injetável em testes)
    """

    def __init__(
        self,
        bus: EmailsEventBus,
        throttle_seconds: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bus = bus
        self._throttle = throttle_seconds
        self._clock = clock
        self._last_emit: float | None = None
        self._suppressed = 0
        self._pending: tuple[str, dict[str, Any]] | None = None
        self._flush_handle: asyncio.TimerHandle | None = None
        self._closed = False

    @property
    def suppressed(self) -> int:
        return self._suppressed

    def notify(self, source: str, **detail: Any) -> bool:
        """Emite `updated` se a janela permitir.

        Returns:
            True se o evento foi emitido agora.
        """
        if self._closed:
            return False
        now = self._clock()
        if self._last_emit is not None and now - self._last_emit < self._throttle:
            self._suppressed += 1
            self._pending = (source, detail)
            self._schedule_flush(self._throttle - (now - self._last_emit))
            return False

        self._emit(now, source, detail)
        return True

    def _emit(self, now: float, source: str, detail: dict[str, Any]) -> None:
        suppressed = self._suppressed
        self._last_emit = now
        self._suppressed = 0
        self._pending = None
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._bus.emit("updated", source=source, suppressed=suppressed, **detail)

    def _schedule_flush(self, delay: float) -> None:
        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._flush_handle = loop.call_later(max(delay, 0.0), self.flush)

    def flush(self) -> None:
        """Emite o evento suprimido pendente, se houver."""
        self._flush_handle = None
        if self._pending is None:
            return
        source, detail = self._pending
        self._emit(self._clock(), source, detail)

    def close(self) -> None:
        """Descarta o pendente; notificações posteriores são ignoradas."""
        self._closed = True
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._pending = None
