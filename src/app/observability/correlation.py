"""correlation_id das sessões de sincronização.

Cada EmailSyncSession (e cada execução do script de reconciliação) define
um correlation_id próprio; o CorrelationIdFilter o injeta em todo log
emitido no mesmo contexto, inclusive nas tasks criadas a partir dele.

Uso:
    from app.observability import get_correlation_id, set_correlation_id

    token = set_correlation_id(session.session_id)
    try:
        await session.start()
    finally:
        reset_correlation_id(token)
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """correlation_id do contexto atual ("" se não definido)."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> Token[str]:
    """Define o correlation_id no contexto atual (gera um novo se None).

    Returns:
        Token para reset_correlation_id().
    """
    return _correlation_id.set(correlation_id or generate_correlation_id())


def reset_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex
