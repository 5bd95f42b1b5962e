"""Configuração centralizada de logging.

configure_logging() deve ser chamada uma única vez no bootstrap; os módulos
obtêm loggers via get_logger(__name__) e registram eventos com nome em
snake_case e campos em `extra`.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from config.logging.filters import CorrelationIdFilter
from config.logging.formatters import create_json_formatter

if TYPE_CHECKING:
    from collections.abc import Callable

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_SERVICE_NAME = "crm_email_sync"


def configure_logging(
    level: str = "INFO",
    service_name: str = DEFAULT_SERVICE_NAME,
    correlation_id_getter: Callable[[], str] | None = None,
) -> None:
    """Configura logging JSON estruturado no root logger.

    Args:
        level: Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        service_name: Nome do serviço injetado em cada record.
        correlation_id_getter: Função que retorna o correlation_id corrente
            (ex: get_correlation_id de app.observability).

    Raises:
        ValueError: Se o nível de log for inválido.
    """
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Nível de log inválido: {level}. "
            f"Válidos: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    handler = logging.StreamHandler()
    handler.setLevel(level_upper)
    handler.setFormatter(create_json_formatter())
    handler.addFilter(CorrelationIdFilter(service_name, correlation_id_getter))

    root = logging.getLogger()
    root.setLevel(level_upper)
    # Substitui handlers existentes para evitar duplicação
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    """Retorna logger para o módulo (service/correlation_id via filter)."""
    return logging.getLogger(name)


def identity_hash(email: str) -> str:
    """Hash curto e estável de uma identidade, seguro para logs."""
    normalized = (email or "").strip().lower()
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


def log_degraded(
    logger: logging.Logger,
    component: str,
    reason: str | None = None,
    **fields: object,
) -> None:
    """Registra que um caminho degradado foi usado (lista vazia, cache ignorado...).

    Args:
        logger: Logger do módulo chamador.
        component: Componente que degradou (ex: "email_fetcher").
        reason: Motivo sem PII (ex: "permission-denied").
        **fields: Campos adicionais para o record.
    """
    extra: dict[str, object] = {"degraded": True, "component": component, **fields}
    if reason:
        extra["reason"] = reason

    logger.warning("Degraded path used by %s", component, extra=extra)
