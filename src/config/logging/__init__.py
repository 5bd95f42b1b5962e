"""Logging estruturado (JSON) do serviço de sincronização de emails.

Uso:
    from config.logging import configure_logging, get_logger

    # No bootstrap
    configure_logging(level="INFO", service_name="crm_email_sync")

    # Em qualquer módulo
    logger = get_logger(__name__)
    logger.info("emails_loaded", extra={"count": 42})

Todo log carrega correlation_id e service. Identidades de usuário
nunca vão em claro para os logs (ver identity_hash).
"""

from config.logging.config import configure_logging, get_logger, identity_hash, log_degraded
from config.logging.filters import CorrelationIdFilter
from config.logging.formatters import (
    FIELD_RENAME_MAP,
    REQUIRED_LOG_FIELDS,
    create_json_formatter,
)

__all__ = [
    "FIELD_RENAME_MAP",
    "REQUIRED_LOG_FIELDS",
    "CorrelationIdFilter",
    "configure_logging",
    "create_json_formatter",
    "get_logger",
    "identity_hash",
    "log_degraded",
]
