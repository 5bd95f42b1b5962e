"""Bootstrap do serviço: inicialização e wiring.

Composition root: configura logging, valida settings e conecta
implementações concretas (Firestore, Redis) aos protocolos.

Uso:
    from app.bootstrap import initialize_app
    from app.bootstrap.dependencies import create_email_sync_session

    initialize_app()
    session = create_email_sync_session(StaticIdentityProvider("ana@empresa.com"))
    await session.start()
"""

from __future__ import annotations

import logging

from app.observability import get_correlation_id
from config.logging import configure_logging
from config.settings import (
    get_base_settings,
    get_email_cache_settings,
    get_email_sync_settings,
    get_firestore_settings,
)

STRICT_VALIDATION_ENVS = {"staging", "production"}

logger = logging.getLogger(__name__)


def initialize_app() -> None:
    """Configura logging estruturado JSON com correlation_id.

    Deve ser chamada uma vez no início do processo.
    """
    settings = get_base_settings()
    configure_logging(
        level=settings.log_level,
        service_name=settings.service_name,
        correlation_id_getter=get_correlation_id,
    )


def validate_runtime_settings() -> None:
    """Valida settings obrigatórias no startup.

    Em `staging`/`production` falha rápido para impedir boot inválido.
    Em `development`/`test` mantém alerta sem bloquear execução local.
    """
    base = get_base_settings()
    environment = base.environment
    strict_mode = environment in STRICT_VALIDATION_ENVS
    errors: list[str] = []

    errors.extend(f"base: {error}" for error in base.validate())
    errors.extend(f"firestore: {error}" for error in get_firestore_settings().validate(base.gcp_project))
    errors.extend(f"email_cache: {error}" for error in get_email_cache_settings().validate(base.redis_url))
    errors.extend(f"email_sync: {error}" for error in get_email_sync_settings().validate())

    if not errors:
        logger.info(
            "settings_validated",
            extra={"component": "bootstrap", "result": "ok", "environment": environment},
        )
        return

    logger.warning(
        "settings_validation_failed",
        extra={
            "component": "bootstrap",
            "result": "failed",
            "environment": environment,
            "error_count": len(errors),
            "errors": errors,
        },
    )
    if strict_mode:
        details = "\n".join(f"- {error}" for error in errors)
        raise RuntimeError(f"Configuração inválida para {environment}:\n{details}")

