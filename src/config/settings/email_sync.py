"""Settings da sincronização de emails.

Concentra as constantes de política (limites de página, janelas de
tempo, throttles) usadas pelo loader, pelo classificador de pastas e
pela reconciliação de agendados.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from functools import lru_cache


@dataclass(frozen=True)
class EmailSyncSettings:
    """Política de sincronização de emails.

    Attributes:
        admin_initial_limit: Página inicial do admin na tela de emails
        employee_initial_limit: Página inicial (por stream) do usuário escopado
        dashboard_limit: Página inicial fora da tela de emails
        page_limit: Tamanho de página do load_more
        scheduled_fetch_limit: Máximo de agendados no passe "ensure scheduled"
        realtime_main_limit: Janela do feed principal (e owner/assigned)
        realtime_sent_limit: Janela do feed de enviados
        realtime_scheduled_limit: Janela do feed de agendados
        realtime_watchdog_seconds: Intervalo de checagem dos listeners encerrados
            pelo servidor (0 desliga)
        cache_write_delay_seconds: Janela de coalescência das escritas no cache
        update_throttle_seconds: Intervalo mínimo entre eventos `updated`
        folder_count_ttl_seconds: TTL do memo de contagem por pasta
        approved_grace_seconds: Tolerância para `approved` com envio no passado
        statusless_grace_seconds: Tolerância para agendados recém-criados sem status
        sending_stale_seconds: `sending` mais antigo que isso é tratado como enviado
        not_generated_stuck_seconds: `not_generated` parado além disso vira erro
        sent_match_window_seconds: Janela de enviados usados no cruzamento
        recent_sent_window_seconds: Enviado recente que casa mesmo com envio futuro
        sent_index_limit: Enviados lidos para montar o índice de cruzamento
        batch_size: Máximo de escritas por batch do Firestore
    """

    admin_initial_limit: int = 200
    employee_initial_limit: int = 200
    dashboard_limit: int = 50
    page_limit: int = 100
    scheduled_fetch_limit: int = 200

    realtime_main_limit: int = 100
    realtime_sent_limit: int = 200
    realtime_scheduled_limit: int = 200
    realtime_watchdog_seconds: float = 5.0

    cache_write_delay_seconds: float = 0.5
    update_throttle_seconds: float = 0.3
    folder_count_ttl_seconds: float = 30.0

    approved_grace_seconds: int = 60
    statusless_grace_seconds: int = 5 * 60
    sending_stale_seconds: int = 5 * 60
    not_generated_stuck_seconds: int = 24 * 60 * 60
    sent_match_window_seconds: int = 7 * 24 * 60 * 60
    recent_sent_window_seconds: int = 2 * 24 * 60 * 60
    sent_index_limit: int = 500
    batch_size: int = 500

    def validate(self) -> list[str]:
        """Valida limites e janelas.

        Returns:
            Lista de erros (vazia = OK).
        """
        errors: list[str] = []
        limits = {
            "EMAIL_SYNC_ADMIN_INITIAL_LIMIT": self.admin_initial_limit,
            "EMAIL_SYNC_EMPLOYEE_INITIAL_LIMIT": self.employee_initial_limit,
            "EMAIL_SYNC_DASHBOARD_LIMIT": self.dashboard_limit,
            "EMAIL_SYNC_PAGE_LIMIT": self.page_limit,
            "EMAIL_SYNC_SCHEDULED_FETCH_LIMIT": self.scheduled_fetch_limit,
            "EMAIL_SYNC_REALTIME_MAIN_LIMIT": self.realtime_main_limit,
            "EMAIL_SYNC_REALTIME_SENT_LIMIT": self.realtime_sent_limit,
            "EMAIL_SYNC_REALTIME_SCHEDULED_LIMIT": self.realtime_scheduled_limit,
            "EMAIL_SYNC_SENT_INDEX_LIMIT": self.sent_index_limit,
        }
        for name, value in limits.items():
            if value <= 0:
                errors.append(f"{name} deve ser > 0")
        if self.batch_size <= 0 or self.batch_size > 500:
            errors.append("EMAIL_SYNC_BATCH_SIZE deve estar entre 1 e 500")
        if self.cache_write_delay_seconds < 0 or self.update_throttle_seconds < 0:
            errors.append("Throttles de escrita/notificação devem ser >= 0")
        if self.folder_count_ttl_seconds < 0:
            errors.append("EMAIL_SYNC_FOLDER_COUNT_TTL_SECONDS deve ser >= 0")
        if self.realtime_watchdog_seconds < 0:
            errors.append("EMAIL_SYNC_REALTIME_WATCHDOG_SECONDS deve ser >= 0")
        return errors


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _load_email_sync_from_env() -> EmailSyncSettings:
    """Lê cada campo de EMAIL_SYNC_<CAMPO>; ausente usa o padrão."""
    values: dict[str, int | float] = {}
    for item in fields(EmailSyncSettings):
        env_name = f"EMAIL_SYNC_{item.name.upper()}"
        if item.type in ("float", float):
            values[item.name] = _float_env(env_name, item.default)
        else:
            values[item.name] = _int_env(env_name, item.default)
    return EmailSyncSettings(**values)


@lru_cache(maxsize=1)
def get_email_sync_settings() -> EmailSyncSettings:
    """Retorna instância cacheada de EmailSyncSettings."""
    return _load_email_sync_from_env()
