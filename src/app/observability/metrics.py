"""Métricas da sincronização de emails via structured logging.

As métricas saem como logs estruturados (metric_type no payload) e são
agregadas fora do processo (BigQuery, Logs Explorer).

Métricas suportadas:
- Latência: tempo de cada fase (cache, firestore, load_more, contagem)
- Lote: tamanho de cada carga/merge por origem
- Reconciliação: contadores do relatório de limpeza de agendados

Uso:
    from app.observability.metrics import record_latency, record_batch

    start = time.perf_counter()
    page = await fetcher.load_initial(identity, limit=200)
    record_latency("email_sync", "load_initial", (time.perf_counter() - start) * 1000)
    record_batch("firestore", len(page.records))
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def record_latency(
    component: str,
    operation: str,
    latency_ms: float,
    correlation_id: str | None = None,
) -> None:
    """Registra latência de operação.

    Args:
        component: Nome do componente (ex: "email_sync", "reconciler")
        operation: Nome da operação (ex: "load_initial", "load_more")
        latency_ms: Latência em milissegundos
        correlation_id: ID de correlação para rastreamento
    """
    logger.info(
        "metric_latency",
        extra={
            "metric_type": "latency",
            "component": component,
            "operation": operation,
            "latency_ms": round(latency_ms, 2),
            "correlation_id": correlation_id,
        },
    )


def record_batch(
    source: str,
    size: int,
    *,
    total: int | None = None,
    correlation_id: str | None = None,
) -> None:
    """Registra o tamanho de um lote aplicado à lista.

    Args:
        source: Origem do lote (ex: "cache", "firestore", "realtime-main")
        size: Quantidade de registros no lote
        total: Tamanho da lista após o merge
        correlation_id: ID de correlação para rastreamento
    """
    logger.info(
        "metric_batch",
        extra={
            "metric_type": "batch",
            "source": source,
            "size": size,
            "total": total,
            "correlation_id": correlation_id,
        },
    )


def record_reconciliation(
    counters: dict[str, int],
    *,
    dry_run: bool,
    correlation_id: str | None = None,
) -> None:
    """Registra os contadores finais de uma execução de reconciliação."""
    extra: dict[str, object] = {
        "metric_type": "reconciliation",
        "dry_run": dry_run,
        "correlation_id": correlation_id,
    }
    extra.update(counters)
    logger.info("metric_reconciliation", extra=extra)
