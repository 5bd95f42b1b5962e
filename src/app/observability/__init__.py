"""Observabilidade: correlation_id e métricas em log estruturado.

Uso:
    from app.observability import get_correlation_id, set_correlation_id
    from app.observability import record_latency, record_batch
"""

from app.observability.correlation import (
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from app.observability.metrics import (
    record_batch,
    record_latency,
    record_reconciliation,
)

__all__ = [
    "generate_correlation_id",
    "get_correlation_id",
    "record_batch",
    "record_latency",
    "record_reconciliation",
    "reset_correlation_id",
    "set_correlation_id",
]
