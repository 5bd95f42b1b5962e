"""Exceções de infraestrutura e classificação de falhas do Firestore."""

from __future__ import annotations

from typing import Literal

from google.api_core import exceptions as gexc

StoreErrorKind = Literal["permission-denied", "index-missing", "query-failed"]


class InfrastructureError(RuntimeError):
    """Base para falhas de infraestrutura transitórias."""


class EmailStoreError(InfrastructureError):
    """Falha classificada de leitura da collection de emails.

    Attributes:
        kind: permission-denied | index-missing | query-failed
    """

    def __init__(self, kind: StoreErrorKind, message: str = "") -> None:
        super().__init__(message or kind)
        self.kind: StoreErrorKind = kind


def classify_store_error(exc: BaseException) -> StoreErrorKind:
    """Mapeia exceção do Firestore para a taxonomia de falhas de leitura.

    FailedPrecondition é o erro devolvido quando falta índice composto;
    mensagens com "index" também são tratadas como índice ausente.
    """
    if isinstance(exc, EmailStoreError):
        return exc.kind
    if isinstance(exc, gexc.PermissionDenied):
        return "permission-denied"
    if isinstance(exc, gexc.FailedPrecondition) or "index" in str(exc).lower():
        return "index-missing"
    return "query-failed"
