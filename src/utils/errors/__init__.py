"""Exceções utilitárias compartilhadas."""

from .exceptions import (
    EmailStoreError,
    InfrastructureError,
    StoreErrorKind,
    classify_store_error,
)

__all__ = [
    "EmailStoreError",
    "InfrastructureError",
    "StoreErrorKind",
    "classify_store_error",
]
