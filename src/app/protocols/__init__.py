"""Protocolos e contratos do core da aplicação."""

from .email_cache import EmailCacheProtocol

__all__ = [
    "EmailCacheProtocol",
]
