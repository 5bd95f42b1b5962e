"""Identidade do usuário corrente (admin ou escopado)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Identity:
    """Quem está olhando a lista de emails.

    Usuário escopado (não admin) só enxerga emails dos quais é dono
    (ownerId) ou responsável (assignedTo).
    """

    email: str
    is_admin: bool = False

    @property
    def normalized_email(self) -> str:
        return self.email.strip().lower()

    @property
    def is_scoped(self) -> bool:
        return not self.is_admin and bool(self.normalized_email)

    @property
    def cache_scope(self) -> str:
        """Parte da chave do memo de contagens."""
        return self.normalized_email or "admin"


class IdentityProviderProtocol(ABC):
    """Contrato do provedor de identidade/papel."""

    @abstractmethod
    def is_current_user_admin(self) -> bool:
        """True se o usuário corrente é admin."""

    @abstractmethod
    def get_current_user_email(self) -> str:
        """Email do usuário corrente."""

    def current_identity(self) -> Identity:
        return Identity(
            email=self.get_current_user_email() or "",
            is_admin=self.is_current_user_admin(),
        )


class StaticIdentityProvider(IdentityProviderProtocol):
    """Provedor fixo (script de operação, testes, workers)."""

    def __init__(self, email: str, *, is_admin: bool = False) -> None:
        self._email = email
        self._is_admin = is_admin

    def is_current_user_admin(self) -> bool:
        return self._is_admin

    def get_current_user_email(self) -> str:
        return self._email.strip().lower()
