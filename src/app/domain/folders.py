"""Classificação de emails em pastas (inbox, sent, scheduled, starred, trash).

Funções puras: nenhuma consulta remota, relógio injetável. As janelas de
tolerância da pasta Scheduled vêm de FolderPolicy.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, get_args

from app.domain.email_record import INBOUND_PROVIDERS

if TYPE_CHECKING:
    from app.domain.email_record import EmailRecord
    from app.domain.identity import Identity

Folder = Literal["inbox", "sent", "scheduled", "starred", "trash"]

FOLDERS: tuple[str, ...] = get_args(Folder)

TERMINAL_STATUSES = frozenset({"sent", "delivered", "error", "rejected"})
AWAITING_STATUSES = frozenset({"pending", "pending_approval", "not_generated", "generating"})


@dataclass(frozen=True, slots=True)
class FolderPolicy:
    """Janelas de tempo da pasta Scheduled.

    Attributes:
        approved_grace_ms: `approved` continua visível até este atraso
        statusless_grace_ms: agendado sem status (recém-criado por
            sequência) continua visível até este atraso
        sending_stale_ms: `sending` com envio mais antigo que isso é
            considerado enviado
    """

    approved_grace_ms: int = 60_000
    statusless_grace_ms: int = 5 * 60_000
    sending_stale_ms: int = 5 * 60_000


DEFAULT_FOLDER_POLICY = FolderPolicy()


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_received(record: EmailRecord) -> bool:
    return (
        record.type == "received"
        or record.email_type == "received"
        or record.provider in INBOUND_PROVIDERS
        or (not record.type and not record.email_type and not record.is_sent_email)
    )


def is_sent(record: EmailRecord) -> bool:
    return (
        record.type == "sent"
        or record.email_type == "sent"
        or record.is_sent_email
        or record.status == "sent"
        or record.provider == "sendgrid"
    )


def is_visible_scheduled(
    record: EmailRecord,
    now_ms: int,
    policy: FolderPolicy = DEFAULT_FOLDER_POLICY,
) -> bool:
    """Regra da pasta Scheduled."""
    if record.type == "sent" or record.deleted:
        return False
    if record.type != "scheduled":
        return False

    status = record.status or ""
    send_time = record.scheduled_send_time

    if status in TERMINAL_STATUSES:
        return False
    if status == "sending" and send_time is not None and send_time < now_ms - policy.sending_stale_ms:
        return False
    if status == "sending" or status in AWAITING_STATUSES:
        return True
    if status == "approved":
        return send_time is not None and send_time >= now_ms - policy.approved_grace_ms
    if not status:
        # Sem status e sem horário de envio: registro órfão
        if send_time is None:
            return False
        return send_time >= now_ms - policy.statusless_grace_ms
    return False


def classify(
    record: EmailRecord,
    folder: Folder,
    identity: Identity | None = None,
    *,
    now_ms: int | None = None,
    policy: FolderPolicy = DEFAULT_FOLDER_POLICY,
) -> bool:
    """Decide se o email pertence à pasta para a identidade.

    Args:
        record: Email normalizado.
        folder: Pasta (inbox|sent|scheduled|starred|trash).
        identity: Identidade corrente; escopada filtra por dono/responsável.
        now_ms: Relógio em epoch ms (padrão: agora).
        policy: Janelas de tolerância da pasta Scheduled.

    Raises:
        ValueError: Pasta desconhecida.
    """
    if folder not in FOLDERS:
        raise ValueError(f"Pasta desconhecida: {folder}")

    if identity is not None and identity.is_scoped and not record.belongs_to(identity.email):
        return False

    if folder == "inbox":
        return is_received(record) and not record.deleted
    if folder == "sent":
        return is_sent(record) and not record.deleted
    if folder == "scheduled":
        return is_visible_scheduled(record, _now_ms() if now_ms is None else now_ms, policy)
    if folder == "starred":
        return record.starred and not record.deleted
    return record.deleted


def filter_folder(
    records: Iterable[EmailRecord],
    folder: Folder,
    identity: Identity | None = None,
    *,
    now_ms: int | None = None,
    policy: FolderPolicy = DEFAULT_FOLDER_POLICY,
) -> list[EmailRecord]:
    """Aplica classify() a uma coleção com um único instante de referência."""
    reference = _now_ms() if now_ms is None else now_ms
    return [
        record
        for record in records
        if classify(record, folder, identity, now_ms=reference, policy=policy)
    ]
