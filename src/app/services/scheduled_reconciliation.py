"""Reconciliação de emails agendados órfãos.

Agendados que já foram enviados (ou nunca serão) ficam presos na pasta
Scheduled. Este módulo decide, registro a registro, o que fazer com
cada um e aplica as correções em batches do Firestore.

A decisão é uma função pura (decide) sobre EmailRecord normalizado e um
índice de enviados; o runner (ScheduledReconciler) só faz IO.

Ordem das regras (a primeira que casa vence):
1. Casa com um enviado (mesmo destinatário e minuto; ou destinatário
   com envio recente)
2. status sent/delivered
3. `sending` preso além de sending_stale
4. status error
5. Horário passado, sem conteúdo e sem assunto (órfão)
6. Horário passado e sem status (com conteúdo ou sem assunto)
7. `approved` com horário passado
8. `not_generated` com horário passado
9. `not_generated` criado há mais de not_generated_stuck (vira erro)
10. Sem assunto e sem conteúdo (horário passado ou ausente)
11. Sem assunto com horário passado
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from google.cloud.firestore_v1.base_query import FieldFilter

from app.domain.normalizer import normalize_email_doc, ts_to_ms
from app.observability import record_reconciliation
from utils.errors import EmailStoreError, classify_store_error

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from google.cloud.firestore import Client as FirestoreClient

    from app.domain.email_record import EmailRecord
    from config.settings import EmailSyncSettings

logger = logging.getLogger(__name__)

ActionKind = Literal["mark_sent", "mark_error", "delete"]

_MINUTE_MS = 60_000


@dataclass(frozen=True, slots=True)
class ReconcilePolicy:
    """Janelas de tempo da reconciliação (epoch ms)."""

    past_grace_ms: int = _MINUTE_MS
    sending_stale_ms: int = 5 * _MINUTE_MS
    not_generated_stuck_ms: int = 24 * 60 * _MINUTE_MS
    sent_match_window_ms: int = 7 * 24 * 60 * _MINUTE_MS
    recent_sent_window_ms: int = 2 * 24 * 60 * _MINUTE_MS

    @classmethod
    def from_settings(cls, settings: EmailSyncSettings) -> ReconcilePolicy:
        return cls(
            past_grace_ms=settings.approved_grace_seconds * 1000,
            sending_stale_ms=settings.sending_stale_seconds * 1000,
            not_generated_stuck_ms=settings.not_generated_stuck_seconds * 1000,
            sent_match_window_ms=settings.sent_match_window_seconds * 1000,
            recent_sent_window_ms=settings.recent_sent_window_seconds * 1000,
        )


DEFAULT_RECONCILE_POLICY = ReconcilePolicy()


@dataclass(frozen=True, slots=True)
class SentRef:
    id: str
    sent_at: int
    recipient: str


@dataclass
class SentIndex:
    """Enviados por `destinatário|minuto` e por destinatário."""

    by_minute: dict[str, list[SentRef]] = field(default_factory=dict)
    by_recipient: dict[str, list[SentRef]] = field(default_factory=dict)

    def __len__(self) -> int:
        return sum(len(refs) for refs in self.by_recipient.values())


@dataclass(frozen=True, slots=True)
class ReconcileAction:
    """Correção decidida para um agendado.

    Attributes:
        kind: mark_sent | mark_error | delete
        reason: Motivo legível (vai para o relatório)
        sent_at: sentAt a gravar em mark_sent (None = não altera)
        matched_id: Id do enviado correspondente, quando houver
    """

    kind: ActionKind
    reason: str
    sent_at: int | None = None
    matched_id: str | None = None


@dataclass
class ReconcileReport:
    dry_run: bool = False
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    details: list[dict[str, str]] = field(default_factory=list)

    def record(self, doc_id: str, action: ReconcileAction) -> None:
        if action.kind == "delete":
            self.deleted += 1
        else:
            self.updated += 1
        self.details.append({"id": doc_id, "action": action.kind, "reason": action.reason})

    def reason_counts(self) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for detail in self.details:
            counts[detail["reason"].split(" - ")[0]] += 1
        return dict(counts)

    def counters(self) -> dict[str, int]:
        return {
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "errors": len(self.errors),
        }


def build_sent_index(records: Iterable[EmailRecord]) -> SentIndex:
    """Indexa enviados por destinatário (com e sem minuto de envio)."""
    index = SentIndex()
    for record in records:
        recipient = record.recipient
        if not recipient:
            continue
        sent_at = ts_to_ms(record.sent_at) or 0
        ref = SentRef(id=record.id, sent_at=sent_at, recipient=recipient)
        if sent_at:
            key = f"{recipient}|{sent_at // _MINUTE_MS * _MINUTE_MS}"
            index.by_minute.setdefault(key, []).append(ref)
        index.by_recipient.setdefault(recipient, []).append(ref)
    return index


def _match_sent(
    recipient: str,
    send_time: int | None,
    past: bool,
    index: SentIndex,
    now_ms: int,
    policy: ReconcilePolicy,
) -> tuple[SentRef, str] | None:
    if past and send_time is not None:
        minute_key = f"{recipient}|{send_time // _MINUTE_MS * _MINUTE_MS}"
        matches = index.by_minute.get(minute_key)
        if matches:
            return matches[0], "time-based"

    candidates = index.by_recipient.get(recipient)
    if not candidates:
        return None

    recent = [ref for ref in candidates if ref.sent_at > now_ms - policy.sent_match_window_ms]
    if recent:
        latest = max(recent, key=lambda ref: ref.sent_at)
        if past or send_time is None or latest.sent_at > now_ms - policy.recent_sent_window_ms:
            return latest, "recipient-based (recent)"
        return None
    if past or send_time is None:
        return max(candidates, key=lambda ref: ref.sent_at), "recipient-based (any)"
    return None


def decide(
    record: EmailRecord,
    index: SentIndex,
    *,
    now_ms: int,
    policy: ReconcilePolicy = DEFAULT_RECONCILE_POLICY,
    delete_orphaned: bool = False,
    delete_matched_sent: bool = False,
) -> ReconcileAction | None:
    """Decide a correção de um agendado; None = agendado válido."""
    status = record.status or ""
    send_time = record.scheduled_send_time
    past = send_time is not None and send_time < now_ms - policy.past_grace_ms
    has_content = record.has_content
    has_subject = record.has_subject
    recipient = record.recipient

    if recipient:
        match = _match_sent(recipient, send_time, past, index, now_ms, policy)
        if match is not None:
            sent, match_type = match
            reason = f"matched to sent email {sent.id} ({match_type})"
            if delete_matched_sent:
                return ReconcileAction("delete", f"deleted - {reason}", matched_id=sent.id)
            return ReconcileAction(
                "mark_sent",
                reason,
                sent_at=sent.sent_at or send_time or now_ms,
                matched_id=sent.id,
            )

    if status in ("sent", "delivered"):
        return ReconcileAction("mark_sent", f"status={status} - type scheduled -> sent")

    if status == "sending" and send_time is not None and send_time < now_ms - policy.sending_stale_ms:
        return ReconcileAction("mark_sent", "stuck in sending", sent_at=send_time)

    if status == "error":
        return ReconcileAction("mark_error", "error status - moving out of scheduled")

    if past and not has_content and not has_subject:
        if delete_orphaned:
            return ReconcileAction("delete", "orphaned - no content, no subject, past send time")
        return ReconcileAction("mark_sent", "orphaned - marked as sent", sent_at=send_time)

    if past and not status and has_content:
        return ReconcileAction("mark_sent", "past send time, has content, no status", sent_at=send_time)

    if past and not status and not has_subject:
        return ReconcileAction("mark_sent", "past send time, no status, no subject", sent_at=send_time)

    if status == "approved" and past:
        return ReconcileAction("mark_sent", "approved but past send time", sent_at=send_time)

    if status == "not_generated" and past:
        return ReconcileAction("mark_sent", "not_generated but past send time", sent_at=send_time)

    if status == "not_generated":
        created_ms = ts_to_ms(record.created_at)
        if created_ms and created_ms < now_ms - policy.not_generated_stuck_ms:
            return ReconcileAction("mark_error", "stuck in not_generated for 24+ hours")

    if not has_subject and not has_content:
        if past:
            return ReconcileAction(
                "mark_sent", "no subject, no content, past send time", sent_at=send_time
            )
        if send_time is None:
            if delete_orphaned:
                return ReconcileAction("delete", "orphaned - no subject, no content, no send time")
            return ReconcileAction(
                "mark_sent", "no subject, no content, no send time", sent_at=now_ms
            )

    if not has_subject and past:
        return ReconcileAction("mark_sent", "no subject, past send time", sent_at=send_time)

    return None


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def action_update(action: ReconcileAction, updated_at: str) -> dict[str, Any]:
    """Campos gravados no documento para mark_sent/mark_error."""
    status = "error" if action.kind == "mark_error" else "sent"
    data: dict[str, Any] = {"type": "sent", "status": status, "updatedAt": updated_at}
    if action.kind == "mark_sent" and action.sent_at is not None:
        data["sentAt"] = action.sent_at
    return data


class ScheduledReconciler:
    """Aplica decide() a todos os agendados da collection.

    Args:
        firestore_client: Cliente Firestore síncrono
        settings: Limites (índice de enviados, tamanho de batch) e janelas
        collection: Collection de emails
        clock: Relógio em epoch ms (injetável em testes)
    """

    def __init__(
        self,
        firestore_client: FirestoreClient,
        settings: EmailSyncSettings,
        collection: str = "emails",
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._db = firestore_client
        self._settings = settings
        self._collection = collection
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._policy = ReconcilePolicy.from_settings(settings)

    def _emails(self) -> Any:
        return self._db.collection(self._collection)

    def load_sent_index(self) -> SentIndex:
        """Índice dos enviados recentes; falha degrada para índice vazio."""
        query = self._emails().where(filter=FieldFilter("type", "==", "sent")).limit(
            self._settings.sent_index_limit
        )
        try:
            docs = query.get()
        except Exception as exc:
            logger.warning(
                "sent_index_build_failed",
                extra={"kind": classify_store_error(exc), "error": str(exc)},
            )
            return SentIndex()
        index = build_sent_index(normalize_email_doc(doc.id, doc.to_dict() or {}) for doc in docs)
        logger.info(
            "sent_index_built",
            extra={"minute_keys": len(index.by_minute), "recipients": len(index.by_recipient)},
        )
        return index

    def run(
        self,
        *,
        dry_run: bool = False,
        delete_orphaned: bool = False,
        delete_matched_sent: bool = False,
    ) -> ReconcileReport:
        """Percorre os agendados e aplica as correções.

        Raises:
            EmailStoreError: A leitura dos agendados falhou.
        """
        now_ms = self._clock()
        report = ReconcileReport(dry_run=dry_run)
        index = self.load_sent_index()

        try:
            docs = self._emails().where(filter=FieldFilter("type", "==", "scheduled")).get()
        except Exception as exc:
            kind = classify_store_error(exc)
            logger.error("scheduled_query_failed", extra={"kind": kind, "error": str(exc)})
            raise EmailStoreError(kind, str(exc)) from exc

        writer = _BatchWriter(self._db, self._settings.batch_size, report, enabled=not dry_run)
        updated_at = _iso_now()
        for doc in docs:
            try:
                record = normalize_email_doc(doc.id, doc.to_dict() or {}, default_type="scheduled")
                action = decide(
                    record,
                    index,
                    now_ms=now_ms,
                    policy=self._policy,
                    delete_orphaned=delete_orphaned,
                    delete_matched_sent=delete_matched_sent,
                )
            except Exception as exc:
                logger.warning("reconcile_record_failed", extra={"doc_id": doc.id, "error": str(exc)})
                report.errors.append({"id": doc.id, "error": str(exc)})
                continue

            if action is None:
                report.skipped += 1
                continue

            report.record(doc.id, action)
            if action.kind == "delete":
                writer.delete(doc.reference, doc.id)
            else:
                writer.update(doc.reference, doc.id, action_update(action, updated_at))

        writer.commit()
        logger.info(
            "scheduled_reconciliation_finished",
            extra={**report.counters(), "dry_run": dry_run, "reasons": report.reason_counts()},
        )
        record_reconciliation(report.counters(), dry_run=dry_run)
        return report


class _BatchWriter:
    """Acumula escritas e faz commit a cada `batch_size` operações."""

    def __init__(
        self,
        db: FirestoreClient,
        batch_size: int,
        report: ReconcileReport,
        *,
        enabled: bool,
    ) -> None:
        self._db = db
        self._batch_size = batch_size
        self._report = report
        self._enabled = enabled
        self._batch: Any = None
        self._ids: list[str] = []
        self.commits = 0

    def update(self, ref: Any, doc_id: str, data: dict[str, Any]) -> None:
        if self._enabled:
            self._current().update(ref, data)
            self._added(doc_id)

    def delete(self, ref: Any, doc_id: str) -> None:
        if self._enabled:
            self._current().delete(ref)
            self._added(doc_id)

    def _current(self) -> Any:
        if self._batch is None:
            self._batch = self._db.batch()
        return self._batch

    def _added(self, doc_id: str) -> None:
        self._ids.append(doc_id)
        if len(self._ids) >= self._batch_size:
            self.commit()

    def commit(self) -> None:
        if self._batch is None or not self._ids:
            return
        try:
            self._batch.commit()
            self.commits += 1
            logger.info("reconcile_batch_committed", extra={"writes": len(self._ids)})
        except Exception as exc:
            logger.error(
                "reconcile_batch_failed",
                extra={"writes": len(self._ids), "kind": classify_store_error(exc)},
            )
            self._report.errors.extend({"id": doc_id, "error": str(exc)} for doc_id in self._ids)
        finally:
            self._batch = None
            self._ids = []
