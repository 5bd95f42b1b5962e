"""Firestore Email Fetcher: leitura paginada da collection `emails`.

Admin lê os N mais recentes por createdAt com um cursor de documento.
Usuário escopado lê dois streams em paralelo (ownerId e assignedTo), cada
um com cursor e has_more próprios; o has_more combinado é o OR dos dois.

Falhas de consulta nunca sobem para o chamador: são classificadas,
registradas e a página degrada para o que foi obtido com has_more=False.

Usa asyncio.to_thread pois o SDK síncrono do Firestore é o mesmo usado
pelos listeners de tempo real.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from google.cloud.firestore import Query
from google.cloud.firestore_v1.base_query import FieldFilter

from app.domain.normalizer import normalize_email_doc, ts_to_ms
from config.logging import identity_hash
from utils.errors import classify_store_error

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from google.cloud.firestore import Client as FirestoreClient
    from google.cloud.firestore import DocumentSnapshot

    from app.domain.email_record import EmailRecord
    from app.domain.identity import Identity
    from config.settings import EmailSyncSettings

logger = logging.getLogger(__name__)

EMAILS_COLLECTION = "emails"


@dataclass(frozen=True, slots=True)
class PaginationState:
    """Cursores e flags de paginação (imutável; cada fetch devolve um novo)."""

    scoped: bool = False
    cursor: DocumentSnapshot | None = None
    admin_has_more: bool = False
    owner_cursor: DocumentSnapshot | None = None
    assigned_cursor: DocumentSnapshot | None = None
    owner_has_more: bool = False
    assigned_has_more: bool = False

    @property
    def has_more(self) -> bool:
        if self.scoped:
            return self.owner_has_more or self.assigned_has_more
        return self.admin_has_more

    @property
    def needs_cursor_resolution(self) -> bool:
        """True quando há mais páginas mas falta o cursor correspondente."""
        if self.scoped:
            return (self.owner_has_more and self.owner_cursor is None) or (
                self.assigned_has_more and self.assigned_cursor is None
            )
        return self.admin_has_more and self.cursor is None


@dataclass(frozen=True, slots=True)
class FetchPage:
    """Resultado de uma leitura paginada."""

    records: list[EmailRecord] = field(default_factory=list)
    state: PaginationState = field(default_factory=PaginationState)
    failed: bool = False

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    @property
    def cursor(self) -> DocumentSnapshot | None:
        return self.state.cursor


def _last(docs: Sequence[DocumentSnapshot]) -> DocumentSnapshot | None:
    return docs[-1] if docs else None


def _oldest_id(records: Iterable[EmailRecord]) -> str | None:
    """ID do registro com menor createdAt (ignora createdAt ausente/inválido)."""
    candidates = [
        (created_ms, record.id)
        for record in records
        if (created_ms := ts_to_ms(record.created_at)) is not None and created_ms > 0
    ]
    if not candidates:
        return None
    return min(candidates)[1]


class FirestoreEmailFetcher:
    """Leitor paginado de emails no Firestore.

    Args:
        firestore_client: Cliente Firestore síncrono
        settings: Política de sincronização (limites de página)
        collection: Nome da collection de emails
    """

    def __init__(
        self,
        firestore_client: FirestoreClient,
        settings: EmailSyncSettings,
        collection: str = EMAILS_COLLECTION,
    ) -> None:
        self._db = firestore_client
        self._settings = settings
        self._collection = collection

    # ──────────────────────────────────────────────────────────────
    # Query builders (também usados pelo RealtimeMerger)
    # ──────────────────────────────────────────────────────────────

    def emails(self) -> Any:
        return self._db.collection(self._collection)

    def recent_query(self, limit: int) -> Any:
        return self.emails().order_by("createdAt", direction=Query.DESCENDING).limit(limit)

    def scoped_query(self, field_name: str, email: str, limit: int, *, ordered: bool = True) -> Any:
        query = self.emails().where(filter=FieldFilter(field_name, "==", email))
        if ordered:
            query = query.order_by("createdAt", direction=Query.DESCENDING)
        return query.limit(limit)

    def scheduled_query(self, limit: int, *, field_name: str | None = None, email: str = "") -> Any:
        query = self.emails().where(filter=FieldFilter("type", "==", "scheduled"))
        if field_name:
            query = query.where(filter=FieldFilter(field_name, "==", email))
        return query.order_by("createdAt", direction=Query.DESCENDING).limit(limit)

    def scoped_query_scheduled(self, field_name: str, email: str, limit: int) -> Any:
        query = self.emails().where(filter=FieldFilter(field_name, "==", email))
        return query.where(filter=FieldFilter("type", "==", "scheduled")).limit(limit)

    def sent_tracking_query(self, limit: int) -> Any:
        return (
            self.emails()
            .where(filter=FieldFilter("type", "==", "sent"))
            .where(filter=FieldFilter("status", "==", "sent"))
            .order_by("sentAt", direction=Query.DESCENDING)
            .limit(limit)
        )

    # ──────────────────────────────────────────────────────────────
    # Execução
    # ──────────────────────────────────────────────────────────────

    async def _run(self, query: Any, stream: str) -> tuple[list[DocumentSnapshot], bool]:
        """Executa a query; em falha devolve ([], False) e registra o motivo."""
        try:
            docs = await asyncio.to_thread(query.get)
            return list(docs), True
        except Exception as exc:
            kind = classify_store_error(exc)
            log = logger.error if kind == "index-missing" else logger.warning
            log(
                "email_query_failed",
                extra={"stream": stream, "kind": kind, "error": str(exc)},
            )
            return [], False

    @staticmethod
    def _normalize(docs: Iterable[DocumentSnapshot]) -> list[EmailRecord]:
        return [normalize_email_doc(doc.id, doc.to_dict() or {}) for doc in docs]

    async def load_initial(self, identity: Identity, *, limit: int) -> FetchPage:
        """Primeira página para a identidade.

        Args:
            identity: Admin ou escopada
            limit: Tamanho da página inicial (por stream, se escopada)
        """
        if identity.is_scoped:
            email = identity.normalized_email
            (owned, owned_ok), (assigned, assigned_ok) = await asyncio.gather(
                self._run(self.scoped_query("ownerId", email, limit), "owner"),
                self._run(self.scoped_query("assignedTo", email, limit), "assigned"),
            )
            state = PaginationState(
                scoped=True,
                owner_cursor=_last(owned),
                assigned_cursor=_last(assigned),
                owner_has_more=len(owned) == limit,
                assigned_has_more=len(assigned) == limit,
            )
            logger.info(
                "emails_initial_page_loaded",
                extra={
                    "identity": identity_hash(email),
                    "owned": len(owned),
                    "assigned": len(assigned),
                    "has_more": state.has_more,
                },
            )
            return FetchPage(
                records=self._normalize([*owned, *assigned]),
                state=state,
                failed=not (owned_ok and assigned_ok),
            )

        docs, ok = await self._run(self.recent_query(limit), "admin")
        state = PaginationState(cursor=_last(docs), admin_has_more=bool(docs) and len(docs) == limit)
        logger.info(
            "emails_initial_page_loaded",
            extra={"identity": "admin", "count": len(docs), "has_more": state.has_more},
        )
        return FetchPage(records=self._normalize(docs), state=state, failed=not ok)

    async def load_more(
        self,
        identity: Identity,
        state: PaginationState,
        *,
        known_ids: Iterable[str] = (),
    ) -> FetchPage:
        """Próxima página a partir dos cursores de `state`.

        Registros cujo id já está em `known_ids` (ou repetido entre os
        streams owner/assigned) não são devolvidos. Cada cursor avança
        para o último documento da página lida; página vazia mantém o
        cursor e encerra o stream.
        """
        page_limit = self._settings.page_limit
        seen = set(known_ids)
        records: list[EmailRecord] = []
        failed = False

        def _collect(docs: Iterable[DocumentSnapshot]) -> None:
            for record in self._normalize(docs):
                if record.id not in seen:
                    seen.add(record.id)
                    records.append(record)

        if state.scoped:
            email = identity.normalized_email
            new_state = state
            if state.owner_has_more and state.owner_cursor is None:
                logger.warning("email_pagination_without_cursor", extra={"stream": "owner"})
                new_state = replace(new_state, owner_has_more=False)
            if state.assigned_has_more and state.assigned_cursor is None:
                logger.warning("email_pagination_without_cursor", extra={"stream": "assigned"})
                new_state = replace(new_state, assigned_has_more=False)
            if state.owner_has_more and state.owner_cursor is not None:
                query = self.scoped_query("ownerId", email, page_limit).start_after(state.owner_cursor)
                docs, ok = await self._run(query, "owner")
                failed = failed or not ok
                _collect(docs)
                new_state = replace(
                    new_state,
                    owner_cursor=_last(docs) or state.owner_cursor,
                    owner_has_more=len(docs) == page_limit,
                )
            if state.assigned_has_more and state.assigned_cursor is not None:
                query = self.scoped_query("assignedTo", email, page_limit).start_after(
                    state.assigned_cursor
                )
                docs, ok = await self._run(query, "assigned")
                failed = failed or not ok
                _collect(docs)
                new_state = replace(
                    new_state,
                    assigned_cursor=_last(docs) or state.assigned_cursor,
                    assigned_has_more=len(docs) == page_limit,
                )
            return FetchPage(records=records, state=new_state, failed=failed)

        if state.cursor is None:
            logger.warning("email_pagination_without_cursor", extra={"identity": "admin"})
            return FetchPage(state=replace(state, admin_has_more=False))

        query = self.recent_query(page_limit).start_after(state.cursor)
        docs, ok = await self._run(query, "admin")
        _collect(docs)
        new_state = replace(
            state,
            cursor=_last(docs) or state.cursor,
            admin_has_more=len(docs) == page_limit,
        )
        return FetchPage(records=records, state=new_state, failed=not ok)

    async def fetch_document(self, doc_id: str) -> DocumentSnapshot | None:
        """Snapshot de um documento (usado como cursor) ou None."""
        try:
            snap = await asyncio.to_thread(self.emails().document(doc_id).get)
        except Exception as exc:
            logger.warning(
                "email_document_fetch_failed",
                extra={"doc_id": doc_id, "kind": classify_store_error(exc)},
            )
            return None
        return snap if snap is not None and snap.exists else None

    async def resolve_cursors(
        self,
        identity: Identity,
        state: PaginationState,
        records: Sequence[EmailRecord],
    ) -> PaginationState:
        """Define cursores a partir do registro mais antigo já carregado.

        Usado quando a lista veio do cache (sem snapshots de documento):
        o documento mais antigo por createdAt vira o cursor de cada stream.
        """
        if not records:
            return state

        if not state.scoped:
            oldest = _oldest_id(records)
            if oldest is None:
                return state
            snap = await self.fetch_document(oldest)
            return replace(state, cursor=snap) if snap is not None else state

        email = identity.normalized_email
        new_state = state
        owned_oldest = _oldest_id(r for r in records if (r.owner_id or "").lower() == email)
        assigned_oldest = _oldest_id(r for r in records if (r.assigned_to or "").lower() == email)
        if owned_oldest:
            snap = await self.fetch_document(owned_oldest)
            if snap is not None:
                new_state = replace(new_state, owner_cursor=snap)
        if assigned_oldest:
            snap = await self.fetch_document(assigned_oldest)
            if snap is not None:
                new_state = replace(new_state, assigned_cursor=snap)
        return new_state

    async def fetch_scheduled(self, identity: Identity, *, limit: int | None = None) -> FetchPage:
        """Passe "ensure all scheduled": todos os agendados até `limit`.

        A pasta Scheduled precisa estar completa independentemente da
        janela de paginação padrão.
        """
        limit = limit or self._settings.scheduled_fetch_limit
        if identity.is_scoped:
            email = identity.normalized_email
            (owned, owned_ok), (assigned, assigned_ok) = await asyncio.gather(
                self._run(self.scoped_query_scheduled("ownerId", email, limit), "scheduled-owned"),
                self._run(self.scoped_query_scheduled("assignedTo", email, limit), "scheduled-assigned"),
            )
            return FetchPage(
                records=self._normalize([*owned, *assigned]),
                failed=not (owned_ok and assigned_ok),
            )

        docs, ok = await self._run(self.scheduled_query(limit), "scheduled")
        return FetchPage(records=self._normalize(docs), failed=not ok)

    async def count_total(self, identity: Identity, loaded: int) -> int:
        """Total via agregação count() (nunca usado no caminho quente das pastas).

        Escopado: max(owned, assigned, carregados). Falha na agregação
        devolve o total carregado em memória.
        """
        try:
            if identity.is_scoped:
                email = identity.normalized_email
                owned_query = self.emails().where(filter=FieldFilter("ownerId", "==", email))
                assigned_query = self.emails().where(filter=FieldFilter("assignedTo", "==", email))
                owned, assigned = await asyncio.gather(
                    asyncio.to_thread(self._aggregate_count, owned_query),
                    asyncio.to_thread(self._aggregate_count, assigned_query),
                )
                return max(owned, assigned, loaded)
            total = await asyncio.to_thread(self._aggregate_count, self.emails())
            return total or loaded
        except Exception as exc:
            logger.warning(
                "email_count_aggregation_failed",
                extra={"kind": classify_store_error(exc), "fallback": loaded},
            )
            return loaded

    @staticmethod
    def _aggregate_count(query: Any) -> int:
        results = query.count(alias="total").get()
        return int(results[0][0].value) if results and results[0] else 0
