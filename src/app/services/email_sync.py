"""EmailSyncSession: orquestra cache, Firestore e tempo real.

Ciclo de vida:
1. start(): com cache, hidrata a lista na hora (emite `loaded` com
   cached=True), resolve cursores, garante os agendados, liga o tempo
   real e agenda uma recarga em background. Sem cache, carrega do
   Firestore e liga o tempo real.
2. load_more(): páginas adicionais a partir dos cursores.
3. Eventos de tempo real fazem merge na lista, invalidam contagens,
   coalescem a escrita no cache e notificam `updated`.
4. stop(): desliga listeners e tarefas pendentes.

Toda mutação da lista acontece na thread do loop asyncio.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from app.domain.folders import FolderPolicy
from app.domain.normalizer import upgrade_cached_emails
from app.infra.stores import PaginationState
from app.observability import (
    record_batch,
    record_latency,
    reset_correlation_id,
    set_correlation_id,
)
from app.services.email_list import EmailList
from app.services.events import EmailsEventBus, UpdateNotifier
from app.services.folder_counts import FolderCountCache
from app.services.realtime_merger import RealtimeMerger
from app.services.throttling import CacheWriteThrottle, write_cache
from config.logging import identity_hash, log_degraded

if TYPE_CHECKING:
    from collections.abc import Callable

    from app.domain.email_record import EmailRecord
    from app.domain.folders import Folder
    from app.domain.identity import Identity, IdentityProviderProtocol
    from app.infra.stores import FirestoreEmailFetcher
    from app.protocols import EmailCacheProtocol
    from app.services.events import EmailsEvent
    from config.settings import EmailSyncSettings
    from utils.errors import StoreErrorKind

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "emails"


@dataclass(frozen=True, slots=True)
class LoadMoreResult:
    loaded: int
    has_more: bool


def folder_policy_from_settings(settings: EmailSyncSettings) -> FolderPolicy:
    return FolderPolicy(
        approved_grace_ms=settings.approved_grace_seconds * 1000,
        statusless_grace_ms=settings.statusless_grace_seconds * 1000,
        sending_stale_ms=settings.sending_stale_seconds * 1000,
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EmailSyncSession:
    """Sessão de sincronização da lista de emails de um usuário.

    Args:
        fetcher: Leitor paginado do Firestore
        cache: Cache persistido da lista
        identity_provider: Papel e email do usuário corrente
        settings: Política de sincronização
        cache_key: Chave do blob no cache
        emails_page_active: Tela de emails aberta (página inicial maior,
            agendados, cursores e tempo real); fora dela usa dashboard_limit
        clock: Relógio monotônico para throttles e memo de contagem
    """

    def __init__(
        self,
        *,
        fetcher: FirestoreEmailFetcher,
        cache: EmailCacheProtocol,
        identity_provider: IdentityProviderProtocol,
        settings: EmailSyncSettings,
        cache_key: str = DEFAULT_CACHE_KEY,
        emails_page_active: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self._fetcher = fetcher
        self._cache = cache
        self._identity_provider = identity_provider
        self._settings = settings
        self._cache_key = cache_key
        self._page_active = emails_page_active

        self._list = EmailList()
        self._state = PaginationState()
        self._identity: Identity | None = None
        self._from_cache = False
        self._started = False
        self._stopped = False
        self._scheduled_loaded = False
        self._refresh_task: asyncio.Task[None] | None = None

        self._bus = EmailsEventBus()
        self._notifier = UpdateNotifier(self._bus, settings.update_throttle_seconds, clock=clock)
        self._counts = FolderCountCache(
            settings.folder_count_ttl_seconds,
            clock=clock,
            policy=folder_policy_from_settings(settings),
        )
        self._cache_writer = CacheWriteThrottle(
            cache,
            cache_key,
            self._list.to_cache_payload,
            delay_seconds=settings.cache_write_delay_seconds,
            after_write=self._after_cache_write,
        )
        self._realtime = RealtimeMerger(
            fetcher,
            settings,
            on_batch=self._apply_realtime_batch,
            on_error=self._handle_realtime_error,
        )

    # ──────────────────────────────────────────────────────────────
    # Estado público
    # ──────────────────────────────────────────────────────────────

    @property
    def identity(self) -> Identity:
        if self._identity is None:
            self._identity = self._identity_provider.current_identity()
        return self._identity

    @property
    def emails(self) -> list[EmailRecord]:
        """Snapshot da lista, mais recente primeiro."""
        return self._list.records()

    @property
    def count(self) -> int:
        return len(self._list)

    @property
    def has_more(self) -> bool:
        return self._state.has_more

    @property
    def pagination(self) -> PaginationState:
        return self._state

    @property
    def from_cache(self) -> bool:
        return self._from_cache

    @property
    def realtime_active(self) -> bool:
        return self._realtime.active

    @property
    def scheduled_loaded(self) -> bool:
        return self._scheduled_loaded

    def get_email(self, doc_id: str) -> EmailRecord | None:
        return self._list.get(doc_id)

    def subscribe(self, listener: Callable[[EmailsEvent], None]) -> Callable[[], None]:
        """Registra um listener de eventos; devolve a função de remoção."""
        return self._bus.subscribe(listener)

    # ──────────────────────────────────────────────────────────────
    # Ciclo de vida
    # ──────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Carrega a lista (cache primeiro) e liga o tempo real. Idempotente.

        O correlation_id da sessão vale só durante o start e nas tasks
        criadas a partir dele (a recarga em background herda o contexto).
        """
        if self._started:
            return
        self._started = True
        token = set_correlation_id(self.session_id)
        try:
            await self._start()
        finally:
            reset_correlation_id(token)

    async def _start(self) -> None:
        self._identity = self._identity_provider.current_identity()

        cached = await self._read_cache()
        if cached:
            await self._hydrate_from_cache(cached)
            if self._page_active:
                self._start_realtime()
                self._refresh_task = asyncio.get_running_loop().create_task(
                    self._background_reload()
                )
            return

        await self.reload()

    async def activate(self) -> None:
        """Marca a tela de emails como aberta e completa o que ficou adiado."""
        if self._page_active:
            return
        self._page_active = True
        if not self._started:
            await self.start()
            return
        await self.reload()

    async def reload(self) -> None:
        """Recarrega a primeira página do Firestore e faz merge na lista."""
        identity = self.identity
        limit = self._initial_limit(identity)
        started = time.perf_counter()

        page = await self._fetcher.load_initial(identity, limit=limit)
        self._list.merge(page.records)
        self._counts.invalidate()
        record_batch("firestore", len(page.records), total=len(self._list))

        state = page.state
        if not identity.is_scoped and len(self._list) > len(page.records):
            state = await self._fetcher.resolve_cursors(identity, state, self._list.records())
        self._state = state

        if self._page_active:
            await self.ensure_scheduled_loaded()

        await write_cache(self._cache, self._cache_key, self._list.to_cache_payload(), source="firestore")
        record_latency("email_sync", "reload", (time.perf_counter() - started) * 1000)

        detail: dict[str, Any] = {"count": len(self._list), "from_firestore": True}
        if page.failed:
            detail["error"] = "query-failed"
        self._bus.emit("loaded", **detail)
        self._start_realtime()

    async def load_more(self) -> LoadMoreResult:
        """Carrega a próxima página (página de page_limit por stream)."""
        if not self._state.has_more:
            return LoadMoreResult(loaded=0, has_more=False)

        identity = self.identity
        started = time.perf_counter()
        if self._state.needs_cursor_resolution:
            self._state = await self._fetcher.resolve_cursors(
                identity, self._state, self._list.records()
            )

        page = await self._fetcher.load_more(identity, self._state, known_ids=self._list.ids())
        self._list.merge(page.records)
        self._counts.invalidate()
        self._state = page.state

        if page.records:
            await write_cache(
                self._cache, self._cache_key, self._list.to_cache_payload(), source="load-more"
            )
        record_latency("email_sync", "load_more", (time.perf_counter() - started) * 1000)

        self._bus.emit(
            "loaded-more",
            count=len(page.records),
            total=len(self._list),
            has_more=self._state.has_more,
        )
        return LoadMoreResult(loaded=len(page.records), has_more=self._state.has_more)

    async def ensure_scheduled_loaded(self) -> None:
        """Garante todos os agendados na lista (uma vez por sessão)."""
        if self._scheduled_loaded or not self._page_active:
            return
        page = await self._fetcher.fetch_scheduled(self.identity)
        if page.failed:
            log_degraded(logger, "email_sync", reason="scheduled-fetch-failed")
            return
        self._list.merge(page.records)
        self._counts.invalidate()
        self._scheduled_loaded = True
        logger.info("scheduled_emails_ensured", extra={"count": len(page.records)})

    async def stop(self) -> None:
        """Desliga a recarga em background, throttles e listeners.

        Depois do stop nada religa o tempo real nem emite `updated`.
        """
        self._stopped = True
        self._notifier.close()
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._cache_writer.flush()
        self._realtime.stop()

    # ──────────────────────────────────────────────────────────────
    # Contagens e mutações locais
    # ──────────────────────────────────────────────────────────────

    def count_for(self, folder: Folder) -> int:
        """Contagem da pasta a partir da lista em memória (memo com TTL)."""
        return self._counts.count_for(folder, self.identity, self._list.records())

    async def count_total(self) -> int:
        """Total no servidor via agregação (fallback: carregados)."""
        return await self._fetcher.count_total(self.identity, len(self._list))

    def remove_email(self, doc_id: str) -> bool:
        removed = self._list.remove(doc_id)
        if removed:
            self._counts.invalidate()
        return removed

    def update_email_status(self, doc_id: str, status: str) -> bool:
        updated = self._list.update_status(doc_id, status, _now_iso())
        if updated:
            self._counts.invalidate()
        return updated

    # ──────────────────────────────────────────────────────────────
    # Internos
    # ──────────────────────────────────────────────────────────────

    def _initial_limit(self, identity: Identity) -> int:
        if not self._page_active:
            return self._settings.dashboard_limit
        if identity.is_scoped:
            return self._settings.employee_initial_limit
        return self._settings.admin_initial_limit

    async def _read_cache(self) -> list[dict[str, Any]] | None:
        try:
            return await self._cache.get(self._cache_key)
        except Exception as exc:
            log_degraded(logger, "email_cache", reason=str(exc))
            return None

    async def _hydrate_from_cache(self, cached: list[dict[str, Any]]) -> None:
        identity = self.identity
        records, changed = upgrade_cached_emails(cached)
        if changed:
            await write_cache(
                self._cache,
                self._cache_key,
                [record.to_cache_dict() for record in records],
                source="cache-upgrade",
            )

        if identity.is_scoped:
            records = [record for record in records if record.belongs_to(identity.email)]
        self._list.replace(records)
        self._counts.invalidate()
        self._from_cache = True
        record_batch("cache", len(records), total=len(self._list))

        self._state = self._state_from_cache(identity)
        if self._page_active and self._state.has_more:
            self._state = await self._fetcher.resolve_cursors(
                identity, self._state, self._list.records()
            )
        if self._page_active:
            await self.ensure_scheduled_loaded()

        logger.info(
            "emails_hydrated_from_cache",
            extra={
                "identity": identity_hash(identity.email) if identity.is_scoped else "admin",
                "count": len(self._list),
                "has_more": self._state.has_more,
            },
        )
        self._bus.emit("loaded", count=len(self._list), cached=True)

    def _state_from_cache(self, identity: Identity) -> PaginationState:
        """has_more otimista: cache do tamanho da página inicial implica mais dados."""
        if not identity.is_scoped:
            return PaginationState(
                admin_has_more=len(self._list) >= self._settings.admin_initial_limit
            )
        email = identity.normalized_email
        records = self._list.records()
        owned = sum(1 for record in records if (record.owner_id or "").lower() == email)
        assigned = sum(1 for record in records if (record.assigned_to or "").lower() == email)
        limit = self._settings.employee_initial_limit
        return PaginationState(
            scoped=True,
            owner_has_more=owned >= limit,
            assigned_has_more=assigned >= limit,
        )

    async def _background_reload(self) -> None:
        try:
            await self.reload()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("email_background_reload_failed")

    def _start_realtime(self) -> None:
        if self._stopped:
            return
        self._realtime.start(self.identity)

    def _apply_realtime_batch(self, source: str, records: list[EmailRecord], persist: bool) -> None:
        if self._stopped:
            return
        self._list.merge(records)
        self._counts.invalidate()
        if persist and self._cache_writer.request(source):
            return
        self._notifier.notify(f"realtime-{source}", count=len(self._list))

    def _after_cache_write(self, source: str) -> None:
        if self._stopped:
            return
        self._notifier.notify(f"realtime-{source}-cachewrite", count=len(self._list))

    def _handle_realtime_error(self, source: str, kind: StoreErrorKind, exc: BaseException) -> None:
        if self._stopped:
            return
        if kind == "permission-denied":
            log_degraded(logger, "realtime", reason=kind, feed=source)
            self._list.clear()
            self._counts.invalidate()
            self._bus.emit("loaded", count=0, error="permission-denied")
            return
        if kind == "index-missing":
            logger.error(
                "realtime_index_missing",
                extra={"feed": source, "error": str(exc)},
            )
            return
        logger.warning("realtime_listener_failed", extra={"feed": source, "error": str(exc)})
