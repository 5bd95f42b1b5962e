"""Realtime Merger: listeners on_snapshot sobre janelas de emails.

Admin assina três feeds (principais, enviados, agendados); usuário
escopado assina quatro (owner, assigned e os agendados de cada um).
Cada snapshot é normalizado na thread do listener e entregue ao loop
asyncio via call_soon_threadsafe: o merge na lista acontece sempre na
thread do loop, nunca em paralelo com cargas de página.

Snapshots fazem merge (upsert por id), nunca substituem a lista.
Um watch encerrado pelo servidor é detectado por uma checagem periódica
e a causa (ex: permissão negada) segue o mesmo caminho dos erros de
assinatura.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app.domain.normalizer import normalize_email_doc
from config.logging import identity_hash
from utils.errors import StoreErrorKind, classify_store_error

if TYPE_CHECKING:
    from collections.abc import Callable

    from app.domain.email_record import EmailRecord
    from app.domain.identity import Identity
    from app.infra.stores import FirestoreEmailFetcher
    from config.settings import EmailSyncSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Feed:
    """Uma janela assinada.

    Attributes:
        name: Origem usada nos eventos (ex: "main", "sent", "scheduled-owned")
        query: Query do Firestore
        persist: Snapshots deste feed disparam escrita no cache
        default_type: Tipo usado quando o documento não informa nenhum
    """

    name: str
    query: Any
    persist: bool = False
    default_type: str = "sent"


class RealtimeMerger:
    """Gerencia os listeners de tempo real de uma sessão.

    Args:
        fetcher: Fonte dos query builders
        settings: Janelas de cada feed
        on_batch: Chamado no loop com (feed, registros, persist)
        on_error: Chamado no loop com (feed, kind, exceção)
    """

    def __init__(
        self,
        fetcher: FirestoreEmailFetcher,
        settings: EmailSyncSettings,
        *,
        on_batch: Callable[[str, list[EmailRecord], bool], None],
        on_error: Callable[[str, StoreErrorKind, BaseException], None],
    ) -> None:
        self._fetcher = fetcher
        self._settings = settings
        self._on_batch = on_batch
        self._on_error = on_error
        self._loop: asyncio.AbstractEventLoop | None = None
        self._watches: dict[str, Any] = {}
        self._feeds: dict[str, Feed] = {}
        self._watchdog: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return bool(self._watches)

    @property
    def feed_names(self) -> list[str]:
        return list(self._watches)

    def feeds_for(self, identity: Identity) -> list[Feed]:
        fetcher = self._fetcher
        settings = self._settings
        if identity.is_scoped:
            email = identity.normalized_email
            main = settings.realtime_main_limit
            scheduled = settings.realtime_scheduled_limit
            return [
                Feed("owner", fetcher.scoped_query("ownerId", email, main, ordered=False), persist=True),
                Feed(
                    "assigned",
                    fetcher.scoped_query("assignedTo", email, main, ordered=False),
                    persist=True,
                ),
                Feed(
                    "scheduled-owned",
                    fetcher.scheduled_query(scheduled, field_name="ownerId", email=email),
                    default_type="scheduled",
                ),
                Feed(
                    "scheduled-assigned",
                    fetcher.scheduled_query(scheduled, field_name="assignedTo", email=email),
                    default_type="scheduled",
                ),
            ]
        return [
            Feed("main", fetcher.recent_query(settings.realtime_main_limit), persist=True),
            Feed("sent", fetcher.sent_tracking_query(settings.realtime_sent_limit)),
            Feed(
                "scheduled",
                fetcher.scheduled_query(settings.realtime_scheduled_limit),
                default_type="scheduled",
            ),
        ]

    def start(self, identity: Identity, loop: asyncio.AbstractEventLoop | None = None) -> int:
        """Assina os feeds da identidade (idempotente).

        Com `realtime_watchdog_seconds` > 0 também agenda a checagem dos
        listeners que o servidor encerrou.

        Returns:
            Quantidade de feeds ativos.
        """
        if self._watches:
            return len(self._watches)

        self._loop = loop or asyncio.get_running_loop()
        for feed in self.feeds_for(identity):
            self._feeds[feed.name] = feed
            self._subscribe(feed)

        if self._watches and self._settings.realtime_watchdog_seconds > 0 and self._watchdog is None:
            self._watchdog = self._loop.create_task(self._watch_listeners())

        logger.info(
            "realtime_listeners_started",
            extra={
                "identity": identity_hash(identity.normalized_email) if identity.is_scoped else "admin",
                "feeds": sorted(self._watches),
            },
        )
        return len(self._watches)

    def stop(self) -> None:
        """Cancela todos os listeners e a checagem periódica."""
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        for name, watch in list(self._watches.items()):
            try:
                watch.unsubscribe()
            except Exception as exc:
                logger.warning(
                    "realtime_unsubscribe_failed",
                    extra={"feed": name, "error": str(exc)},
                )
        if self._watches:
            logger.info("realtime_listeners_stopped", extra={"feeds": sorted(self._watches)})
        self._watches.clear()
        self._feeds.clear()

    def _subscribe(self, feed: Feed) -> None:
        try:
            self._watches[feed.name] = feed.query.on_snapshot(self._callback(feed))
        except Exception as exc:
            self._dispatch_error(feed.name, exc)

    async def _watch_listeners(self) -> None:
        """Detecta watches encerrados pelo servidor (sem unsubscribe).

        O Watch do Firestore não tem callback de erro: num erro de RPC não
        recuperável ele se fecha na thread dele. A causa é descoberta com
        uma leitura de um documento da mesma query; sem erro, o feed é
        reassinado.
        """
        interval = self._settings.realtime_watchdog_seconds
        try:
            while self._watches:
                await asyncio.sleep(interval)
                for name, watch in list(self._watches.items()):
                    if getattr(watch, "is_active", True):
                        continue
                    self._watches.pop(name, None)
                    feed = self._feeds.get(name)
                    if feed is not None:
                        await self._recover(feed)
        finally:
            if self._watchdog is asyncio.current_task():
                self._watchdog = None

    async def _recover(self, feed: Feed) -> None:
        try:
            await asyncio.to_thread(feed.query.limit(1).get)
        except Exception as exc:
            logger.warning(
                "realtime_listener_closed",
                extra={"feed": feed.name, "error": str(exc)},
            )
            self._dispatch_error(feed.name, exc)
            return
        logger.warning("realtime_listener_resubscribed", extra={"feed": feed.name})
        self._subscribe(feed)

    def _callback(self, feed: Feed) -> Callable[[list[Any], list[Any], Any], None]:
        def _on_snapshot(docs: list[Any], changes: list[Any], read_time: Any) -> None:
            try:
                records = [
                    normalize_email_doc(doc.id, doc.to_dict() or {}, default_type=feed.default_type)
                    for doc in docs
                ]
            except Exception as exc:
                self._dispatch_error(feed.name, exc)
                return
            self._dispatch(self._on_batch, feed.name, records, feed.persist)

        return _on_snapshot

    def report_error(self, feed_name: str, exc: BaseException) -> None:
        """Entrega um erro de listener ao loop (pode ser chamado de qualquer thread)."""
        self._dispatch_error(feed_name, exc)

    def _dispatch_error(self, feed_name: str, exc: BaseException) -> None:
        kind = classify_store_error(exc)
        self._dispatch(self._on_error, feed_name, kind, exc)

    def _dispatch(self, handler: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("realtime_event_dropped", extra={"feed": args[0]})
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            handler(*args)
            return
        try:
            loop.call_soon_threadsafe(handler, *args)
        except RuntimeError:
            logger.warning("realtime_event_dropped", extra={"feed": args[0]})
