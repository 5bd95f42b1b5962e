"""Testes de integração da EmailSyncSession (Firestore fake + cache em memória)."""

from __future__ import annotations

import asyncio

import pytest
from google.api_core.exceptions import PermissionDenied

from app.domain.identity import StaticIdentityProvider
from app.domain.normalizer import normalize_email_doc
from app.infra.stores import FirestoreEmailFetcher, MemoryEmailCache
from app.observability import get_correlation_id
from app.services.email_sync import EmailSyncSession, LoadMoreResult
from config.settings import EmailSyncSettings
from tests.fakes.fake_firestore import FakeFirestore

SETTINGS = EmailSyncSettings(
    admin_initial_limit=5,
    employee_initial_limit=5,
    dashboard_limit=2,
    page_limit=2,
    cache_write_delay_seconds=0.01,
    update_throttle_seconds=0.0,
)

ADMIN = StaticIdentityProvider("admin@empresa.com", is_admin=True)
ANA = StaticIdentityProvider("ana@empresa.com")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _created(day: int) -> str:
    return f"2026-01-{day:02d}T00:00:00Z"


def _seed(db: FakeFirestore, count: int, **fields) -> None:
    for day in range(1, count + 1):
        db.add(f"e{day:02d}", {"type": "sent", "createdAt": _created(day), **fields})


def _session(db, provider=ADMIN, *, cache=None, settings=SETTINGS, **kwargs) -> EmailSyncSession:
    return EmailSyncSession(
        fetcher=FirestoreEmailFetcher(db, settings),
        cache=cache if cache is not None else MemoryEmailCache(),
        identity_provider=provider,
        settings=settings,
        **kwargs,
    )


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condição não atingida")
        await asyncio.sleep(0.005)


@pytest.fixture
def db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def events():
    return []


class TestColdStart:
    @pytest.mark.anyio
    async def test_loads_first_page_and_starts_realtime(self, db, events) -> None:
        _seed(db, 3)
        db.add("s1", {"type": "scheduled", "status": "pending", "createdAt": _created(4)})
        cache = MemoryEmailCache()
        session = _session(db, cache=cache)
        session.subscribe(events.append)

        await session.start()

        assert [r.id for r in session.emails] == ["s1", "e03", "e02", "e01"]
        assert session.has_more is False
        assert session.scheduled_loaded is True
        assert session.realtime_active is True
        assert events[0].name == "loaded"
        assert events[0].detail == {"count": 4, "from_firestore": True}
        assert len(await cache.get("emails")) == 4
        await session.stop()

    @pytest.mark.anyio
    async def test_query_failure_emits_loaded_with_error(self, db, events) -> None:
        _seed(db, 2)
        db.fail_with = PermissionDenied("regras")
        session = _session(db)
        session.subscribe(events.append)

        await session.start()

        assert session.count == 0
        assert events[0].detail["error"] == "query-failed"
        # Agendados falharam: nova tentativa fica liberada
        assert session.scheduled_loaded is False
        await session.stop()

    @pytest.mark.anyio
    async def test_scoped_session_only_sees_own_emails(self, db) -> None:
        db.add("own", {"type": "sent", "ownerId": "ana@empresa.com", "createdAt": _created(1)})
        db.add("asg", {"type": "sent", "assignedTo": "ana@empresa.com", "createdAt": _created(2)})
        db.add("bob", {"type": "sent", "ownerId": "bob@empresa.com", "createdAt": _created(3)})
        session = _session(db, ANA)

        await session.start()

        assert {r.id for r in session.emails} == {"own", "asg"}
        assert session.count_for("sent") == 2
        assert session.pagination.scoped is True
        await session.stop()

    @pytest.mark.anyio
    async def test_dashboard_uses_smaller_page_until_activated(self, db) -> None:
        _seed(db, 4)
        db.add("s1", {"type": "scheduled", "status": "pending", "createdAt": _created(1)})
        session = _session(db, emails_page_active=False)

        await session.start()
        assert session.count == 2
        assert session.scheduled_loaded is False

        await session.activate()
        assert session.count == 5
        assert session.scheduled_loaded is True
        await session.stop()


class TestCacheHydration:
    @pytest.mark.anyio
    async def test_full_cache_resolves_cursor_before_load_more(self, db, events) -> None:
        _seed(db, 8)
        cache = MemoryEmailCache()
        await cache.set(
            "emails",
            [normalize_email_doc(f"e{d:02d}", {"type": "sent", "createdAt": _created(d)}).to_cache_dict() for d in range(4, 9)],
        )
        session = _session(db, cache=cache)
        session.subscribe(events.append)

        await session.start()

        assert session.from_cache is True
        assert events[0].detail == {"count": 5, "cached": True}
        # Cache do tamanho da página inicial: há mais dados no servidor
        assert session.has_more is True
        assert session.pagination.cursor.id == "e04"
        assert "e04" in db.document_reads

        await _wait_for(lambda: any(e.detail.get("from_firestore") for e in events))

        first = await session.load_more()
        second = await session.load_more()

        assert first == LoadMoreResult(loaded=2, has_more=True)
        assert second == LoadMoreResult(loaded=1, has_more=False)
        ids = [r.id for r in session.emails]
        assert len(ids) == len(set(ids)) == 8
        assert [e.name for e in events].count("loaded-more") == 2
        await session.stop()

    @pytest.mark.anyio
    async def test_partial_cache_has_no_more(self, db, events) -> None:
        cache = MemoryEmailCache()
        await cache.set("emails", [normalize_email_doc("e01", {"createdAt": _created(1)}).to_cache_dict()])
        session = _session(db, cache=cache)

        await session.start()

        assert session.has_more is False
        assert db.document_reads == []
        await session.stop()

    @pytest.mark.anyio
    async def test_stale_cache_format_is_rewritten(self, db) -> None:
        cache = MemoryEmailCache()
        await cache.set("emails", [{"id": "old", "type": "sent", "createdAt": _created(1)}])
        session = _session(db, cache=cache, emails_page_active=False)

        await session.start()

        stored = await cache.get("emails")
        assert stored[0]["timestamp"] is not None
        assert stored[0]["date"] is not None
        await session.stop()

    @pytest.mark.anyio
    async def test_scoped_cache_is_filtered_by_identity(self, db) -> None:
        cache = MemoryEmailCache()
        await cache.set(
            "emails",
            [
                normalize_email_doc("mine", {"ownerId": "ana@empresa.com"}).to_cache_dict(),
                normalize_email_doc("theirs", {"ownerId": "bob@empresa.com"}).to_cache_dict(),
            ],
        )
        session = _session(db, ANA, cache=cache, emails_page_active=False)

        await session.start()

        assert [r.id for r in session.emails] == ["mine"]
        await session.stop()


class TestLoadMore:
    @pytest.mark.anyio
    async def test_noop_without_more(self, db) -> None:
        _seed(db, 2)
        session = _session(db)
        await session.start()
        queries_before = len(db.queries)

        assert await session.load_more() == LoadMoreResult(loaded=0, has_more=False)
        assert len(db.queries) == queries_before
        await session.stop()

    @pytest.mark.anyio
    async def test_scheduled_is_ensured_once(self, db) -> None:
        db.add("s1", {"type": "scheduled", "status": "pending", "createdAt": _created(1)})
        session = _session(db)
        await session.start()
        await session.ensure_scheduled_loaded()

        scheduled_queries = [q for q in db.queries if ("type", "==", "scheduled") in q.filters]
        assert len(scheduled_queries) == 1
        await session.stop()


class TestRealtime:
    @pytest.mark.anyio
    async def test_snapshot_merges_without_dropping_loaded_emails(self, db, events) -> None:
        _seed(db, 3)
        settings = EmailSyncSettings(
            admin_initial_limit=5,
            realtime_main_limit=1,
            cache_write_delay_seconds=0.01,
            update_throttle_seconds=0.0,
        )
        cache = MemoryEmailCache()
        session = _session(db, cache=cache, settings=settings)
        session.subscribe(events.append)
        await session.start()

        db.add("e04", {"type": "sent", "createdAt": _created(4)})
        db.push_all()

        assert [r.id for r in session.emails] == ["e04", "e03", "e02", "e01"]
        await _wait_for(
            lambda: any(e.detail.get("source") == "realtime-main-cachewrite" for e in events)
        )
        assert len(await cache.get("emails")) == 4
        await session.stop()

    @pytest.mark.anyio
    async def test_same_snapshot_twice_is_idempotent(self, db) -> None:
        _seed(db, 3)
        session = _session(db)
        await session.start()

        db.push_all()
        first = session.emails
        db.push_all()

        assert session.emails == first
        await session.stop()

    @pytest.mark.anyio
    async def test_permission_denied_clears_list(self, db, events) -> None:
        _seed(db, 3)
        db.fail_on_snapshot = PermissionDenied("regras")
        session = _session(db)
        session.subscribe(events.append)

        await session.start()

        assert session.count == 0
        assert events[-1].name == "loaded"
        assert events[-1].detail == {"count": 0, "error": "permission-denied"}
        await session.stop()

    @pytest.mark.anyio
    async def test_listener_closed_by_server_clears_list(self, db, events) -> None:
        _seed(db, 3)
        settings = EmailSyncSettings(
            admin_initial_limit=5,
            update_throttle_seconds=0.0,
            realtime_watchdog_seconds=0.01,
        )
        session = _session(db, settings=settings)
        session.subscribe(events.append)
        await session.start()
        assert session.count == 3

        db.fail_with = PermissionDenied("regras")
        db.watches[0].close()

        await _wait_for(lambda: events[-1].detail.get("error") == "permission-denied")
        assert session.count == 0
        await session.stop()


class TestCountsAndMutations:
    @pytest.mark.anyio
    async def test_mutations_invalidate_counts(self, db) -> None:
        _seed(db, 3)
        db.add("s1", {"type": "scheduled", "status": "pending", "createdAt": _created(4)})
        session = _session(db, clock=FakeClock())
        await session.start()

        assert session.count_for("sent") == 3
        assert session.count_for("scheduled") == 1

        assert session.remove_email("e01") is True
        assert session.count_for("sent") == 2

        assert session.update_email_status("s1", "rejected") is True
        assert session.count_for("scheduled") == 0
        assert session.get_email("s1").status == "rejected"
        await session.stop()

    @pytest.mark.anyio
    async def test_count_total_uses_aggregation(self, db) -> None:
        _seed(db, 8)
        session = _session(db)
        await session.start()

        assert session.count == 5
        assert await session.count_total() == 8
        await session.stop()


class TestStop:
    @pytest.mark.anyio
    async def test_stop_with_pending_write_and_reload_leaves_nothing_running(self, db, events) -> None:
        _seed(db, 3)
        cache = MemoryEmailCache()
        await cache.set("emails", [normalize_email_doc("e01", {"createdAt": _created(1)}).to_cache_dict()])
        session = _session(db, cache=cache)
        session.subscribe(events.append)
        await session.start()
        db.push_all()

        await session.stop()
        emitted = len(events)
        await asyncio.sleep(0.05)

        assert session.realtime_active is False
        assert all(not watch.active for watch in db.watches)
        assert len(events) == emitted
        # A escrita pendente foi concluída no stop
        assert len(await cache.get("emails")) == 3

    @pytest.mark.anyio
    async def test_stop_during_background_reload(self, db) -> None:
        _seed(db, 3)
        cache = MemoryEmailCache()
        await cache.set("emails", [normalize_email_doc("e01", {"createdAt": _created(1)}).to_cache_dict()])
        session = _session(db, cache=cache)
        await session.start()
        await asyncio.sleep(0)

        await session.stop()
        await asyncio.sleep(0.05)

        assert session.realtime_active is False
        assert all(not watch.active for watch in db.watches)

    @pytest.mark.anyio
    async def test_start_does_not_leak_correlation_id(self, db) -> None:
        session = _session(db)
        before = get_correlation_id()

        await session.start()

        assert get_correlation_id() == before
        await session.stop()
