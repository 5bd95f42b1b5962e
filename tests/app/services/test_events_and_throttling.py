"""Testes do barramento de eventos, do UpdateNotifier e do CacheWriteThrottle."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.infra.stores.memory_email_cache import MemoryEmailCache
from app.services.events import EmailsEvent, EmailsEventBus, UpdateNotifier
from app.services.throttling import CacheWriteThrottle, write_cache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestEmailsEventBus:
    def test_emit_reaches_listeners(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []
        bus.subscribe(received.append)

        bus.emit("loaded", count=3, cached=True)

        assert received == [EmailsEvent("loaded", {"count": 3, "cached": True})]

    def test_unsubscribe(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []
        unsubscribe = bus.subscribe(received.append)
        unsubscribe()
        bus.emit("loaded", count=0)
        assert received == []

    def test_failing_listener_does_not_block_others(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []

        def _boom(event: EmailsEvent) -> None:
            raise RuntimeError("listener quebrado")

        bus.subscribe(_boom)
        bus.subscribe(received.append)
        bus.emit("updated", source="realtime-main")
        assert len(received) == 1


class TestUpdateNotifier:
    def test_coalesces_within_window(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []
        bus.subscribe(received.append)
        clock = FakeClock()
        notifier = UpdateNotifier(bus, throttle_seconds=0.3, clock=clock)

        assert notifier.notify("realtime-main", count=1) is True
        clock.now = 0.1
        assert notifier.notify("realtime-sent", count=2) is False
        clock.now = 0.2
        assert notifier.notify("realtime-sent", count=3) is False
        clock.now = 0.5
        assert notifier.notify("realtime-scheduled", count=4) is True

        assert [e.detail["source"] for e in received] == ["realtime-main", "realtime-scheduled"]
        assert received[0].detail["suppressed"] == 0
        assert received[1].detail["suppressed"] == 2
        assert received[1].detail["count"] == 4

    @pytest.mark.anyio
    async def test_trailing_flush_delivers_last_state(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []
        bus.subscribe(received.append)
        notifier = UpdateNotifier(bus, throttle_seconds=0.05)

        notifier.notify("realtime-main", count=1)
        notifier.notify("realtime-main", count=2)
        await asyncio.sleep(0.1)

        assert [e.detail["count"] for e in received] == [1, 2]
        assert received[1].detail["suppressed"] == 1
        notifier.close()

    @pytest.mark.anyio
    async def test_close_cancels_pending_flush(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []
        bus.subscribe(received.append)
        notifier = UpdateNotifier(bus, throttle_seconds=0.05)

        notifier.notify("realtime-main", count=1)
        notifier.notify("realtime-main", count=2)
        notifier.close()
        await asyncio.sleep(0.1)

        assert len(received) == 1

    def test_notify_after_close_is_ignored(self) -> None:
        bus = EmailsEventBus()
        received: list[EmailsEvent] = []
        bus.subscribe(received.append)
        notifier = UpdateNotifier(bus, throttle_seconds=0.0)

        notifier.close()

        assert notifier.notify("realtime-main-cachewrite", count=1) is False
        assert received == []


class TestCacheWriteThrottle:
    @pytest.mark.anyio
    async def test_burst_becomes_single_write_with_latest_state(self) -> None:
        cache = MemoryEmailCache()
        state = [{"id": "a"}]
        written: list[str] = []
        throttle = CacheWriteThrottle(
            cache, "emails", lambda: list(state), delay_seconds=0.01, after_write=written.append
        )

        assert throttle.request("main") is True
        state.append({"id": "b"})
        assert throttle.request("main") is False
        await throttle.flush()

        assert cache.writes == 1
        assert await cache.get("emails") == [{"id": "a"}, {"id": "b"}]
        assert written == ["main"]
        assert throttle.pending is False

    @pytest.mark.anyio
    async def test_cancel_drops_pending_write(self) -> None:
        cache = MemoryEmailCache()
        throttle = CacheWriteThrottle(cache, "emails", list, delay_seconds=0.05)
        throttle.request("main")
        throttle.cancel()
        await asyncio.sleep(0.1)
        assert cache.writes == 0

    @pytest.mark.anyio
    async def test_write_cache_swallows_failures(self) -> None:
        cache = AsyncMock()
        cache.set.side_effect = RuntimeError("disco cheio")
        assert await write_cache(cache, "emails", [], source="firestore") is False
