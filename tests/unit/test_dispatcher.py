"""Tests for the fire-and-forget event dispatcher."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.webhook.dispatcher import EventDispatcher


def _make_pipeline(side_effect: object = None) -> MagicMock:
    pipeline = MagicMock()
    pipeline.process_event = AsyncMock(side_effect=side_effect)
    return pipeline


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_submit_does_not_run_pipeline_inline(self) -> None:
        pipeline = _make_pipeline()
        dispatcher = EventDispatcher(pipeline, workers=1)

        assert dispatcher.submit({"entry": []}) is True
        # Nothing has run yet: processing waits for the submitter to yield.
        pipeline.process_event.assert_not_called()

        await dispatcher.join()
        pipeline.process_event.assert_awaited_once_with({"entry": []})
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_submit_starts_workers_lazily(self) -> None:
        dispatcher = EventDispatcher(_make_pipeline(), workers=2)
        assert dispatcher.running is False
        dispatcher.submit({})
        assert dispatcher.running is True
        await dispatcher.stop()
        assert dispatcher.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        dispatcher = EventDispatcher(_make_pipeline(), workers=3)
        dispatcher.start()
        first = list(dispatcher._workers)
        dispatcher.start()
        assert dispatcher._workers == first
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_worker_survives_pipeline_exception(self) -> None:
        pipeline = _make_pipeline(side_effect=[RuntimeError("boom"), None])
        dispatcher = EventDispatcher(pipeline, workers=1)

        dispatcher.submit({"n": 1})
        dispatcher.submit({"n": 2})
        await dispatcher.join()

        assert pipeline.process_event.await_count == 2
        assert dispatcher.running is True
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_events_processed_concurrently(self) -> None:
        started = asyncio.Event()
        release = asyncio.Event()
        seen: list[object] = []

        async def process(raw: object) -> None:
            seen.append(raw)
            if raw == "slow":
                started.set()
                await release.wait()

        pipeline = MagicMock()
        pipeline.process_event = process
        dispatcher = EventDispatcher(pipeline, workers=2)

        dispatcher.submit("slow")
        await started.wait()
        dispatcher.submit("fast")
        for _ in range(10):
            await asyncio.sleep(0)
        assert "fast" in seen  # not blocked behind the slow event

        release.set()
        await dispatcher.join()
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self) -> None:
        dispatcher = EventDispatcher(_make_pipeline(), workers=1, max_queue_size=1)
        assert dispatcher.submit("a") is True
        assert dispatcher.submit("b") is False
        assert dispatcher.pending == 1
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_after_timeout(self) -> None:
        async def hang(raw: object) -> None:
            await asyncio.Event().wait()

        pipeline = MagicMock()
        pipeline.process_event = hang
        dispatcher = EventDispatcher(pipeline, workers=1)
        dispatcher.submit("stuck")
        await asyncio.sleep(0)

        await dispatcher.stop(timeout=0.05)
        assert dispatcher.running is False
