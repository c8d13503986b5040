"""Tests for bounded-concurrency burst dispatch."""

import asyncio

import pytest

from apiprobe.modules.security.burst import TRACE_HEADER, BurstDispatcher, ResponseCollector
from apiprobe.tools.http import ProbeRequest

BASE = ProbeRequest(method="GET", url="https://api.example.com/items")


class TestBurstDispatcher:
    """Test BurstDispatcher.dispatch."""

    async def test_never_exceeds_concurrency(self, tracking_executor):
        executor = tracking_executor(delay=0.01)
        dispatcher = BurstDispatcher(executor)

        responses = await dispatcher.dispatch(BASE, count=25, concurrency=4)

        assert len(responses) == 25
        assert executor.max_in_flight <= 4
        assert executor.max_in_flight == 4

    async def test_concurrency_larger_than_count(self, tracking_executor):
        executor = tracking_executor(delay=0.01)
        dispatcher = BurstDispatcher(executor)

        responses = await dispatcher.dispatch(BASE, count=3, concurrency=50)

        assert len(responses) == 3
        assert executor.max_in_flight <= 3

    async def test_every_request_answered_when_no_failures(self, scripted_executor):
        executor = scripted_executor()
        dispatcher = BurstDispatcher(executor)

        responses = await dispatcher.dispatch(BASE, count=30, concurrency=5)

        assert len(responses) == 30
        assert len(executor.requests) == 30

    async def test_transport_failures_are_dropped(self, scripted_executor, flaky_handler):
        executor = scripted_executor(flaky_handler(5))
        dispatcher = BurstDispatcher(executor)

        responses = await dispatcher.dispatch(BASE, count=30, concurrency=5)

        assert len(executor.requests) == 30
        assert len(responses) == 30 - 6

    async def test_zero_count_sends_nothing(self, scripted_executor):
        executor = scripted_executor()
        dispatcher = BurstDispatcher(executor)

        assert await dispatcher.dispatch(BASE, count=0, concurrency=5) == []
        assert executor.requests == []

    @pytest.mark.parametrize(("count", "concurrency"), [(-1, 5), (5, 0)])
    async def test_invalid_arguments(self, scripted_executor, count, concurrency):
        dispatcher = BurstDispatcher(scripted_executor())

        with pytest.raises(ValueError):
            await dispatcher.dispatch(BASE, count=count, concurrency=concurrency)

    async def test_trace_header_and_customizer(self, scripted_executor):
        executor = scripted_executor()
        dispatcher = BurstDispatcher(executor, trace_tag="probe")
        seen_trace: list[str] = []

        def customizer(index: int, request: ProbeRequest) -> ProbeRequest:
            seen_trace.append(request.headers[TRACE_HEADER])
            return request.with_headers({"X-Index": str(index)})

        await dispatcher.dispatch(BASE, count=4, concurrency=2, customizer=customizer)

        assert sorted(seen_trace) == [f"probe-{i}" for i in range(4)]
        sent = {r.headers["X-Index"]: r.headers[TRACE_HEADER] for r in executor.requests}
        assert sent == {str(i): f"probe-{i}" for i in range(4)}
        assert BASE.headers == {}

    async def test_cancellation_returns_partial_responses(
        self, scripted_executor, response_factory
    ):
        cancel = asyncio.Event()
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 3:
                cancel.set()
            return response_factory(url=request.url)

        executor = scripted_executor(handler, delay=0.01)
        dispatcher = BurstDispatcher(executor)

        responses = await dispatcher.dispatch(BASE, count=50, concurrency=1, cancel_event=cancel)

        assert 1 <= len(responses) < 50
        assert len(executor.requests) < 50

    async def test_pre_set_cancel_sends_nothing(self, scripted_executor):
        cancel = asyncio.Event()
        cancel.set()
        executor = scripted_executor()
        dispatcher = BurstDispatcher(executor)

        responses = await dispatcher.dispatch(BASE, count=10, concurrency=2, cancel_event=cancel)

        assert responses == []
        assert executor.requests == []

    async def test_pacing_delay_holds_the_slot(self, tracking_executor):
        executor = tracking_executor(delay=0.0)
        dispatcher = BurstDispatcher(executor, delay=0.01)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await dispatcher.dispatch(BASE, count=4, concurrency=1)

        assert loop.time() - started >= 0.03


class TestResponseCollector:
    """Test ResponseCollector."""

    async def test_concurrent_adds_are_all_kept(self, response_factory):
        collector = ResponseCollector()

        await asyncio.gather(*(collector.add(response_factory()) for _ in range(100)))

        assert len(collector) == 100
        snapshot = collector.snapshot()
        snapshot.clear()
        assert len(collector) == 100
