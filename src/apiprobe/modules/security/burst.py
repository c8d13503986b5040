"""Bounded-concurrency burst dispatch of probe requests."""

import asyncio
import logging
from collections.abc import Callable

from apiprobe.errors import TransportError
from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Test-ID"

# Builds the request actually sent for probe ``i`` from the traced base request.
ProbeCustomizer = Callable[[int, ProbeRequest], ProbeRequest]


class ResponseCollector:
    """Append-only response store shared by the workers of one burst."""

    def __init__(self) -> None:
        self._responses: list[ProbeResponse] = []
        self._lock = asyncio.Lock()

    async def add(self, response: ProbeResponse) -> None:
        async with self._lock:
            self._responses.append(response)

    def snapshot(self) -> list[ProbeResponse]:
        return list(self._responses)

    def __len__(self) -> int:
        return len(self._responses)


class BurstDispatcher:
    """Fire a fixed number of probes with at most ``concurrency`` in flight.

    Each worker holds one admission slot from sending its probe until the
    optional pacing ``delay`` has elapsed after the response. Probes that fail
    at the transport layer are dropped, so a burst of ``count`` probes yields
    at most ``count`` responses in no particular order.
    """

    def __init__(
        self,
        executor: ProbeExecutor,
        delay: float = 0.0,
        trace_tag: str = "rate-limit-test",
    ):
        self.executor = executor
        self.delay = delay
        self.trace_tag = trace_tag

    async def dispatch(
        self,
        request: ProbeRequest,
        count: int,
        concurrency: int,
        customizer: ProbeCustomizer | None = None,
        cancel_event: asyncio.Event | None = None,
        delay: float | None = None,
    ) -> list[ProbeResponse]:
        """Send ``count`` probes derived from *request* and return the responses."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if count == 0:
            return []

        pacing = self.delay if delay is None else delay
        gate = asyncio.Semaphore(min(concurrency, count))
        collector = ResponseCollector()

        async def worker(index: int) -> None:
            async with gate:
                if cancel_event is not None and cancel_event.is_set():
                    return
                probe = request.with_headers({TRACE_HEADER: f"{self.trace_tag}-{index}"})
                if customizer is not None:
                    probe = customizer(index, probe)
                try:
                    response = await self.executor.execute(probe)
                except TransportError as exc:
                    logger.debug("Dropped probe %d to %s: %s", index, probe.url, exc)
                    return
                await collector.add(response)
                if pacing > 0:
                    await asyncio.sleep(pacing)

        tasks = [asyncio.create_task(worker(index)) for index in range(count)]
        try:
            if cancel_event is None:
                await asyncio.gather(*tasks)
            else:
                await _wait_or_cancel(tasks, cancel_event)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        responses = collector.snapshot()
        logger.debug(
            "Burst to %s finished: %d/%d responses", request.url, len(responses), count
        )
        return responses


async def _wait_or_cancel(tasks: list[asyncio.Task], cancel_event: asyncio.Event) -> None:
    """Wait for every task, or stop early once *cancel_event* is set."""
    pending = set(tasks)
    waiter = asyncio.create_task(cancel_event.wait())
    try:
        while pending:
            done, _ = await asyncio.wait(
                pending | {waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is waiter:
                    return
                pending.discard(task)
                task.result()
    finally:
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
