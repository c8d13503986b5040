"""Base contract for security tester modules."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from apiprobe.errors import TesterError
from apiprobe.tools.http import HTTPProbeExecutor, ProbeExecutor

from .models import TargetConfig, TestResult, VulnerabilityType

logger = logging.getLogger(__name__)

# Builds an executor (an async context manager) for one target.
ExecutorFactory = Callable[[TargetConfig], ProbeExecutor]


def default_executor_factory(target: TargetConfig) -> HTTPProbeExecutor:
    return HTTPProbeExecutor(
        timeout=target.timeout,
        follow_redirects=target.follow_redirects,
        verify_ssl=target.verify_ssl,
    )


class SecurityTester(ABC):
    """Tester interface for one vulnerability category.

    Subclasses set ``name``, ``vuln_type`` and ``description`` and implement
    ``run``; ``test`` wraps it with result bookkeeping and executor lifecycle.
    """

    name: str
    vuln_type: VulnerabilityType
    description: str

    def __init__(self, executor_factory: ExecutorFactory | None = None):
        self._executor_factory = executor_factory or default_executor_factory

    def get_type(self) -> VulnerabilityType:
        return self.vuln_type

    def get_name(self) -> str:
        return self.name

    def get_description(self) -> str:
        return self.description

    async def test(
        self,
        target: TargetConfig,
        cancel_event: asyncio.Event | None = None,
    ) -> TestResult:
        """Run the tester against *target* and return its result.

        Raises ``TesterError`` when the tester cannot run at all (for example a
        ``TargetConfigError`` during setup); the original exception is chained
        and the partial result travels on the error. Probe-level failures
        never escape.
        """
        result = TestResult(test_name=self.get_name())
        logger.info("Running %s against %s", self.get_name(), target.url)
        try:
            target.validate()
            async with self._executor_factory(target) as executor:
                await self.run(executor, target, result, cancel_event)
        except Exception as exc:
            result.error = str(exc)
            result.finish()
            logger.warning("%s failed: %s", self.get_name(), exc)
            raise TesterError(self.get_name(), result, str(exc)) from exc
        result.finish()
        logger.info(
            "%s finished: %d findings in %.1fs",
            self.get_name(),
            len(result.vulnerabilities),
            result.duration.total_seconds(),
        )
        return result

    @abstractmethod
    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        """Probe the target and append findings to *result*."""


def is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()
