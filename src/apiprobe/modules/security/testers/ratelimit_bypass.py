"""Rate limiting bypass tester."""

import asyncio
import logging
from collections.abc import Sequence

from apiprobe.tools.http import ProbeExecutor

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..burst import BurstDispatcher
from ..bypass import (
    BYPASS_TECHNIQUES,
    CONCURRENT_REQUESTS,
    REQUESTS_PER_TEST,
    SUCCESS_THRESHOLD,
    TIME_BETWEEN_REQUESTS,
    BypassEvaluator,
    BypassOutcome,
    BypassTechnique,
)
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from ..oracle import RateLimitOracle, RateLimitSignal
from .common import DOS_CHEAT_SHEET, OWASP_API_2019

logger = logging.getLogger(__name__)

REFERENCES = (
    f"{OWASP_API_2019}/0xa4-lack-of-resources-and-rate-limiting/",
    DOS_CHEAT_SHEET,
)


class RateLimitBypassTester(SecurityTester):
    """Detect a rate limiter, then try each bypass technique against it."""

    name = "Rate Limiting Bypass"
    vuln_type = VulnerabilityType.RATE_LIMIT_BYPASS
    description = (
        "Tests for API endpoints that have rate limiting mechanisms that can be bypassed "
        "using various techniques."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        requests_per_test: int = REQUESTS_PER_TEST,
        concurrency: int = CONCURRENT_REQUESTS,
        delay: float = TIME_BETWEEN_REQUESTS,
        threshold: float = SUCCESS_THRESHOLD,
        techniques: Sequence[BypassTechnique] = BYPASS_TECHNIQUES,
        oracle: RateLimitOracle | None = None,
    ):
        super().__init__(executor_factory)
        self.requests_per_test = requests_per_test
        self.concurrency = concurrency
        self.delay = delay
        self.threshold = threshold
        self.techniques = tuple(techniques)
        self.oracle = oracle or RateLimitOracle()

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        dispatcher = BurstDispatcher(executor, delay=self.delay, trace_tag="rate-limit-bypass-test")
        evaluator = BypassEvaluator(
            dispatcher,
            requests_per_test=self.requests_per_test,
            concurrency=self.concurrency,
            threshold=self.threshold,
        )

        for endpoint in target.all_endpoints():
            if is_cancelled(cancel_event):
                break
            request = target.request(endpoint)
            calibration = await dispatcher.dispatch(
                request, self.requests_per_test, self.concurrency, cancel_event=cancel_event
            )
            if is_cancelled(cancel_event) or not calibration:
                logger.info(
                    "Calibration burst against %s inconclusive (%d/%d responses)",
                    endpoint,
                    len(calibration),
                    self.requests_per_test,
                )
                continue

            signal = self.oracle.signal(calibration)
            if not signal:
                logger.info("No rate limiting detected on %s; skipping bypass techniques", endpoint)
                continue
            logger.info("Rate limiting detected on %s (%s)", endpoint, signal.evidence)

            outcomes = await evaluator.evaluate_all(request, self.techniques, cancel_event)
            for outcome in outcomes:
                if outcome.bypassed:
                    result.add(self._finding(endpoint, outcome, signal))

    def _finding(self, endpoint: str, outcome: BypassOutcome, signal: RateLimitSignal) -> Finding:
        technique = outcome.technique
        return Finding(
            type=VulnerabilityType.LACK_OF_RESOURCES,
            name=f"Rate Limiting Bypass ({technique.name})",
            description=(
                f"The API endpoint's rate limiting can be bypassed using {technique.name} "
                "technique."
            ),
            severity=Severity.HIGH,
            evidence=f"{outcome.evidence} at {endpoint}; limiter observed via {signal.evidence}",
            remediation=technique.remediation,
            cvss=7.5,
            cwe="CWE-770",
            references=REFERENCES,
        )
