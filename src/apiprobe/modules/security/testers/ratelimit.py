"""Lack of Resources & Rate Limiting tester (API4:2019)."""

import asyncio
import json
import logging

from apiprobe.tools.http import ProbeExecutor

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..burst import BurstDispatcher
from ..bypass import DEFAULT_REMEDIATION, SUCCESS_THRESHOLD
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from ..oracle import TOO_MANY_REQUESTS
from .common import DOS_CHEAT_SHEET, OWASP_API_2019, probe_once

logger = logging.getLogger(__name__)

REFERENCES = (
    f"{OWASP_API_2019}/0xa4-lack-of-resources-and-rate-limiting/",
    DOS_CHEAT_SHEET,
)

REQUESTS_PER_BURST = 20
BURST_COUNT = 3
TIME_BETWEEN_BURSTS = 2.0
CONCURRENT_REQUESTS = 10
LARGE_PAYLOAD_SIZE = 100 * 1024
LARGE_PARAMETER_COUNT = 100
LARGE_PARAMETER_LENGTH = 1000


class LackOfResourcesTester(SecurityTester):
    """Check whether endpoints limit request rate and request size."""

    name = "Lack of Resources & Rate Limiting"
    vuln_type = VulnerabilityType.LACK_OF_RESOURCES
    description = (
        "Tests for API endpoints that don't properly limit the amount of resources a client "
        "can request, potentially leading to denial of service."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        requests_per_burst: int = REQUESTS_PER_BURST,
        burst_count: int = BURST_COUNT,
        time_between_bursts: float = TIME_BETWEEN_BURSTS,
        concurrency: int = CONCURRENT_REQUESTS,
        threshold: float = SUCCESS_THRESHOLD,
        large_payload_size: int = LARGE_PAYLOAD_SIZE,
        large_parameter_count: int = LARGE_PARAMETER_COUNT,
        large_parameter_length: int = LARGE_PARAMETER_LENGTH,
    ):
        super().__init__(executor_factory)
        self.requests_per_burst = requests_per_burst
        self.burst_count = burst_count
        self.time_between_bursts = time_between_bursts
        self.concurrency = concurrency
        self.threshold = threshold
        self.large_payload_size = large_payload_size
        self.large_parameter_count = large_parameter_count
        self.large_parameter_length = large_parameter_length

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        dispatcher = BurstDispatcher(executor, trace_tag="rate-limit-test")
        for endpoint in target.all_endpoints():
            if is_cancelled(cancel_event):
                break
            missing = await self._missing_rate_limit(dispatcher, target, endpoint, cancel_event)
            if is_cancelled(cancel_event):
                break
            if missing:
                total = self.requests_per_burst * self.burst_count
                result.add(
                    Finding(
                        type=VulnerabilityType.LACK_OF_RESOURCES,
                        name="Missing Rate Limiting",
                        description="The API endpoint does not implement proper rate limiting.",
                        severity=Severity.HIGH,
                        evidence=(
                            f"Successfully sent {total} requests in {self.burst_count} bursts "
                            f"to {endpoint} without being rate limited"
                        ),
                        remediation=DEFAULT_REMEDIATION,
                        cvss=7.5,
                        cwe="CWE-770",
                        references=REFERENCES,
                    )
                )
            await self._check_large_payload(executor, target, endpoint, result)
            if is_cancelled(cancel_event):
                break
            await self._check_many_parameters(executor, target, endpoint, result)

    async def _missing_rate_limit(
        self,
        dispatcher: BurstDispatcher,
        target: TargetConfig,
        endpoint: str,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """Send several bursts; True when almost every probe succeeded and none got 429."""
        request = target.request(endpoint)
        total = self.requests_per_burst * self.burst_count
        successes = 0
        for burst in range(self.burst_count):
            responses = await dispatcher.dispatch(
                request, self.requests_per_burst, self.concurrency, cancel_event=cancel_event
            )
            if is_cancelled(cancel_event):
                logger.info("Rate limit check on %s cancelled; result inconclusive", endpoint)
                return False
            for response in responses:
                if response.status_code == TOO_MANY_REQUESTS:
                    logger.info("Rate limiting enforced on %s (HTTP 429)", endpoint)
                    return False
                if response.is_success:
                    successes += 1
            if burst < self.burst_count - 1 and self.time_between_bursts > 0:
                await asyncio.sleep(self.time_between_bursts)

        if total <= 0:
            return False
        return successes / total > self.threshold

    async def _check_large_payload(
        self, executor: ProbeExecutor, target: TargetConfig, endpoint: str, result: TestResult
    ) -> None:
        request = target.request(
            endpoint,
            method="POST",
            headers={"Content-Type": "application/json"},
            body=b"A" * self.large_payload_size,
        )
        response = await probe_once(executor, request)
        if response is None or not response.is_success:
            return
        result.add(
            Finding(
                type=VulnerabilityType.LACK_OF_RESOURCES,
                name="Missing Resource Limiting (Large Payload)",
                description="The API endpoint accepts unusually large request payloads.",
                severity=Severity.MEDIUM,
                request=request,
                response=response,
                evidence=(
                    f"Successfully sent a request with a {self.large_payload_size // 1024} KB "
                    "payload"
                ),
                remediation=(
                    "Implement proper request size limiting. Set maximum allowed request body "
                    "size. Consider implementing payload validation and sanitization."
                ),
                cvss=5.0,
                cwe="CWE-400",
                references=REFERENCES,
            )
        )

    async def _check_many_parameters(
        self, executor: ProbeExecutor, target: TargetConfig, endpoint: str, result: TestResult
    ) -> None:
        value = "A" * self.large_parameter_length
        payload = {f"param{i}": value for i in range(self.large_parameter_count)}
        request = target.request(
            endpoint,
            method="POST",
            headers={"Content-Type": "application/json"},
            body=json.dumps(payload, separators=(",", ":")).encode(),
        )
        response = await probe_once(executor, request)
        if response is None or not response.is_success:
            return
        result.add(
            Finding(
                type=VulnerabilityType.LACK_OF_RESOURCES,
                name="Missing Resource Limiting (Many Parameters)",
                description=(
                    "The API endpoint accepts requests with an unusually large number of "
                    "parameters."
                ),
                severity=Severity.MEDIUM,
                request=request,
                response=response,
                evidence=(
                    f"Successfully sent a request with {self.large_parameter_count} parameters"
                ),
                remediation=(
                    "Implement proper parameter limiting. Set maximum allowed number of "
                    "parameters. Consider implementing parameter validation and sanitization."
                ),
                cvss=5.0,
                cwe="CWE-400",
                references=REFERENCES,
            )
        )
