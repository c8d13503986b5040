"""End-to-end tests for the rate-limit testers against scripted targets."""

import asyncio
import json

from apiprobe.modules.security import Severity, VulnerabilityType
from apiprobe.modules.security.bypass import BypassTechnique, get_technique
from apiprobe.modules.security.testers import LackOfResourcesTester, RateLimitBypassTester


def _user_agent_only(index, request):
    return request.with_headers({"User-Agent": f"agent-{index}"})


USER_AGENT_ONLY = BypassTechnique(
    key="user-agent", name="User-Agent Rotation", remediation="", customizer=_user_agent_only
)


def every_fifth_limited(response_factory, honour_forwarding=False):
    """429 on every fifth request; optionally trust X-Forwarded-For as a fresh client."""
    calls = {"n": 0}

    def handler(request):
        if honour_forwarding and "X-Forwarded-For" in request.headers:
            return response_factory(200, url=request.url)
        calls["n"] += 1
        status = 429 if calls["n"] % 5 == 0 else 200
        return response_factory(status, url=request.url)

    return handler


class TestRateLimitBypassTester:
    """Calibrate, detect and then try the bypass techniques."""

    async def test_no_limiter_skips_bypass_evaluation(self, scripted_executor, target):
        executor = scripted_executor()
        tester = RateLimitBypassTester(executor_factory=executor.factory, delay=0.0)

        result = await tester.test(target)

        assert result.vulnerabilities == []
        assert result.error is None
        # calibration burst only
        assert len(executor.requests) == 30

    async def test_partial_limit_with_user_agent_rotation_is_not_a_bypass(
        self, scripted_executor, response_factory, target
    ):
        executor = scripted_executor(every_fifth_limited(response_factory))
        tester = RateLimitBypassTester(
            executor_factory=executor.factory, delay=0.0, techniques=[USER_AGENT_ONLY]
        )

        result = await tester.test(target)

        assert result.vulnerabilities == []
        assert len(executor.requests) == 60

    async def test_ip_rotation_bypass_is_reported(
        self, scripted_executor, response_factory, target
    ):
        executor = scripted_executor(every_fifth_limited(response_factory, honour_forwarding=True))
        tester = RateLimitBypassTester(
            executor_factory=executor.factory,
            delay=0.0,
            techniques=[get_technique("ip-rotation"), USER_AGENT_ONLY],
        )

        result = await tester.test(target)

        assert len(result.vulnerabilities) == 1
        finding = result.vulnerabilities[0]
        assert finding.name == "Rate Limiting Bypass (IP Rotation)"
        assert finding.type == VulnerabilityType.LACK_OF_RESOURCES
        assert finding.severity == Severity.HIGH
        assert finding.cwe == "CWE-770"
        assert finding.cvss == 7.5
        assert "30/30" in finding.evidence

    async def test_limiter_detected_by_header(self, scripted_executor, response_factory, target):
        executor = scripted_executor(
            lambda request: response_factory(
                200, headers={"X-RateLimit-Remaining": "99"}, url=request.url
            )
        )
        tester = RateLimitBypassTester(
            executor_factory=executor.factory, delay=0.0, techniques=[USER_AGENT_ONLY]
        )

        result = await tester.test(target)

        # every request succeeds under rotation, so the limiter is considered bypassed
        assert [f.name for f in result.vulnerabilities] == [
            "Rate Limiting Bypass (User-Agent Rotation)"
        ]

    async def test_requests_carry_target_headers(self, scripted_executor, target):
        executor = scripted_executor()
        tester = RateLimitBypassTester(executor_factory=executor.factory, delay=0.0)

        await tester.test(target)

        assert all(r.headers["Authorization"] == "Bearer test-token" for r in executor.requests)
        assert all(
            r.headers["X-Test-ID"].startswith("rate-limit-bypass-test-") for r in executor.requests
        )

    async def test_calibration_lost_to_transport_errors(
        self, scripted_executor, flaky_handler, target
    ):
        executor = scripted_executor(flaky_handler(1))
        tester = RateLimitBypassTester(executor_factory=executor.factory, delay=0.0)

        result = await tester.test(target)

        assert result.vulnerabilities == []
        assert result.error is None


class TestLackOfResourcesTester:
    """Bursts plus payload and parameter size checks."""

    async def test_unlimited_endpoint(self, scripted_executor, target):
        executor = scripted_executor()
        tester = LackOfResourcesTester(executor_factory=executor.factory, time_between_bursts=0)

        result = await tester.test(target)

        names = [f.name for f in result.vulnerabilities]
        assert names == [
            "Missing Rate Limiting",
            "Missing Resource Limiting (Large Payload)",
            "Missing Resource Limiting (Many Parameters)",
        ]
        assert result.vulnerabilities[0].severity == Severity.HIGH
        assert result.vulnerabilities[1].cwe == "CWE-400"
        assert len(executor.requests) == 20 * 3 + 2

    async def test_limited_endpoint_with_size_checks_rejected(
        self, scripted_executor, response_factory, target
    ):
        def handler(request):
            if request.method == "POST":
                return response_factory(413, url=request.url)
            return response_factory(429, url=request.url)

        executor = scripted_executor(handler)
        tester = LackOfResourcesTester(executor_factory=executor.factory, time_between_bursts=0)

        result = await tester.test(target)

        assert result.vulnerabilities == []
        # a 429 in the first burst ends the rate check
        assert len(executor.requests) == 20 + 2

    async def test_payload_shapes(self, scripted_executor, target):
        executor = scripted_executor()
        tester = LackOfResourcesTester(
            executor_factory=executor.factory, burst_count=1, time_between_bursts=0
        )

        await tester.test(target)

        posts = [r for r in executor.requests if r.method == "POST"]
        assert len(posts[0].body) == 100 * 1024
        params = json.loads(posts[1].body)
        assert len(params) == 100
        assert all(len(value) == 1000 for value in params.values())

    async def test_cancel_during_first_burst_skips_size_checks(
        self, scripted_executor, response_factory, target
    ):
        cancel = asyncio.Event()

        def handler(request):
            cancel.set()
            return response_factory(200, url=request.url)

        executor = scripted_executor(handler)
        tester = LackOfResourcesTester(executor_factory=executor.factory, time_between_bursts=0)

        result = await tester.test(target, cancel)

        assert result.vulnerabilities == []
        assert [r for r in executor.requests if r.method == "POST"] == []

    async def test_cancel_after_large_payload_skips_parameter_check(
        self, scripted_executor, response_factory, target
    ):
        cancel = asyncio.Event()

        def handler(request):
            if request.method == "POST":
                cancel.set()
            return response_factory(200, url=request.url)

        executor = scripted_executor(handler)
        tester = LackOfResourcesTester(
            executor_factory=executor.factory, burst_count=1, time_between_bursts=0
        )

        await tester.test(target, cancel)

        assert len([r for r in executor.requests if r.method == "POST"]) == 1
