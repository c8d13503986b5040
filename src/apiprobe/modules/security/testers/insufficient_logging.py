"""Insufficient Logging & Monitoring tester (API10:2019).

Each check provokes a security event several times and inspects the answers.
Throttling, a correlation header or a body that mentions auditing count as
signs that the event was noticed.
"""

import asyncio
import json

from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from ..oracle import TOO_MANY_REQUESTS, rate_limit_header
from .common import (
    BROWSER_USER_AGENT,
    CHEAT_SHEETS,
    OWASP_API_2019,
    REST_CHEAT_SHEET,
    candidate_urls,
    contains_any,
    first_success,
    join_url,
    probe_once,
)

LOGGING_REFERENCE = f"{OWASP_API_2019}/0xaa-insufficient-logging-monitoring/"
LOGGING_CHEAT_SHEET = f"{CHEAT_SHEETS}/Logging_Cheat_Sheet.html"
AUTH_CHEAT_SHEET = f"{CHEAT_SHEETS}/Authentication_Cheat_Sheet.html"
ACCESS_CONTROL_CHEAT_SHEET = f"{CHEAT_SHEETS}/Access_Control_Cheat_Sheet.html"

LOGGING_PATHS = (
    "logs", "audit", "events", "activity", "history", "logging",
    "log-viewer", "audit-log", "event-log", "security-log",
)
MONITORING_PATHS = (
    "monitor", "monitoring", "status", "health", "metrics", "stats",
    "dashboard", "analytics", "telemetry", "performance",
)
PATH_LAYOUTS = ("{}", "api/{}", "{}.php", "{}.json")

LOGIN_PATHS = (
    "/login", "/signin", "/auth", "/api/login", "/api/auth", "/api/v1/login",
    "/user/login", "/account/login", "/auth/login", "/api/auth/login",
)
PROTECTED_PATHS = (
    "/admin", "/dashboard", "/settings", "/profile", "/account",
    "/api/admin", "/api/users", "/api/settings", "/api/config",
)
DATA_PATHS = (
    "/api/data", "/api/records", "/api/users", "/api/items", "/api/products",
    "/api/v1/data", "/api/v1/records", "/api/v1/users", "/api/v1/items",
)
THROTTLED_PATHS = (
    "/api", "/api/v1", "/api/data", "/api/search", "/api/query",
    "/api/v1/data", "/api/v1/search", "/api/v1/query",
)

LOGGING_HEADERS = (
    "X-Log-ID",
    "X-Request-ID",
    "X-Trace-ID",
    "X-Transaction-ID",
    "X-Correlation-ID",
    "X-Debug-ID",
    "X-Activity-ID",
)
LOGGING_BODY_MARKERS = (
    "log", "audit", "track", "monitor", "record", "event",
    "activity", "security", "warning", "alert", "notification",
)

INVALID_LOGIN = {"username": "invalid_user", "password": "invalid_password"}
MODIFIED_RECORD = {"id": 1, "name": "test", "value": "modified"}
LOGIN_REJECTED = frozenset({400, 401, 403})
ACCESS_DENIED = frozenset({401, 403})


def has_logging_indication(response: ProbeResponse) -> bool:
    """Whether *response* carries a correlation header or mentions auditing."""
    if any(response.has_header(name) for name in LOGGING_HEADERS):
        return True
    return contains_any(response.text.lower(), LOGGING_BODY_MARKERS) is not None


def is_throttled(response: ProbeResponse) -> bool:
    return response.status_code == TOO_MANY_REQUESTS or rate_limit_header(response) is not None


class InsufficientLoggingTester(SecurityTester):
    """Provoke security events and check whether the API reacts to them."""

    name = "Insufficient Logging & Monitoring"
    vuln_type = VulnerabilityType.INSUFFICIENT_LOGGING
    description = (
        "Tests for API endpoints that lack proper logging and monitoring of security events, "
        "which can lead to undetected security breaches."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        repeat_delay: float = 0.1,
        throttle_delay: float = 0.05,
        throttle_attempts: int = 20,
        check_failed_logins: bool = True,
        check_access_violations: bool = True,
        check_data_manipulation: bool = True,
        check_rate_limit_violations: bool = True,
    ):
        super().__init__(executor_factory)
        self.repeat_delay = repeat_delay
        self.throttle_delay = throttle_delay
        self.throttle_attempts = throttle_attempts
        self.check_failed_logins = check_failed_logins
        self.check_access_violations = check_access_violations
        self.check_data_manipulation = check_data_manipulation
        self.check_rate_limit_violations = check_rate_limit_violations

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        checks = [self._check_logging_paths, self._check_monitoring_paths]
        if self.check_failed_logins:
            checks.append(self._check_failed_logins)
        if self.check_access_violations:
            checks.append(self._check_access_violations)
        if self.check_data_manipulation:
            checks.append(self._check_data_manipulation)
        if self.check_rate_limit_violations:
            checks.append(self._check_rate_limit_violations)
        for check in checks:
            if is_cancelled(cancel_event):
                return
            await check(executor, target, target.base_url, result, cancel_event)

    def _request(
        self,
        target: TargetConfig,
        url: str,
        method: str = "GET",
        payload: dict | None = None,
    ) -> ProbeRequest:
        headers = {"User-Agent": BROWSER_USER_AGENT}
        body = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            body = json.dumps(payload).encode()
        return target.request(url, method=method, headers=headers, body=body)

    async def _repeat(
        self,
        executor: ProbeExecutor,
        request: ProbeRequest,
        count: int,
        cancel_event: asyncio.Event | None,
    ) -> list[ProbeResponse] | None:
        """Resend *request* up to *count* times; ``None`` if cancelled midway."""
        responses = []
        for _ in range(count):
            if is_cancelled(cancel_event):
                return None
            response = await probe_once(executor, request)
            if response is None:
                break
            responses.append(response)
            if self.repeat_delay:
                await asyncio.sleep(self.repeat_delay)
        return responses

    async def _check_logging_paths(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for path in LOGGING_PATHS:
            urls = candidate_urls(base_url, PATH_LAYOUTS, path)
            requests = [self._request(target, url) for url in urls]
            hit = await first_success(executor, requests, cancel_event)
            if hit is None:
                continue
            result.add(
                _finding(
                    "Logging Endpoint Accessible Without Authentication",
                    "A logging endpoint is accessible without proper authentication.",
                    Severity.HIGH,
                    7.5,
                    "CWE-532",
                    f"Successfully accessed logging endpoint: {path}",
                    "Restrict access to logging endpoints. Implement proper authentication and "
                    "authorization. Consider using a separate logging system not directly "
                    "accessible from the public internet.",
                    *hit,
                )
            )

    async def _check_monitoring_paths(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for path in MONITORING_PATHS:
            urls = candidate_urls(base_url, PATH_LAYOUTS, path)
            requests = [self._request(target, url) for url in urls]
            hit = await first_success(executor, requests, cancel_event)
            if hit is None:
                continue
            result.add(
                _finding(
                    "Monitoring Endpoint Accessible Without Authentication",
                    "A monitoring endpoint is accessible without proper authentication.",
                    Severity.HIGH,
                    7.5,
                    "CWE-532",
                    f"Successfully accessed monitoring endpoint: {path}",
                    "Restrict access to monitoring endpoints. Implement proper authentication and "
                    "authorization. Consider using a separate monitoring system not directly "
                    "accessible from the public internet.",
                    *hit,
                )
            )

    async def _unnoticed_repeats(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        paths: tuple[str, ...],
        method: str,
        payload: dict | None,
        trigger: frozenset[int] | None,
        repeats: int,
        cancel_event: asyncio.Event | None,
    ) -> tuple[ProbeRequest, ProbeResponse] | None:
        """Return the first exchange whose repetition drew no visible reaction.

        A path qualifies when its first answer is in *trigger* (any 2xx when
        *trigger* is ``None``) and neither that answer nor any of the *repeats*
        that follow is throttled or shows a logging indication.
        """
        for path in paths:
            if is_cancelled(cancel_event):
                return None
            request = self._request(target, join_url(base_url, path), method, payload)
            response = await probe_once(executor, request)
            if response is None:
                continue
            if trigger is None and not response.is_success:
                continue
            if trigger is not None and response.status_code not in trigger:
                continue
            followups = await self._repeat(executor, request, repeats, cancel_event)
            if followups is None:
                return None
            seen = [response, *followups]
            if any(is_throttled(r) or has_logging_indication(r) for r in seen):
                continue
            return request, response
        return None

    async def _check_failed_logins(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        hit = await self._unnoticed_repeats(
            executor,
            target,
            base_url,
            LOGIN_PATHS,
            "POST",
            INVALID_LOGIN,
            LOGIN_REJECTED,
            5,
            cancel_event,
        )
        if hit is None:
            return
        result.add(
            _finding(
                "Insufficient Logging of Failed Login Attempts",
                "The API does not appear to properly log failed login attempts.",
                Severity.MEDIUM,
                6.0,
                "CWE-778",
                "Multiple failed login attempts did not trigger account lockout or rate "
                "limiting, suggesting insufficient logging and monitoring.",
                "Implement proper logging of all authentication events, especially failed login "
                "attempts. Set up monitoring and alerting for multiple failed login attempts. "
                "Implement account lockout or rate limiting after a certain number of failed "
                "attempts.",
                *hit,
                reference=AUTH_CHEAT_SHEET,
            )
        )

    async def _check_access_violations(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        hit = await self._unnoticed_repeats(
            executor, target, base_url, PROTECTED_PATHS, "GET", None, ACCESS_DENIED, 5, cancel_event
        )
        if hit is None:
            return
        result.add(
            _finding(
                "Insufficient Logging of Access Violations",
                "The API does not appear to properly log access violations.",
                Severity.MEDIUM,
                6.0,
                "CWE-778",
                "Multiple unauthorized access attempts did not trigger rate limiting or IP "
                "blocking, suggesting insufficient logging and monitoring.",
                "Implement proper logging of all access control decisions, especially denied "
                "access attempts. Set up monitoring and alerting for multiple unauthorized "
                "access attempts. Consider implementing temporary IP blocking after a certain "
                "number of violations.",
                *hit,
                reference=ACCESS_CONTROL_CHEAT_SHEET,
            )
        )

    async def _check_data_manipulation(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        hit = await self._unnoticed_repeats(
            executor, target, base_url, DATA_PATHS, "PUT", MODIFIED_RECORD, None, 3, cancel_event
        )
        if hit is None:
            return
        result.add(
            _finding(
                "Insufficient Logging of Data Manipulation",
                "The API does not appear to properly log data manipulation operations.",
                Severity.MEDIUM,
                5.5,
                "CWE-778",
                "Multiple data modification attempts did not show any indication of being logged "
                "or monitored.",
                "Implement proper logging of all data modification operations. Log the user, "
                "timestamp, operation type, and affected data. Set up monitoring and alerting "
                "for suspicious data manipulation patterns.",
                *hit,
                reference=LOGGING_CHEAT_SHEET,
            )
        )

    async def _check_rate_limit_violations(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for path in THROTTLED_PATHS:
            if is_cancelled(cancel_event):
                return
            request = self._request(target, join_url(base_url, path))
            response = await probe_once(executor, request)
            if response is None or response.status_code >= 500:
                continue
            throttled = None
            for _ in range(self.throttle_attempts):
                if is_cancelled(cancel_event):
                    return
                attempt = await probe_once(executor, request)
                if attempt is None:
                    break
                if is_throttled(attempt):
                    throttled = attempt
                    break
                if self.throttle_delay:
                    await asyncio.sleep(self.throttle_delay)
            if throttled is None or has_logging_indication(throttled):
                continue
            result.add(
                _finding(
                    "Insufficient Logging of Rate Limit Violations",
                    "The API implements rate limiting but does not appear to properly log rate "
                    "limit violations.",
                    Severity.LOW,
                    4.0,
                    "CWE-778",
                    "Rate limiting was triggered but there's no indication of logging or "
                    "monitoring of these violations.",
                    "Implement proper logging of all rate limit violations. Log the client IP, "
                    "timestamp, endpoint, and request count. Set up monitoring and alerting for "
                    "repeated rate limit violations from the same client.",
                    request,
                    throttled,
                    reference=REST_CHEAT_SHEET,
                )
            )
            return


def _finding(
    name: str,
    description: str,
    severity: Severity,
    cvss: float,
    cwe: str,
    evidence: str,
    remediation: str,
    request: ProbeRequest,
    response: ProbeResponse,
    reference: str = LOGGING_CHEAT_SHEET,
) -> Finding:
    return Finding(
        type=VulnerabilityType.INSUFFICIENT_LOGGING,
        name=name,
        description=description,
        severity=severity,
        evidence=evidence,
        remediation=remediation,
        cvss=cvss,
        cwe=cwe,
        references=(LOGGING_REFERENCE, reference),
        request=request,
        response=response,
    )
