"""Security Misconfiguration tester (API7:2019)."""

import asyncio

from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .common import (
    BROWSER_USER_AGENT,
    CHEAT_SHEETS,
    OWASP_API_2019,
    REST_CHEAT_SHEET,
    join_url,
    probe_once,
)

MISCONFIG_REFERENCE = f"{OWASP_API_2019}/0xa7-security-misconfiguration/"
SECURE_HEADERS_PROJECT = "https://owasp.org/www-project-secure-headers/"
CSRF_CHEAT_SHEET = f"{CHEAT_SHEETS}/Cross-Site_Request_Forgery_Prevention_Cheat_Sheet.html"
TLS_CHEAT_SHEET = f"{CHEAT_SHEETS}/Transport_Layer_Protection_Cheat_Sheet.html"

REQUIRED_SECURITY_HEADERS = (
    "X-Frame-Options",
    "X-Content-Type-Options",
    "Content-Security-Policy",
    "Strict-Transport-Security",
    "X-XSS-Protection",
)

# Header -> value fragment that marks it as insecure.
INSECURE_HEADER_VALUES = {
    "Cache-Control": "no-store, no-cache",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS, HEAD, PATCH",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Credentials": "true",
}

INFO_DISCLOSURE_HEADERS = ("Server", "X-Powered-By", "X-AspNet-Version", "X-AspNetMvc-Version")

DANGEROUS_METHODS = ("TRACE", "OPTIONS", "PUT", "DELETE", "CONNECT", "PATCH")
METHOD_REJECTED_STATUSES = frozenset({403, 405, 501})

DEBUG_ENDPOINTS = (
    "/debug",
    "/debug/vars",
    "/debug/pprof",
    "/status",
    "/health",
    "/metrics",
    "/actuator",
    "/actuator/health",
    "/actuator/info",
    "/actuator/metrics",
    "/actuator/env",
    "/actuator/trace",
    "/api/debug",
    "/api/status",
    "/api/health",
    "/api/metrics",
    "/admin",
    "/admin/console",
    "/admin/status",
    "/admin/metrics",
    "/console",
    "/swagger",
    "/swagger-ui",
    "/swagger-ui.html",
    "/api-docs",
    "/api/docs",
    "/graphiql",
    "/graphql",
    "/graphql-explorer",
    "/.git",
    "/.env",
    "/.config",
    "/config",
    "/configuration",
    "/settings",
    "/system",
    "/logs",
    "/log",
    "/trace",
    "/stats",
    "/server-status",
    "/server-info",
    "/phpinfo.php",
    "/info.php",
)

CORS_PROBE_ORIGIN = "https://evil.com"


class SecurityMisconfigTester(SecurityTester):
    """Inspect headers, methods, debug routes, CORS and transport of the target host."""

    name = "Security Misconfiguration"
    vuln_type = VulnerabilityType.SECURITY_MISCONFIG
    description = (
        "Tests for API security misconfigurations, such as misconfigured HTTP headers, "
        "unnecessary HTTP methods, exposed debug endpoints and permissive CORS."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        debug_endpoints: tuple[str, ...] = DEBUG_ENDPOINTS,
        dangerous_methods: tuple[str, ...] = DANGEROUS_METHODS,
        check_plain_http: bool = True,
    ):
        super().__init__(executor_factory)
        self.debug_endpoints = debug_endpoints
        self.dangerous_methods = dangerous_methods
        self.check_plain_http = check_plain_http

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        base_url = target.base_url
        checks = [
            self._check_headers,
            self._check_dangerous_methods,
            self._check_debug_endpoints,
            self._check_cors,
        ]
        if self.check_plain_http:
            checks.append(self._check_plain_http)
        for check in checks:
            if is_cancelled(cancel_event):
                return
            await check(executor, target, base_url, result, cancel_event)

    def _request(self, target: TargetConfig, url: str, method: str = "GET", **headers: str):
        extra = {"User-Agent": BROWSER_USER_AGENT}
        extra.update(headers)
        return target.request(url, method=method, headers=extra)

    async def _check_headers(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        request = self._request(target, base_url)
        response = await probe_once(executor, request)
        if response is None:
            return

        missing = [h for h in REQUIRED_SECURITY_HEADERS if not response.has_header(h)]
        if missing:
            result.add(
                _finding(
                    "Missing Security Headers",
                    "The API is missing important security headers that help protect against "
                    "common web vulnerabilities.",
                    Severity.MEDIUM,
                    5.0,
                    f"Missing headers: {', '.join(missing)}",
                    "Configure the server to include all necessary security headers. Consider "
                    "using a security header middleware that adds these headers automatically.",
                    request,
                    response,
                    extra_references=(SECURE_HEADERS_PROJECT,),
                )
            )

        insecure = insecure_header_values(response)
        if insecure:
            result.add(
                _finding(
                    "Insecure Header Values",
                    "The API is using insecure values for security headers.",
                    Severity.MEDIUM,
                    5.0,
                    f"Insecure headers: {', '.join(insecure)}",
                    "Configure the server to use secure values for security headers. Avoid "
                    "wildcard values for CORS headers and ensure proper restrictions are in place.",
                    request,
                    response,
                    extra_references=(SECURE_HEADERS_PROJECT,),
                )
            )

        disclosed = [
            f"{h}: {response.header(h)}" for h in INFO_DISCLOSURE_HEADERS if response.has_header(h)
        ]
        if disclosed:
            result.add(
                _finding(
                    "Information Disclosure Headers",
                    "The API is disclosing potentially sensitive information through HTTP "
                    "headers.",
                    Severity.LOW,
                    3.0,
                    f"Information disclosure headers: {', '.join(disclosed)}",
                    "Remove or obfuscate headers that reveal the technology stack.",
                    request,
                    response,
                    cwe="CWE-200",
                )
            )

    async def _check_dangerous_methods(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for method in self.dangerous_methods:
            if is_cancelled(cancel_event):
                return
            request = self._request(target, base_url, method=method)
            response = await probe_once(executor, request)
            if response is None or response.status_code in METHOD_REJECTED_STATUSES:
                continue
            result.add(
                _finding(
                    "Dangerous HTTP Method Enabled",
                    f"The API allows the potentially dangerous HTTP method: {method}",
                    Severity.MEDIUM,
                    5.0,
                    f"HTTP method {method} returned status code {response.status_code}",
                    "Disable unnecessary HTTP methods. Only allow the methods the API requires.",
                    request,
                    response,
                )
            )

    async def _check_debug_endpoints(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for path in self.debug_endpoints:
            if is_cancelled(cancel_event):
                return
            request = self._request(target, join_url(base_url, path))
            response = await probe_once(executor, request)
            if response is None or not response.is_success:
                continue
            result.add(
                _finding(
                    "Debug Endpoint Exposed",
                    f"The API exposes a debug endpoint: {path}",
                    Severity.HIGH,
                    7.0,
                    f"Debug endpoint {path} is accessible and returned status code "
                    f"{response.status_code}",
                    "Disable or properly secure debug endpoints in production environments.",
                    request,
                    response,
                )
            )

    async def _check_cors(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        request = self._request(target, base_url, Origin=CORS_PROBE_ORIGIN)
        response = await probe_once(executor, request)
        if response is None:
            return
        origin = response.header("Access-Control-Allow-Origin")
        if origin not in ("*", CORS_PROBE_ORIGIN):
            return

        result.add(
            _finding(
                "Permissive CORS Configuration",
                "The API has a permissive CORS configuration that allows requests from any "
                "origin.",
                Severity.MEDIUM,
                5.0,
                f"Access-Control-Allow-Origin: {origin}",
                "Configure CORS to only allow requests from trusted origins. Avoid wildcard (*) "
                "values for Access-Control-Allow-Origin.",
                request,
                response,
                extra_references=(CSRF_CHEAT_SHEET,),
            )
        )
        if response.header("Access-Control-Allow-Credentials") == "true":
            result.add(
                _finding(
                    "Permissive CORS Credentials Configuration",
                    "The API allows credentials to be sent with cross-origin requests from any "
                    "origin.",
                    Severity.HIGH,
                    7.0,
                    f"Access-Control-Allow-Credentials: true, Access-Control-Allow-Origin: "
                    f"{origin}",
                    "Only allow credentials from trusted origins. Never combine a wildcard "
                    "origin with Access-Control-Allow-Credentials: true.",
                    request,
                    response,
                    extra_references=(CSRF_CHEAT_SHEET,),
                )
            )

    async def _check_plain_http(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if not base_url.startswith("https://"):
            return
        http_url = "http://" + base_url.removeprefix("https://")
        request = self._request(target, http_url)
        response = await probe_once(executor, request)
        if response is None or not response.is_success:
            return
        result.add(
            _finding(
                "Insecure HTTP Access",
                "The API is accessible over unencrypted HTTP.",
                Severity.HIGH,
                7.0,
                f"HTTP endpoint {http_url} is accessible and returned status code "
                f"{response.status_code}",
                "Redirect all HTTP traffic to HTTPS and enable HTTP Strict Transport Security.",
                request,
                response,
                cwe="CWE-319",
                extra_references=(TLS_CHEAT_SHEET,),
            )
        )


def insecure_header_values(response: ProbeResponse) -> list[str]:
    """Return ``"Header: value"`` for every header carrying a known insecure value."""
    found = []
    for header, marker in INSECURE_HEADER_VALUES.items():
        value = response.header(header)
        if value is not None and marker in value:
            found.append(f"{header}: {value}")
    return found


def _finding(
    name: str,
    description: str,
    severity: Severity,
    cvss: float,
    evidence: str,
    remediation: str,
    request: ProbeRequest,
    response: ProbeResponse,
    cwe: str = "CWE-16",
    extra_references: tuple[str, ...] = (),
) -> Finding:
    return Finding(
        type=VulnerabilityType.SECURITY_MISCONFIG,
        name=name,
        description=description,
        severity=severity,
        evidence=evidence,
        remediation=remediation,
        cvss=cvss,
        cwe=cwe,
        references=(MISCONFIG_REFERENCE, REST_CHEAT_SHEET, *extra_references),
        request=request,
        response=response,
    )
