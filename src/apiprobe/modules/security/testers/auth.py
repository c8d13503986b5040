"""Broken User Authentication tester (API2:2019)."""

import asyncio
import json

from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .common import CHEAT_SHEETS, OWASP_API_2019, contains_any, probe_once

AUTH_REFERENCE = f"{OWASP_API_2019}/0xa2-broken-authentication/"
AUTH_CHEAT_SHEET = f"{CHEAT_SHEETS}/Authentication_Cheat_Sheet.html"
JWT_CHEAT_SHEET = f"{CHEAT_SHEETS}/JSON_Web_Token_for_Java_Cheat_Sheet.html"

LOGIN_PATTERNS = ("login", "auth", "authenticate", "signin", "sign-in", "token", "session")
PROTECTED_PATTERNS = (
    "api",
    "user",
    "account",
    "profile",
    "admin",
    "dashboard",
    "secure",
    "private",
)
LOGIN_TOKEN_MARKERS = ("token", "jwt", "access_token")

COMMON_USERNAMES = ("admin", "user", "test", "demo", "guest")
COMMON_PASSWORDS = (
    "password",
    "123456",
    "admin",
    "welcome",
    "password123",
    "12345678",
    "qwerty",
    "1234567890",
    "111111",
    "1234567",
)
WEAK_TOKENS = ("", "null", "undefined", "guest", "demo", "test", "user", "admin")
# Unsigned token with {"alg": "none"}.
FORGED_JWTS = (
    "eyJhbGciOiJub25lIiwidHlwIjoiSldUIn0."
    "eyJzdWIiOiIxMjM0NTY3ODkwIiwibmFtZSI6IkpvaG4gRG9lIiwiaWF0IjoxNTE2MjM5MDIyfQ.",
)


def is_login_endpoint(endpoint: str) -> bool:
    return contains_any(endpoint.lower(), LOGIN_PATTERNS) is not None


def requires_authentication(endpoint: str) -> bool:
    return contains_any(endpoint.lower(), PROTECTED_PATTERNS) is not None


def is_successful_login(response: ProbeResponse) -> bool:
    """A 2xx answer that hands back something token-like."""
    return response.is_success and contains_any(response.text, LOGIN_TOKEN_MARKERS) is not None


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}".strip()}


class BrokenAuthTester(SecurityTester):
    """Try default credentials on login endpoints and junk tokens on protected ones."""

    name = "Broken User Authentication"
    vuln_type = VulnerabilityType.BROKEN_AUTH
    description = (
        "Tests for API endpoints with broken authentication mechanisms, including weak "
        "passwords, improper token validation, and insecure credential storage."
    )

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for endpoint in target.all_endpoints():
            if is_cancelled(cancel_event):
                return
            if is_login_endpoint(endpoint):
                await self._check_weak_passwords(executor, target, endpoint, result, cancel_event)
            if requires_authentication(endpoint):
                await self._check_weak_tokens(executor, target, endpoint, result, cancel_event)
                await self._check_forged_jwts(executor, target, endpoint, result, cancel_event)

    async def _check_weak_passwords(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for username in COMMON_USERNAMES:
            for password in COMMON_PASSWORDS:
                if is_cancelled(cancel_event):
                    return
                request = target.request(
                    endpoint,
                    method="POST",
                    headers={"Content-Type": "application/json"},
                    body=json.dumps({"username": username, "password": password}).encode(),
                )
                response = await probe_once(executor, request)
                if response is None or not is_successful_login(response):
                    continue
                result.add(
                    _finding(
                        "Weak Password Accepted",
                        "The API endpoint accepts weak or common passwords.",
                        Severity.HIGH,
                        7.5,
                        "CWE-521",
                        f"Successfully logged in with username '{username}' and common "
                        f"password '{password}'",
                        "Implement strong password policies. Require complex passwords and check "
                        "against common password lists. Consider implementing multi-factor "
                        "authentication.",
                        request,
                        response,
                    )
                )
                # one accepted password is enough for this username
                break

    async def _check_weak_tokens(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for token in WEAK_TOKENS:
            if is_cancelled(cancel_event):
                return
            request = target.request(endpoint, headers=bearer(token))
            response = await probe_once(executor, request)
            if response is None or not response.is_success:
                continue
            result.add(
                _finding(
                    "Weak Token Accepted",
                    "The API endpoint accepts weak or predictable authentication tokens.",
                    Severity.CRITICAL,
                    9.0,
                    "CWE-330",
                    f"Successfully accessed endpoint with weak token: '{token}'",
                    "Implement proper token generation with sufficient entropy. Validate tokens "
                    "properly on the server side. Consider using industry standard token formats "
                    "like JWT with proper signing.",
                    request,
                    response,
                )
            )

    async def _check_forged_jwts(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for token in FORGED_JWTS:
            if is_cancelled(cancel_event):
                return
            request = target.request(endpoint, headers=bearer(token))
            response = await probe_once(executor, request)
            if response is None or not response.is_success:
                continue
            result.add(
                _finding(
                    "JWT Vulnerability",
                    "The API endpoint accepts manipulated JWT tokens.",
                    Severity.CRITICAL,
                    9.8,
                    "CWE-347",
                    "Successfully accessed endpoint with manipulated JWT token",
                    "Implement proper JWT validation. Use strong signing algorithms (RS256 "
                    "instead of HS256). Validate all parts of the token including signature, "
                    "expiration, and claims.",
                    request,
                    response,
                    reference=JWT_CHEAT_SHEET,
                )
            )


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
    reference: str = AUTH_CHEAT_SHEET,
) -> Finding:
    return Finding(
        type=VulnerabilityType.BROKEN_AUTH,
        name=name,
        description=description,
        severity=severity,
        evidence=evidence,
        remediation=remediation,
        cvss=cvss,
        cwe=cwe,
        references=(AUTH_REFERENCE, reference),
        request=request,
        response=response,
    )
