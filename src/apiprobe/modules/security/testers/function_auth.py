"""Broken Function Level Authorization tester (API5:2019)."""

import asyncio

from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .bola import replace_object_id
from .common import CHEAT_SHEETS, OWASP_API_2019, contains_any, probe_once

REFERENCES = (
    f"{OWASP_API_2019}/0xa5-broken-function-level-authorization/",
    f"{CHEAT_SHEETS}/Authorization_Cheat_Sheet.html",
)

ADMIN_PATTERNS = (
    "admin",
    "management",
    "console",
    "dashboard",
    "config",
    "settings",
    "users",
    "roles",
    "permissions",
    "accounts",
    "system",
    "internal",
)
SENSITIVE_METHODS = ("DELETE", "PUT", "PATCH", "POST")

# Roles impersonated through X-Role; only those with a permission set are tried.
USER_ROLES = ("user", "customer", "guest", "anonymous", "public")
ROLE_PERMISSIONS = {
    "admin": frozenset({"read", "write", "delete", "manage"}),
    "user": frozenset({"read", "write_own"}),
    "guest": frozenset({"read"}),
}
METHOD_PERMISSIONS = {
    "GET": frozenset({"read"}),
    "POST": frozenset({"write", "write_own"}),
    "PUT": frozenset({"write", "write_own"}),
    "PATCH": frozenset({"write", "write_own"}),
    "DELETE": frozenset({"delete"}),
}

OWNER_ID = "original_user_id"
FOREIGN_ID = "different_user_id"
AUTHORIZATION_REMEDIATION = (
    "Implement proper function level authorization checks. Verify that the user has the "
    "necessary role or permissions to perform the requested operation."
)


def is_admin_endpoint(endpoint: str) -> bool:
    return contains_any(endpoint.lower(), ADMIN_PATTERNS) is not None


def forbidden_methods(role: str) -> list[str]:
    """Methods whose required permissions the role does not hold."""
    granted = ROLE_PERMISSIONS.get(role)
    if granted is None:
        return []
    return [method for method, needed in METHOD_PERMISSIONS.items() if not needed & granted]


class BrokenFunctionLevelAuthTester(SecurityTester):
    """Impersonate low-privilege roles and call privileged functions."""

    name = "Broken Function Level Authorization"
    vuln_type = VulnerabilityType.BROKEN_FUNCTION_LEVEL_AUTH
    description = (
        "Tests for API endpoints that don't properly verify that the requesting user has the "
        "necessary permissions to perform the requested function."
    )

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for endpoint in target.all_endpoints():
            checks = [
                self._check_sensitive_methods,
                self._check_horizontal_escalation,
                self._check_vertical_escalation,
            ]
            if is_admin_endpoint(endpoint):
                checks.insert(0, self._check_admin_endpoint)
            for check in checks:
                if is_cancelled(cancel_event):
                    return
                await check(executor, target, endpoint, result, cancel_event)

    async def _check_admin_endpoint(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        request = target.request(endpoint, headers={"X-Role": "user"})
        response = await probe_once(executor, request)
        if response is None or not response.is_success:
            return
        result.add(
            _finding(
                "Admin Endpoint Accessible",
                "An administrative endpoint is accessible without admin privileges.",
                Severity.CRITICAL,
                9.0,
                "CWE-285",
                f"Successfully accessed admin endpoint {endpoint} with user role",
                "Implement proper function level authorization checks. Verify that the user has "
                "the necessary role or permissions to access administrative endpoints.",
                request,
                response,
            )
        )

    async def _check_sensitive_methods(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for method in SENSITIVE_METHODS:
            if is_cancelled(cancel_event):
                return
            request = target.request(endpoint, method=method, headers={"X-Role": "user"})
            response = await probe_once(executor, request)
            if response is None or not response.is_success:
                continue
            result.add(
                _finding(
                    "Sensitive Method Accessible",
                    "A sensitive HTTP method is accessible without proper authorization.",
                    Severity.HIGH,
                    8.0,
                    "CWE-285",
                    f"Successfully accessed endpoint {endpoint} with method {method} using "
                    "user role",
                    "Implement proper function level authorization checks. Verify that the user "
                    "has the necessary permissions to perform sensitive operations.",
                    request,
                    response,
                )
            )

    async def _check_horizontal_escalation(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        modified = replace_object_id(endpoint, FOREIGN_ID)
        if modified == endpoint:
            return
        request = target.request(modified, headers={"X-User-ID": OWNER_ID, "X-Role": "user"})
        response = await probe_once(executor, request)
        if response is None or not response.is_success:
            return
        result.add(
            _finding(
                "Horizontal Privilege Escalation",
                "A user can access resources belonging to another user of the same privilege "
                "level.",
                Severity.HIGH,
                8.0,
                "CWE-639",
                f"Successfully accessed endpoint {modified} with user ID {FOREIGN_ID} while "
                f"authenticated as {OWNER_ID}",
                "Implement proper function level authorization checks. Verify that the user can "
                "only access their own resources.",
                request,
                response,
            )
        )

    async def _check_vertical_escalation(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for role in USER_ROLES:
            for method in forbidden_methods(role):
                if is_cancelled(cancel_event):
                    return
                request = target.request(endpoint, method=method, headers={"X-Role": role})
                response = await probe_once(executor, request)
                if response is None or not response.is_success:
                    continue
                result.add(
                    _finding(
                        "Vertical Privilege Escalation",
                        "A user can perform operations requiring higher privileges than they "
                        "possess.",
                        Severity.CRITICAL,
                        9.0,
                        "CWE-269",
                        f"Successfully performed {method} operation on endpoint {endpoint} with "
                        f"role {role}, which should not have the required permissions",
                        AUTHORIZATION_REMEDIATION,
                        request,
                        response,
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
) -> Finding:
    return Finding(
        type=VulnerabilityType.BROKEN_FUNCTION_LEVEL_AUTH,
        name=name,
        description=description,
        severity=severity,
        evidence=evidence,
        remediation=remediation,
        cvss=cvss,
        cwe=cwe,
        references=REFERENCES,
        request=request,
        response=response,
    )
