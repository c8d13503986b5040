"""Mass Assignment tester (API6:2019)."""

import asyncio
import json
import re

from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .common import CHEAT_SHEETS, OWASP_API_2019, contains_any, probe_once

REFERENCES = (
    f"{OWASP_API_2019}/0xa6-mass-assignment/",
    f"{CHEAT_SHEETS}/Mass_Assignment_Cheat_Sheet.html",
)

SENSITIVE_PROPERTIES = (
    "role", "isAdmin", "admin", "is_admin", "isadmin",
    "permissions", "permission", "access_level", "accessLevel",
    "group", "groups", "privilege", "privileges",
    "is_verified", "isVerified", "verified",
    "is_active", "isActive", "active",
    "is_deleted", "isDeleted", "deleted",
    "created_at", "createdAt", "created",
    "updated_at", "updatedAt", "updated",
    "password", "password_hash", "passwordHash",
    "api_key", "apiKey", "api_token", "apiToken",
    "secret", "secret_key", "secretKey",
    "credit_card", "creditCard", "credit_card_number", "creditCardNumber",
    "ssn", "social_security", "socialSecurity",
    "balance", "account_balance", "accountBalance",
    "points", "reward_points", "rewardPoints",
)

_EPOCH = "2020-01-01T00:00:00Z"

PAYLOADS: dict[str, dict] = {
    "Role Elevation": {
        "role": "admin",
        "isAdmin": True,
        "is_admin": True,
        "admin": True,
        "permission": "admin",
        "privileges": ["admin", "superuser"],
    },
    "Status Manipulation": {
        "is_verified": True,
        "isVerified": True,
        "verified": True,
        "is_active": True,
        "isActive": True,
        "active": True,
        "is_deleted": False,
        "isDeleted": False,
        "deleted": False,
    },
    "Timestamp Manipulation": {
        key: _EPOCH
        for key in ("created_at", "createdAt", "created", "updated_at", "updatedAt", "updated")
    },
    "Financial Manipulation": {
        "balance": 999999.99,
        "account_balance": 999999.99,
        "accountBalance": 999999.99,
        "points": 999999,
        "reward_points": 999999,
        "rewardPoints": 999999,
    },
}
WRITE_METHODS = ("POST", "PUT", "PATCH")

NESTED_PAYLOAD = {
    "user": {
        "name": "Test User",
        "email": "test@example.com",
        "role": "admin",
        "isAdmin": True,
        "is_admin": True,
    },
    "profile": {
        "bio": "Test bio",
        "permissions": ["admin", "superuser"],
        "is_verified": True,
    },
    "settings": {"theme": "dark", "language": "en", "accessLevel": "admin"},
}
ARRAY_PAYLOAD = {
    "users": [
        {
            "name": "User 1",
            "email": "user1@example.com",
            "role": "user",
            "isAdmin": False,
            "is_admin": False,
        },
        {
            "name": "Admin User",
            "email": "admin@example.com",
            "role": "admin",
            "isAdmin": True,
            "is_admin": True,
        },
    ]
}

WRITABLE_PATTERNS = (
    "create", "update", "edit", "save", "add", "new", "user", "profile", "account",
    "settings", "config", "register", "signup", "sign-up", "login", "signin", "sign-in",
    "post", "put", "patch",
)
API_PATH_MARKERS = ("/api/", "/v1/", "/v2/", "/v3/", "/rest/", "/graphql")

_ACCEPTED_RE = re.compile(r"\b(success|created|updated|saved|ok|done|200|201|202|204)\b")


def is_writable_endpoint(endpoint: str) -> bool:
    lowered = endpoint.lower()
    return (
        contains_any(lowered, WRITABLE_PATTERNS) is not None
        or contains_any(lowered, API_PATH_MARKERS) is not None
    )


def accepted_properties(response: ProbeResponse, body: str) -> bool:
    """Whether a 2xx *response* suggests the sensitive fields in *body* were bound.

    Either a sensitive property sent in *body* is echoed back, or the response
    announces a successful write.
    """
    if not response.is_success:
        return False
    text = response.text
    for prop in SENSITIVE_PROPERTIES:
        quoted = f'"{prop}"'
        if quoted in body and quoted in text:
            return True
    return _ACCEPTED_RE.search(text.lower()) is not None


class MassAssignmentTester(SecurityTester):
    """Send privileged fields to writable endpoints as a regular user."""

    name = "Mass Assignment"
    vuln_type = VulnerabilityType.MASS_ASSIGNMENT
    description = (
        "Tests for API endpoints that automatically bind client-provided data to internal "
        "object properties without proper filtering, potentially allowing attackers to modify "
        "object properties they shouldn't have access to."
    )

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for endpoint in target.all_endpoints():
            if not is_writable_endpoint(endpoint):
                continue
            for payload_name, payload in PAYLOADS.items():
                for method in WRITE_METHODS:
                    if is_cancelled(cancel_event):
                        return
                    suffix = "" if method == "POST" else f" using {method} method"
                    await self._submit(
                        executor,
                        target,
                        endpoint,
                        method,
                        payload,
                        result,
                        "Mass Assignment Vulnerability",
                        f"The API endpoint allows mass assignment of sensitive properties "
                        f"({payload_name}).",
                        f"Successfully assigned sensitive properties via {payload_name} "
                        f"payload{suffix}",
                        "Implement proper input validation and filtering. Use a whitelist "
                        "approach to explicitly define which properties can be mass-assigned. "
                        "Consider using DTOs (Data Transfer Objects) to separate API models from "
                        "internal models.",
                    )

            if is_cancelled(cancel_event):
                return
            await self._submit(
                executor,
                target,
                endpoint,
                "POST",
                NESTED_PAYLOAD,
                result,
                "Nested Mass Assignment Vulnerability",
                "The API endpoint allows mass assignment of sensitive properties in nested "
                "objects.",
                "Successfully assigned sensitive properties in nested objects",
                "Implement proper input validation and filtering for nested objects. Use a "
                "whitelist approach to explicitly define which properties can be mass-assigned "
                "at all levels of the object hierarchy.",
            )

            if is_cancelled(cancel_event):
                return
            await self._submit(
                executor,
                target,
                endpoint,
                "POST",
                ARRAY_PAYLOAD,
                result,
                "Array Mass Assignment Vulnerability",
                "The API endpoint allows mass assignment of sensitive properties in arrays.",
                "Successfully assigned sensitive properties in arrays",
                "Implement proper input validation and filtering for arrays. Use a whitelist "
                "approach to explicitly define which properties can be mass-assigned for each "
                "element in the array.",
            )

    async def _submit(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        method: str,
        payload: dict,
        result: TestResult,
        name: str,
        description: str,
        evidence: str,
        remediation: str,
    ) -> None:
        body = json.dumps(payload)
        request = target.request(
            endpoint,
            method=method,
            headers={"Content-Type": "application/json", "X-Role": "user"},
            body=body.encode(),
        )
        response = await probe_once(executor, request)
        if response is None or not accepted_properties(response, body):
            return
        result.add(_finding(name, description, evidence, remediation, request, response))


def _finding(
    name: str,
    description: str,
    evidence: str,
    remediation: str,
    request: ProbeRequest,
    response: ProbeResponse,
) -> Finding:
    return Finding(
        type=VulnerabilityType.MASS_ASSIGNMENT,
        name=name,
        description=description,
        severity=Severity.HIGH,
        evidence=evidence,
        remediation=remediation,
        cvss=8.0,
        cwe="CWE-915",
        references=REFERENCES,
        request=request,
        response=response,
    )
