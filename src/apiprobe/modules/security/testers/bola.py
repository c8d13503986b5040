"""Broken Object Level Authorization tester (API1:2019)."""

import asyncio
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from apiprobe.tools.http import ProbeExecutor

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .common import OWASP_API_2019, probe_once

REFERENCES = (
    f"{OWASP_API_2019}/0xa1-broken-object-level-authorization/",
    "https://cheatsheetseries.owasp.org/cheatsheets/Authorization_Cheat_Sheet.html",
)

ID_PARAMETER_NAMES = (
    "id",
    "user_id",
    "user",
    "account",
    "account_id",
    "customer",
    "customer_id",
    "object",
    "object_id",
    "record",
    "record_id",
    "uuid",
    "guid",
)

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_object_id(segment: str) -> bool:
    return segment.isdigit() or bool(_UUID_RE.match(segment))


def replace_object_id(endpoint: str, test_id: str) -> str:
    """Swap the first object id in *endpoint* (path first, then query) for *test_id*.

    Returns *endpoint* unchanged when it carries no recognisable id.
    """
    parts = urlsplit(endpoint)
    segments = parts.path.split("/")
    for index, segment in enumerate(segments):
        if is_object_id(segment):
            segments[index] = test_id
            return urlunsplit(parts._replace(path="/".join(segments)))

    query = parse_qsl(parts.query, keep_blank_values=True)
    for index, (key, _) in enumerate(query):
        if key.lower() in ID_PARAMETER_NAMES:
            query[index] = (key, test_id)
            return urlunsplit(parts._replace(query=urlencode(query)))
    return endpoint


class BrokenObjectLevelAuthTester(SecurityTester):
    """Request neighbouring object ids and flag the ones served without checks."""

    name = "Broken Object Level Authorization"
    vuln_type = VulnerabilityType.BROKEN_OBJECT_LEVEL_AUTH
    description = (
        "Tests for API endpoints that don't properly verify that the requesting user has the "
        "necessary permissions to access the requested resource."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        max_ids: int = 10,
        test_ids: list[str] | None = None,
    ):
        super().__init__(executor_factory)
        self.test_ids = list(test_ids) if test_ids else [str(i) for i in range(1, max_ids + 1)]

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for endpoint in target.all_endpoints():
            for test_id in self.test_ids:
                if is_cancelled(cancel_event):
                    return
                modified = replace_object_id(endpoint, test_id)
                if modified == endpoint:
                    continue
                request = target.request(modified)
                response = await probe_once(executor, request)
                if response is None or not response.is_success:
                    continue
                result.add(
                    Finding(
                        type=VulnerabilityType.BROKEN_OBJECT_LEVEL_AUTH,
                        name="Broken Object Level Authorization",
                        description=(
                            "The API endpoint allows access to resources that should be "
                            "protected."
                        ),
                        severity=Severity.HIGH,
                        request=request,
                        response=response,
                        evidence=(
                            f"Successfully accessed resource with ID {test_id} without proper "
                            "authorization"
                        ),
                        remediation=(
                            "Implement proper authorization checks for all API endpoints that "
                            "access resources. Verify that the requesting user has the "
                            "necessary permissions to access the requested resource."
                        ),
                        cvss=8.2,
                        cwe="CWE-285",
                        references=REFERENCES,
                    )
                )
