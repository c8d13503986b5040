"""Improper Assets Management tester (API9:2019)."""

import asyncio

from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import ExecutorFactory, SecurityTester, is_cancelled
from ..models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .common import (
    BROWSER_USER_AGENT,
    CHEAT_SHEETS,
    OWASP_API_2019,
    REST_CHEAT_SHEET,
    candidate_urls,
    first_success,
    join_url,
    probe_once,
)

ASSETS_REFERENCE = f"{OWASP_API_2019}/0xa9-improper-assets-management/"
FILE_UPLOAD_CHEAT_SHEET = f"{CHEAT_SHEETS}/File_Upload_Cheat_Sheet.html"

DEPRECATED_VERSIONS = (
    "v1", "v1.0", "v1.0.0", "v0", "v0.1", "v0.0.1", "beta", "alpha", "legacy", "old",
)
BETA_ENVIRONMENTS = ("beta", "dev", "development", "staging", "test", "testing", "uat", "sandbox")
DEBUG_PATHS = ("debug", "trace", "status", "health", "ping", "metrics", "stats", "admin")
BACKUP_SUFFIXES = (".bak", ".backup", ".old", ".save", ".swp", ".copy", ".tmp", ".temp", "~")
BACKED_UP_FILES = (
    "config.js", "config.php", "config.xml", "config.json",
    "settings.js", "settings.php", "settings.xml", "settings.json",
    "app.js", "app.php", "app.config.js", "web.config",
    "api.js", "api.php", "api.config.js", "api.json",
)
EXPOSED_PATHS = (
    ".git", ".svn", ".env", ".htaccess", "config", "settings", "backup", "admin",
    "console", "dashboard", "manage", "management", "phpinfo.php", "info.php",
)
API_VERSIONS = ("v1", "v2", "v3", "v1.0", "v1.1", "v2.0", "v2.1", "v3.0", "latest")

# Where a version, environment or debug name can sit below the base URL.
VERSION_LAYOUTS = ("api/{}/", "{}/api/", "api-{}/")
ENVIRONMENT_LAYOUTS = ("{}/", "api/{}/", "{}-api/")
DEBUG_LAYOUTS = ("{}", "api/{}", "{}.php", "{}.json")


class ImproperAssetsMgmtTester(SecurityTester):
    """Look for forgotten versions, environments, debug pages and leftover files."""

    name = "Improper Assets Management"
    vuln_type = VulnerabilityType.IMPROPER_ASSETS_MGMT
    description = (
        "Tests for API endpoints that expose deprecated API versions, debug endpoints, or other "
        "assets that should not be publicly accessible."
    )

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        check_deprecated: bool = True,
        check_unpublished: bool = True,
        check_multiple_versions: bool = True,
    ):
        super().__init__(executor_factory)
        self.check_deprecated = check_deprecated
        self.check_unpublished = check_unpublished
        self.check_multiple_versions = check_multiple_versions

    async def run(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        base_url = target.base_url
        checks = []
        if self.check_deprecated:
            checks.append(self._check_deprecated_versions)
        if self.check_unpublished:
            checks.append(self._check_beta_environments)
        checks += [self._check_debug_paths, self._check_backup_files, self._check_exposed_paths]
        if self.check_multiple_versions:
            checks.append(self._check_multiple_versions)
        for check in checks:
            if is_cancelled(cancel_event):
                return
            await check(executor, target, base_url, result, cancel_event)

    def _request(self, target: TargetConfig, url: str) -> ProbeRequest:
        return target.request(url, headers={"User-Agent": BROWSER_USER_AGENT})

    def _requests(self, target: TargetConfig, urls: list[str]) -> list[ProbeRequest]:
        return [self._request(target, url) for url in urls]

    async def _check_deprecated_versions(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for version in DEPRECATED_VERSIONS:
            urls = candidate_urls(base_url, VERSION_LAYOUTS, version)
            hit = await first_success(executor, self._requests(target, urls), cancel_event)
            if hit is None:
                continue
            result.add(
                _finding(
                    "Deprecated API Version Accessible",
                    "A deprecated API version is publicly accessible.",
                    Severity.MEDIUM,
                    6.5,
                    "CWE-1059",
                    f"Successfully accessed deprecated API version: {version}",
                    "Properly retire and decommission old API versions. Implement API lifecycle "
                    "management. Redirect clients to newer API versions.",
                    *hit,
                )
            )

    async def _check_beta_environments(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for environment in BETA_ENVIRONMENTS:
            urls = candidate_urls(base_url, ENVIRONMENT_LAYOUTS, environment)
            hit = await first_success(executor, self._requests(target, urls), cancel_event)
            if hit is None:
                continue
            result.add(
                _finding(
                    "Beta/Development API Endpoint Accessible",
                    "A beta or development API endpoint is publicly accessible.",
                    Severity.MEDIUM,
                    6.0,
                    "CWE-1059",
                    f"Successfully accessed beta/development endpoint: {environment}",
                    "Restrict access to non-production API endpoints. Implement proper "
                    "environment separation. Use different domains or authentication for "
                    "development environments.",
                    *hit,
                )
            )

    async def _check_debug_paths(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for path in DEBUG_PATHS:
            urls = candidate_urls(base_url, DEBUG_LAYOUTS, path)
            hit = await first_success(executor, self._requests(target, urls), cancel_event)
            if hit is None:
                continue
            result.add(
                _finding(
                    "Debug Endpoint Accessible",
                    "A debug or administrative endpoint is publicly accessible.",
                    Severity.HIGH,
                    7.5,
                    "CWE-215",
                    f"Successfully accessed debug endpoint: {path}",
                    "Restrict access to debug and administrative endpoints. Implement proper "
                    "authentication and authorization. Consider removing debug endpoints in "
                    "production.",
                    *hit,
                )
            )

    async def _check_backup_files(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for filename in BACKED_UP_FILES:
            for suffix in BACKUP_SUFFIXES:
                if is_cancelled(cancel_event):
                    return
                request = self._request(target, join_url(base_url, filename + suffix))
                response = await probe_once(executor, request)
                if response is None or not response.is_success:
                    continue
                result.add(
                    _finding(
                        "Backup File Accessible",
                        "A backup file is publicly accessible.",
                        Severity.HIGH,
                        7.5,
                        "CWE-530",
                        f"Successfully accessed backup file: {filename}{suffix}",
                        "Remove backup files from production servers. Implement proper file "
                        "permissions. Use a web application firewall to block access to backup "
                        "files.",
                        request,
                        response,
                        reference=FILE_UPLOAD_CHEAT_SHEET,
                    )
                )

    async def _check_exposed_paths(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for path in EXPOSED_PATHS:
            if is_cancelled(cancel_event):
                return
            request = self._request(target, join_url(base_url, path))
            response = await probe_once(executor, request)
            if response is None or not response.is_success:
                continue
            result.add(
                _finding(
                    "Vulnerable Path Accessible",
                    "A potentially vulnerable path is publicly accessible.",
                    Severity.HIGH,
                    7.5,
                    "CWE-284",
                    f"Successfully accessed vulnerable path: {path}",
                    "Restrict access to sensitive paths. Implement proper authentication and "
                    "authorization. Remove unnecessary files and directories from production "
                    "servers.",
                    request,
                    response,
                )
            )

    async def _check_multiple_versions(
        self,
        executor: ProbeExecutor,
        target: TargetConfig,
        base_url: str,
        result: TestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        reachable = []
        for version in API_VERSIONS:
            urls = candidate_urls(base_url, VERSION_LAYOUTS, version)
            if await first_success(executor, self._requests(target, urls), cancel_event):
                reachable.append(version)
        if is_cancelled(cancel_event) or len(reachable) < 2:
            return
        result.add(
            _finding(
                "Multiple API Versions Accessible",
                "Multiple API versions are publicly accessible.",
                Severity.MEDIUM,
                5.5,
                "CWE-1059",
                f"Successfully accessed multiple API versions: {', '.join(reachable)}",
                "Implement proper API lifecycle management. Deprecate and eventually retire old "
                "API versions. Redirect clients to newer API versions.",
                None,
                None,
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
    request: ProbeRequest | None,
    response: ProbeResponse | None,
    reference: str = REST_CHEAT_SHEET,
) -> Finding:
    return Finding(
        type=VulnerabilityType.IMPROPER_ASSETS_MGMT,
        name=name,
        description=description,
        severity=severity,
        evidence=evidence,
        remediation=remediation,
        cvss=cvss,
        cwe=cwe,
        references=(ASSETS_REFERENCE, reference),
        request=request,
        response=response,
    )
