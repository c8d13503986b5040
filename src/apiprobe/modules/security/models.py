"""Data models for security testers, findings and targets."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum, IntEnum
from typing import Any
from urllib.parse import urlsplit

from apiprobe.errors import TargetConfigError
from apiprobe.tools.http import ProbeRequest, ProbeResponse, merge_headers


class VulnerabilityType(IntEnum):
    """Vulnerability categories (OWASP API Security Top 10, 2019 edition)."""

    BROKEN_OBJECT_LEVEL_AUTH = 1
    BROKEN_AUTH = 2
    EXCESSIVE_DATA_EXPOSURE = 3
    LACK_OF_RESOURCES = 4
    BROKEN_FUNCTION_LEVEL_AUTH = 5
    MASS_ASSIGNMENT = 6
    SECURITY_MISCONFIG = 7
    INJECTION = 8
    IMPROPER_ASSETS_MGMT = 9
    INSUFFICIENT_LOGGING = 10
    # Registry key for the bypass tester; its findings are tagged LACK_OF_RESOURCES.
    RATE_LIMIT_BYPASS = 11

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")

    @classmethod
    def parse(cls, value: str) -> "VulnerabilityType":
        """Resolve ``"injection"``, ``"INJECTION"``, ``"8"`` or ``"API8"`` to a member."""
        text = value.strip()
        if text.upper().startswith("API"):
            text = text[3:]
        if text.isdigit():
            return cls(int(text))
        key = text.upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown vulnerability type: {value}") from None


class Severity(str, Enum):
    """Finding severity, ordered from most to least severe."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Finding:
    """A single confirmed vulnerability instance."""

    type: VulnerabilityType
    name: str
    description: str
    severity: Severity
    evidence: str = ""
    remediation: str = ""
    cvss: float = 0.0
    cwe: str = ""
    references: tuple[str, ...] = ()
    request: ProbeRequest | None = None
    response: ProbeResponse | None = None
    detected_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of the finding."""
        data: dict[str, Any] = {
            "type": self.type.label,
            "name": self.name,
            "description": self.description,
            "severity": self.severity.value,
            "evidence": self.evidence,
            "remediation": self.remediation,
            "cvss": self.cvss,
            "cwe": self.cwe,
            "references": list(self.references),
            "detected_at": self.detected_at.isoformat(),
        }
        if self.request is not None:
            data["request"] = {"method": self.request.method, "url": self.request.url}
        if self.response is not None:
            data["response"] = {
                "status_code": self.response.status_code,
                "content_type": self.response.content_type,
                "content_length": self.response.content_length,
            }
        return data


@dataclass
class TestResult:
    """Outcome of one tester invocation."""

    __test__ = False  # keep pytest from collecting this class

    test_name: str
    vulnerabilities: list[Finding] = field(default_factory=list)
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None
    error: str | None = None

    def add(self, finding: Finding) -> None:
        self.vulnerabilities.append(finding)

    def finish(self) -> "TestResult":
        self.end_time = utcnow()
        return self

    @property
    def duration(self) -> timedelta:
        if self.end_time is None:
            return timedelta(0)
        return self.end_time - self.start_time

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_name": self.test_name,
            "vulnerabilities": [finding.to_dict() for finding in self.vulnerabilities],
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration.total_seconds(),
            "error": self.error,
        }


@dataclass
class TargetConfig:
    """The API under test: base URL, shared headers and endpoints to probe."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    endpoints: list[str] = field(default_factory=list)
    timeout: float = 30.0
    verify_ssl: bool = False
    follow_redirects: bool = False

    def validate(self) -> "TargetConfig":
        """Raise TargetConfigError unless the target is an absolute http(s) URL."""
        for candidate in [self.url, *self.endpoints]:
            parts = urlsplit(candidate or "")
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise TargetConfigError(f"Not an absolute http(s) URL: {candidate!r}")
        if self.timeout <= 0:
            raise TargetConfigError(f"Timeout must be positive, got {self.timeout}")
        return self

    @property
    def base_url(self) -> str:
        """Scheme and host of the target, without path or query."""
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    def all_endpoints(self) -> list[str]:
        """Return the endpoints to probe; the target URL when none are listed."""
        return list(self.endpoints) if self.endpoints else [self.url]

    def request(
        self,
        url: str | None = None,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> ProbeRequest:
        """Build a probe request carrying the target's shared headers."""
        merged = merge_headers(self.headers, headers or {})
        return ProbeRequest(method=method, url=url or self.url, headers=merged, body=body)
