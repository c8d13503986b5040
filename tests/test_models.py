"""Tests for security data models and result reporting."""

import json

import pytest
from rich.console import Console

from apiprobe.errors import TargetConfigError
from apiprobe.modules.security import (
    Finding,
    Severity,
    TargetConfig,
    TestResult,
    VulnerabilityType,
)
from apiprobe.modules.security.reporting import (
    all_findings,
    print_results_summary,
    results_to_json,
    severity_counts,
)


def _finding(severity: Severity, cvss: float, name: str = "F") -> Finding:
    return Finding(
        type=VulnerabilityType.INJECTION,
        name=name,
        description="d",
        severity=severity,
        cvss=cvss,
        cwe="CWE-89",
    )


class TestVulnerabilityType:
    """Test VulnerabilityType parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("injection", VulnerabilityType.INJECTION),
            ("LACK_OF_RESOURCES", VulnerabilityType.LACK_OF_RESOURCES),
            ("rate-limit-bypass", VulnerabilityType.RATE_LIMIT_BYPASS),
            ("4", VulnerabilityType.LACK_OF_RESOURCES),
            ("API1", VulnerabilityType.BROKEN_OBJECT_LEVEL_AUTH),
        ],
    )
    def test_parse(self, raw, expected):
        assert VulnerabilityType.parse(raw) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown vulnerability type"):
            VulnerabilityType.parse("teleport")

    def test_label(self):
        assert VulnerabilityType.SECURITY_MISCONFIG.label == "security-misconfig"


class TestTargetConfig:
    """Test TargetConfig validation and request building."""

    def test_validate_rejects_relative_endpoint(self):
        target = TargetConfig(url="https://a.test", endpoints=["/users/1"])
        with pytest.raises(TargetConfigError):
            target.validate()

    def test_validate_rejects_bad_timeout(self):
        with pytest.raises(TargetConfigError):
            TargetConfig(url="https://a.test", timeout=0).validate()

    def test_all_endpoints_defaults_to_url(self):
        assert TargetConfig(url="https://a.test/v1").all_endpoints() == ["https://a.test/v1"]

    def test_base_url(self):
        assert TargetConfig(url="https://a.test:8443/v1/x?y=1").base_url == "https://a.test:8443"

    def test_request_merges_headers(self):
        target = TargetConfig(url="https://a.test", headers={"Authorization": "t", "X": "1"})

        request = target.request(method="POST", headers={"X": "2"}, body=b"{}")

        assert request.url == "https://a.test"
        assert request.method == "POST"
        assert request.headers == {"Authorization": "t", "X": "2"}
        assert target.headers["X"] == "1"


class TestTestResult:
    """Test TestResult bookkeeping."""

    def test_finish_and_serialise(self):
        result = TestResult(test_name="Injection")
        result.add(_finding(Severity.CRITICAL, 9.8))

        data = result.finish().to_dict()

        assert data["test_name"] == "Injection"
        assert data["error"] is None
        assert data["duration"] >= 0
        assert data["vulnerabilities"][0]["type"] == "injection"
        assert data["vulnerabilities"][0]["severity"] == "Critical"
        assert not result.failed


class TestReporting:
    """Test result rendering helpers."""

    def test_findings_sorted_by_severity(self):
        results = [
            TestResult("a", [_finding(Severity.LOW, 3.0, "low")]),
            TestResult(
                "b",
                [_finding(Severity.HIGH, 7.0, "high"), _finding(Severity.HIGH, 8.2, "top")],
            ),
        ]

        assert [f.name for f in all_findings(results)] == ["top", "high", "low"]

    def test_severity_counts_include_zeroes(self):
        counts = severity_counts([_finding(Severity.MEDIUM, 5.0)])

        assert counts[Severity.MEDIUM] == 1
        assert counts[Severity.CRITICAL] == 0

    def test_summary_output(self):
        console = Console(record=True, width=120)
        results = [TestResult("Injection", [_finding(Severity.CRITICAL, 9.8, "SQL Injection")])]

        print_results_summary(results, console)

        text = console.export_text()
        assert "SQL Injection" in text
        assert "Critical: 1" in text

    def test_summary_without_findings(self):
        console = Console(record=True, width=120)

        print_results_summary([TestResult("Injection")], console)

        assert "No vulnerabilities found" in console.export_text()

    def test_results_to_json(self):
        payload = json.loads(results_to_json([TestResult("x")]))

        assert payload[0]["test_name"] == "x"
