"""Tests for CLI commands."""

import pytest
from typer.testing import CliRunner

from apiprobe import cli
from apiprobe.cli import app
from apiprobe.modules.security import (
    Finding,
    SecurityTester,
    SecurityTestRegistry,
    Severity,
    VulnerabilityType,
)

runner = CliRunner()


class FakeTester(SecurityTester):
    """Tester that reports one finding, or fails."""

    description = "fake tester"

    def __init__(self, executor, vuln_type=VulnerabilityType.INJECTION, name="fake", fail=False):
        super().__init__(executor.factory)
        self.vuln_type = vuln_type
        self.name = name
        self.fail = fail
        self.targets = []

    async def run(self, executor, target, result, cancel_event):
        self.targets.append(target)
        if self.fail:
            raise RuntimeError("tester exploded")
        result.add(
            Finding(
                type=self.vuln_type,
                name="Fake Finding",
                description="found by the fake tester",
                severity=Severity.HIGH,
                evidence="evidence here",
                cvss=7.5,
                cwe="CWE-1",
            )
        )


@pytest.fixture
def fake_registry(monkeypatch: pytest.MonkeyPatch, scripted_executor, clean_env):
    registry = SecurityTestRegistry([FakeTester(scripted_executor())])
    monkeypatch.setattr(cli, "build_registry", lambda: registry)
    return registry


class TestCLIBasics:
    """Test version and list."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "apiprobe" in result.output

    def test_list_shows_catalog(self, clean_env):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "injection" in result.output

    def test_build_registry_applies_config(self, clean_env, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("APIPROBE_BURST_SIZE", "12")
        monkeypatch.setenv("APIPROBE_BYPASS_THRESHOLD", "0.5")

        registry = cli.build_registry()
        bypass = registry.get(VulnerabilityType.RATE_LIMIT_BYPASS)

        assert bypass.requests_per_test == 12
        assert bypass.threshold == 0.5
        assert len(registry) == 11


class TestScanCommand:
    """Test the scan command end to end with fake testers."""

    def test_scan_prints_findings(self, fake_registry):
        result = runner.invoke(app, ["scan", "https://api.example.com"])

        assert result.exit_code == 0, result.output
        assert "Fake Finding" in result.output

    def test_scan_json(self, fake_registry):
        result = runner.invoke(app, ["scan", "https://api.example.com", "--json"])

        assert result.exit_code == 0, result.output
        assert '"test_name": "fake"' in result.output
        assert '"cwe": "CWE-1"' in result.output

    def test_scan_applies_headers_and_endpoints(self, fake_registry):
        result = runner.invoke(
            app,
            [
                "scan",
                "https://api.example.com",
                "--header",
                "Authorization: Bearer abc",
                "--endpoint",
                "https://api.example.com/users/1",
            ],
        )

        assert result.exit_code == 0, result.output
        target = fake_registry.get(VulnerabilityType.INJECTION).targets[0]
        assert target.headers == {"Authorization": "Bearer abc"}
        assert target.endpoints == ["https://api.example.com/users/1"]

    def test_scan_reads_config_file(self, fake_registry, clean_env):
        path = clean_env / "target.yml"
        path.write_text("url: https://cfg.example.com\nendpoints:\n  - https://cfg.example.com/a\n")

        result = runner.invoke(app, ["scan", "--config", str(path)])

        assert result.exit_code == 0, result.output
        target = fake_registry.get(VulnerabilityType.INJECTION).targets[0]
        assert target.url == "https://cfg.example.com"

    def test_failed_tester_sets_exit_code(self, monkeypatch, scripted_executor, clean_env):
        executor = scripted_executor()
        registry = SecurityTestRegistry(
            [
                FakeTester(executor),
                FakeTester(executor, VulnerabilityType.BROKEN_AUTH, name="broken", fail=True),
            ]
        )
        monkeypatch.setattr(cli, "build_registry", lambda: registry)

        result = runner.invoke(app, ["scan", "https://api.example.com"])

        assert result.exit_code == 1
        assert "tester exploded" in result.output

    def test_unknown_test_type(self, fake_registry):
        result = runner.invoke(app, ["scan", "https://api.example.com", "--test", "teleport"])

        assert result.exit_code == 2

    def test_unregistered_test_type(self, fake_registry):
        result = runner.invoke(
            app, ["scan", "https://api.example.com", "--test", "broken-auth"]
        )

        assert result.exit_code == 2

    def test_missing_target(self, fake_registry):
        result = runner.invoke(app, ["scan"])

        assert result.exit_code == 2
        assert "No target given" in result.output

    def test_invalid_url(self, fake_registry):
        result = runner.invoke(app, ["scan", "ftp://example.com"])

        assert result.exit_code == 2
