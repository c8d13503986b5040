"""Tests for configuration management."""

from pathlib import Path

import pytest

from apiprobe import config
from apiprobe.errors import TargetConfigError


class TestLoadEnvFile:
    """Tests for load_env_file."""

    def test_load_env_file_missing_returns_empty(self, temp_dir: Path) -> None:
        env_path = temp_dir / ".apiprobe.env"
        assert not env_path.exists()
        assert config.load_env_file(env_path) == {}

    def test_load_env_file_parses_key_value(self, temp_dir: Path) -> None:
        env_path = temp_dir / ".apiprobe.env"
        env_path.write_text("# comment\n\nFOO=bar\nBAZ='qux'\n")
        assert config.load_env_file(env_path) == {"FOO": "bar", "BAZ": "qux"}


class TestGetConfig:
    """Tests for layered lookups."""

    def test_default_when_nothing_set(self, clean_env: Path) -> None:
        assert config.get_config("APIPROBE_CONCURRENCY", default="7") == "7"

    def test_priority_env_over_project_over_global(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        global_dir = Path.home() / ".apiprobe"
        global_dir.mkdir()
        (global_dir / "config.yml").write_text("APIPROBE_BURST_SIZE: 10\n")
        assert config.get_config("APIPROBE_BURST_SIZE") == 10

        (clean_env / ".apiprobe.env").write_text("APIPROBE_BURST_SIZE=20\n")
        assert config.get_config("APIPROBE_BURST_SIZE") == "20"

        monkeypatch.setenv("APIPROBE_BURST_SIZE", "40")
        assert config.get_config("APIPROBE_BURST_SIZE") == "40"


class TestTypedGetters:
    """Tests for the numeric getters."""

    def test_defaults(self, clean_env: Path) -> None:
        assert config.get_concurrency() == 5
        assert config.get_burst_size() == 30
        assert config.get_bypass_threshold() == 0.8
        assert config.get_request_delay() == 0.1
        assert config.get_timeout() == 30.0

    def test_overrides(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APIPROBE_CONCURRENCY", "12")
        monkeypatch.setenv("APIPROBE_BYPASS_THRESHOLD", "0.9")
        monkeypatch.setenv("APIPROBE_REQUEST_DELAY", "0")
        assert config.get_concurrency() == 12
        assert config.get_bypass_threshold() == 0.9
        assert config.get_request_delay() == 0.0

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("APIPROBE_CONCURRENCY", "many"),
            ("APIPROBE_CONCURRENCY", "0"),
            ("APIPROBE_BYPASS_THRESHOLD", "1.5"),
            ("APIPROBE_TIMEOUT", "-1"),
        ],
    )
    def test_invalid_values_fall_back(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch, key: str, value: str
    ) -> None:
        monkeypatch.setenv(key, value)
        assert config.get_concurrency() == 5
        assert config.get_bypass_threshold() == 0.8
        assert config.get_timeout() == 30.0


class TestTargetLoading:
    """Tests for target config files and environment targets."""

    def test_load_target_config(self, clean_env: Path) -> None:
        path = clean_env / "target.yml"
        path.write_text(
            "url: https://api.example.com\n"
            "headers:\n"
            "  Authorization: Bearer abc\n"
            "endpoints:\n"
            "  - https://api.example.com/users/1\n"
            "timeout: 5\n"
            "verify_ssl: true\n"
        )

        target = config.load_target_config(path)

        assert target.url == "https://api.example.com"
        assert target.headers == {"Authorization": "Bearer abc"}
        assert target.endpoints == ["https://api.example.com/users/1"]
        assert target.timeout == 5.0
        assert target.verify_ssl is True

    def test_missing_url(self, clean_env: Path) -> None:
        path = clean_env / "target.yml"
        path.write_text("headers: {}\n")
        with pytest.raises(TargetConfigError, match="url"):
            config.load_target_config(path)

    def test_missing_file(self, clean_env: Path) -> None:
        with pytest.raises(TargetConfigError, match="not found"):
            config.load_target_config(clean_env / "nope.yml")

    def test_target_from_env(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        assert config.target_from_env() is None

        monkeypatch.setenv("APIPROBE_TARGET_URL", "https://api.example.com")
        monkeypatch.setenv("APIPROBE_HEADERS", '{"X-Api-Key": "k"}')
        target = config.target_from_env()

        assert target is not None
        assert target.url == "https://api.example.com"
        assert target.headers == {"X-Api-Key": "k"}

    def test_target_from_env_rejects_bad_headers(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("APIPROBE_TARGET_URL", "https://api.example.com")
        monkeypatch.setenv("APIPROBE_HEADERS", "X-Api-Key: k")
        with pytest.raises(TargetConfigError):
            config.target_from_env()

    def test_parse_header(self) -> None:
        assert config.parse_header("Authorization: Bearer a:b") == ("Authorization", "Bearer a:b")
        with pytest.raises(TargetConfigError):
            config.parse_header("no-colon")
