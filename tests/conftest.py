"""Test configuration and fixtures for apiprobe."""

import asyncio
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from apiprobe.errors import TransportError
from apiprobe.modules.security import TargetConfig
from apiprobe.modules.security.registry import reset_default_registry
from apiprobe.tools.http import ProbeRequest, ProbeResponse

Handler = Callable[[ProbeRequest], ProbeResponse | Exception]


def make_response(
    status_code: int = 200,
    body: bytes | str = b"",
    headers: dict[str, str] | None = None,
    url: str = "https://api.example.com/",
    content_type: str = "",
) -> ProbeResponse:
    """Build a ProbeResponse without going through httpx."""
    data = body.encode() if isinstance(body, str) else body
    return ProbeResponse(
        url=url,
        status_code=status_code,
        headers={k: [v] for k, v in (headers or {}).items()},
        body=data,
        content_type=content_type,
        content_length=len(data),
    )


class ScriptedExecutor:
    """Executor whose answers come from a handler; records every request it sees."""

    def __init__(self, handler: Handler | None = None, delay: float = 0.0):
        self.handler = handler or (lambda request: make_response(url=request.url))
        self.delay = delay
        self.requests: list[ProbeRequest] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def execute(self, request: ProbeRequest) -> ProbeResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.handler(request)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def factory(self, target: TargetConfig) -> "ScriptedExecutor":
        return self


class ConcurrencyTrackingExecutor(ScriptedExecutor):
    """Records the peak number of probes in flight at once."""

    def __init__(self, handler: Handler | None = None, delay: float = 0.01):
        super().__init__(handler, delay)
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, request: ProbeRequest) -> ProbeResponse:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await super().execute(request)
        finally:
            self.in_flight -= 1


def failing_every(k: int) -> Handler:
    """Handler that raises TransportError for every k-th call (1-based)."""
    calls = {"n": 0}

    def handler(request: ProbeRequest) -> ProbeResponse | Exception:
        calls["n"] += 1
        if calls["n"] % k == 0:
            return TransportError("connection reset", url=request.url)
        return make_response(url=request.url)

    return handler


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def target() -> TargetConfig:
    """A target with a single endpoint carrying a numeric object id."""
    return TargetConfig(
        url="https://api.example.com",
        headers={"Authorization": "Bearer test-token"},
        endpoints=["https://api.example.com/users/42"],
    )


@pytest.fixture
def scripted_executor() -> type[ScriptedExecutor]:
    return ScriptedExecutor


@pytest.fixture
def tracking_executor() -> type[ConcurrencyTrackingExecutor]:
    return ConcurrencyTrackingExecutor


@pytest.fixture
def response_factory() -> Callable[..., ProbeResponse]:
    return make_response


@pytest.fixture
def flaky_handler() -> Callable[[int], Handler]:
    return failing_every


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> Path:
    """Isolate config lookups from the real environment, home and working directory."""
    for key in (
        "APIPROBE_CONCURRENCY",
        "APIPROBE_BURST_SIZE",
        "APIPROBE_BYPASS_THRESHOLD",
        "APIPROBE_REQUEST_DELAY",
        "APIPROBE_TIMEOUT",
        "APIPROBE_TARGET_URL",
        "APIPROBE_HEADERS",
        "APIPROBE_VERBOSE",
    ):
        monkeypatch.delenv(key, raising=False)
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture(autouse=True)
def _reset_registry() -> Generator[None, None, None]:
    yield
    reset_default_registry()
