"""Tests for the httpx-backed probe executor."""

import httpx
import pytest
import respx
from httpx import Response

from apiprobe.errors import TransportError
from apiprobe.modules.security import TargetConfig
from apiprobe.modules.security.bypass import get_technique
from apiprobe.tools.http import HTTPProbeExecutor, ProbeRequest, ProbeResponse, merge_headers


class TestHTTPProbeExecutor:
    """Test HTTPProbeExecutor functionality."""

    @respx.mock
    async def test_get_request(self):
        """Test basic GET request."""
        respx.get("https://example.com/api").mock(return_value=Response(200, text="Hello"))

        async with HTTPProbeExecutor() as executor:
            response = await executor.execute(ProbeRequest("GET", "https://example.com/api"))

        assert response.status_code == 200
        assert response.body == b"Hello"
        assert response.text == "Hello"
        assert response.url == "https://example.com/api"
        assert response.content_length == 5
        assert response.is_success

    @respx.mock
    async def test_headers_and_body_are_sent(self):
        route = respx.post("https://example.com/api").mock(return_value=Response(201))

        async with HTTPProbeExecutor(default_headers={"User-Agent": "apiprobe"}) as executor:
            await executor.execute(
                ProbeRequest(
                    "POST",
                    "https://example.com/api",
                    headers={"X-Test-ID": "t-1"},
                    body=b'{"a":1}',
                )
            )

        sent = route.calls.last.request
        assert sent.headers["X-Test-ID"] == "t-1"
        assert sent.headers["User-Agent"] == "apiprobe"
        assert sent.content == b'{"a":1}'

    @respx.mock
    async def test_response_headers_are_case_insensitive(self):
        respx.get("https://example.com").mock(
            return_value=Response(
                429,
                headers={"Retry-After": "30", "Content-Type": "application/json"},
                json={"error": "slow down"},
            )
        )

        async with HTTPProbeExecutor() as executor:
            response = await executor.execute(ProbeRequest("GET", "https://example.com"))

        assert response.header("retry-after") == "30"
        assert response.has_header("RETRY-AFTER")
        assert "application/json" in response.content_type
        assert not response.is_success

    @respx.mock
    async def test_transport_error_is_wrapped(self):
        respx.get("https://example.com").mock(side_effect=httpx.ConnectError("refused"))

        async with HTTPProbeExecutor() as executor:
            with pytest.raises(TransportError) as excinfo:
                await executor.execute(ProbeRequest("GET", "https://example.com"))

        assert excinfo.value.url == "https://example.com"
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    @respx.mock
    async def test_timeout_is_wrapped(self):
        respx.get("https://example.com").mock(side_effect=httpx.ReadTimeout("slow"))

        async with HTTPProbeExecutor(timeout=0.1) as executor:
            with pytest.raises(TransportError):
                await executor.execute(ProbeRequest("GET", "https://example.com"))

    @respx.mock
    async def test_rotated_address_replaces_lowercase_header(self):
        route = respx.get("https://example.com/api").mock(return_value=Response(200))
        base = ProbeRequest(
            "GET", "https://example.com/api", headers={"x-forwarded-for": "1.1.1.1"}
        )
        rotated = get_technique("ip-rotation").customizer(3, base)

        async with HTTPProbeExecutor() as executor:
            await executor.execute(rotated)

        sent = route.calls.last.request.headers.get_list("x-forwarded-for")
        assert sent == ["192.168.1.4"]

    @respx.mock
    async def test_request_header_overrides_default_in_any_case(self):
        route = respx.get("https://example.com").mock(return_value=Response(200))

        async with HTTPProbeExecutor(default_headers={"User-Agent": "apiprobe"}) as executor:
            await executor.execute(
                ProbeRequest("GET", "https://example.com", headers={"user-agent": "custom"})
            )

        assert route.calls.last.request.headers.get_list("User-Agent") == ["custom"]

    async def test_execute_requires_context_manager(self):
        executor = HTTPProbeExecutor()

        with pytest.raises(RuntimeError, match="not initialized"):
            await executor.execute(ProbeRequest("GET", "https://example.com"))


class TestProbeRequest:
    """Test ProbeRequest copy helpers."""

    def test_with_headers_does_not_mutate(self):
        base = ProbeRequest("GET", "https://a.test", headers={"A": "1"})

        changed = base.with_headers({"B": "2", "A": "3"})

        assert base.headers == {"A": "1"}
        assert changed.headers == {"A": "3", "B": "2"}

    def test_with_query_replaces_existing_key(self):
        base = ProbeRequest("GET", "https://a.test/s?q=1&page=2")

        changed = base.with_query({"q": "x y"})

        assert changed.url == "https://a.test/s?page=2&q=x+y"

    def test_with_headers_replaces_other_casing(self):
        base = ProbeRequest("GET", "https://a.test", headers={"user-agent": "cli", "Accept": "*/*"})

        changed = base.with_headers({"User-Agent": "rotated"})

        assert changed.headers == {"Accept": "*/*", "User-Agent": "rotated"}

    def test_with_query_keeps_bare_flags_and_encoding(self):
        base = ProbeRequest("GET", "https://a.test/s?flag&path=%2Fetc&q=1")

        changed = base.with_query({"q": "2", "dummy0": "0"})

        assert changed.url == "https://a.test/s?flag&path=%2Fetc&q=2&dummy0=0"

    def test_with_query_on_bare_url(self):
        changed = ProbeRequest("GET", "https://a.test/s").with_query({"_": "1"})

        assert changed.url == "https://a.test/s?_=1"

    def test_with_method_uppercases(self):
        changed = ProbeRequest("GET", "https://a.test").with_method("post", b"{}")

        assert changed.method == "POST"
        assert changed.body == b"{}"


def test_response_header_missing():
    assert ProbeResponse(url="https://a.test", status_code=200).header("Server") is None


def test_merge_headers_is_case_insensitive():
    base = {"X-Forwarded-For": "1.1.1.1", "Accept": "*/*"}

    merged = merge_headers(base, {"x-forwarded-for": "2"})

    assert merged == {"Accept": "*/*", "x-forwarded-for": "2"}


def test_target_request_override_replaces_shared_header():
    target = TargetConfig(url="https://a.test", headers={"content-type": "text/plain"})

    request = target.request(headers={"Content-Type": "application/json"})

    assert request.headers == {"Content-Type": "application/json"}
