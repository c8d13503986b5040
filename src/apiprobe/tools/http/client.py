"""HTTP probe executor built on httpx."""

import time
from dataclasses import dataclass, field, replace
from typing import Protocol
from urllib.parse import unquote_plus, urlencode, urlsplit, urlunsplit

import httpx

from apiprobe.errors import TransportError


def merge_headers(base: dict[str, str], overrides: dict[str, str]) -> dict[str, str]:
    """Overlay *overrides* on *base*, matching header names case-insensitively."""
    replaced = {name.lower() for name in overrides}
    merged = {name: value for name, value in base.items() if name.lower() not in replaced}
    merged.update(overrides)
    return merged


@dataclass(frozen=True)
class ProbeRequest:
    """One outbound request issued against the target."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None

    def with_headers(self, overrides: dict[str, str]) -> "ProbeRequest":
        """Return a copy with *overrides* merged over the existing headers."""
        return replace(self, headers=merge_headers(self.headers, overrides))

    def with_query(self, params: dict[str, str]) -> "ProbeRequest":
        """Return a copy with *params* added to (or replacing) the query string.

        Parameters not named in *params* are kept byte-for-byte.
        """
        parts = urlsplit(self.url)
        query = [
            pair
            for pair in parts.query.split("&")
            if pair and unquote_plus(pair.split("=", 1)[0]) not in params
        ]
        if params:
            query.append(urlencode(params))
        return replace(self, url=urlunsplit(parts._replace(query="&".join(query))))

    def with_method(self, method: str, body: bytes | None = None) -> "ProbeRequest":
        return replace(self, method=method.upper(), body=body)


@dataclass
class ProbeResponse:
    """Represents a response produced by a probe executor."""

    url: str
    status_code: int
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    content_type: str = ""
    content_length: int = 0
    elapsed: float = 0.0

    def header(self, name: str) -> str | None:
        """Return the first value of a header, matched case-insensitively."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    @property
    def text(self) -> str:
        return self.body.decode(errors="replace")

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class ProbeExecutor(Protocol):
    """Anything able to deliver a ProbeRequest and return its ProbeResponse.

    Implementations raise ``TransportError`` when no response was obtained and
    must not retry or cache on their own.
    """

    async def execute(self, request: ProbeRequest) -> ProbeResponse: ...


class HTTPProbeExecutor:
    """Async HTTP executor for probing operations."""

    def __init__(
        self,
        timeout: float = 30.0,
        follow_redirects: bool = False,
        verify_ssl: bool = False,
        default_headers: dict[str, str] | None = None,
    ):
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.verify_ssl = verify_ssl
        self.default_headers = dict(default_headers or {})
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=self.follow_redirects,
            verify=self.verify_ssl,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def execute(self, request: ProbeRequest) -> ProbeResponse:
        """Send one probe request."""
        if not self.client:
            raise RuntimeError("Executor not initialized. Use async context manager.")

        headers = merge_headers(self.default_headers, request.headers)
        start = time.perf_counter()
        try:
            response = await self.client.request(
                method=request.method,
                url=request.url,
                headers=headers,
                content=request.body,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", url=request.url) from exc
        elapsed = time.perf_counter() - start

        return to_probe_response(response, elapsed)


def to_probe_response(response: httpx.Response, elapsed: float = 0.0) -> ProbeResponse:
    """Convert an httpx response into a ProbeResponse."""
    headers: dict[str, list[str]] = {}
    for key, value in response.headers.multi_items():
        headers.setdefault(key, []).append(value)
    body = response.content
    declared = response.headers.get("content-length", "")
    return ProbeResponse(
        url=str(response.url),
        status_code=response.status_code,
        headers=headers,
        body=body,
        content_type=response.headers.get("content-type", ""),
        content_length=int(declared) if declared.isdigit() else len(body),
        elapsed=elapsed,
    )
