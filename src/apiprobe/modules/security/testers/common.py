"""Helpers shared by the tester catalog."""

import asyncio
import logging
from collections.abc import Iterable

from apiprobe.errors import TransportError
from apiprobe.tools.http import ProbeExecutor, ProbeRequest, ProbeResponse

from ..base import is_cancelled

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

OWASP_API_2019 = "https://owasp.org/API-Security/editions/2019/en"
CHEAT_SHEETS = "https://cheatsheetseries.owasp.org/cheatsheets"
REST_CHEAT_SHEET = f"{CHEAT_SHEETS}/REST_Security_Cheat_Sheet.html"
DOS_CHEAT_SHEET = f"{CHEAT_SHEETS}/Denial_of_Service_Cheat_Sheet.html"


async def probe_once(executor: ProbeExecutor, request: ProbeRequest) -> ProbeResponse | None:
    """Send one probe; a transport failure yields ``None``."""
    try:
        return await executor.execute(request)
    except TransportError as exc:
        logger.debug("Skipping %s %s: %s", request.method, request.url, exc)
        return None


def join_url(base: str, path: str) -> str:
    """Append *path* to *base* with exactly one slash between them."""
    return base.rstrip("/") + "/" + path.lstrip("/")


def contains_any(text: str, patterns: tuple[str, ...] | list[str]) -> str | None:
    """Return the first pattern found in *text*, if any."""
    for pattern in patterns:
        if pattern in text:
            return pattern
    return None


def candidate_urls(base_url: str, layouts: tuple[str, ...], name: str) -> list[str]:
    """Expand each ``{}`` layout with *name* below *base_url*."""
    return [join_url(base_url, layout.format(name)) for layout in layouts]


async def first_success(
    executor: ProbeExecutor,
    requests: Iterable[ProbeRequest],
    cancel_event: asyncio.Event | None = None,
) -> tuple[ProbeRequest, ProbeResponse] | None:
    """Send *requests* in order and return the first exchange answered with a 2xx."""
    for request in requests:
        if is_cancelled(cancel_event):
            return None
        response = await probe_once(executor, request)
        if response is not None and response.is_success:
            return request, response
    return None
