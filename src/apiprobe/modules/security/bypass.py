"""Rate-limit bypass techniques and their evaluation.

Every technique is a request-mutation strategy. The evaluator turns it into a
per-probe customizer for the burst dispatcher, sends a fixed-size burst and
calls the technique successful when more than ``SUCCESS_THRESHOLD`` of the
attempted probes come back 2xx.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from apiprobe.tools.http import ProbeRequest

from .burst import BurstDispatcher, ProbeCustomizer
from .oracle import success_ratio

logger = logging.getLogger(__name__)

SUCCESS_THRESHOLD = 0.8
REQUESTS_PER_TEST = 30
CONCURRENT_REQUESTS = 5
TIME_BETWEEN_REQUESTS = 0.1

DEFAULT_REMEDIATION = (
    "Implement proper rate limiting. Consider using token bucket, fixed window, or sliding "
    "window algorithms. Limit the number of requests a client can make in a given time period."
)

_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

HEADER_SETS: tuple[dict[str, str], ...] = (
    {"User-Agent": _CHROME_UA},
    {
        "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/14.1.1 Safari/605.1.15"
    },
    {
        "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    },
    {"X-Forwarded-For": "127.0.0.1"},
    {"X-Forwarded-For": "192.168.1.1"},
    {"X-Forwarded-For": "10.0.0.1"},
    {"X-Real-IP": "127.0.0.1"},
    {"X-Real-IP": "192.168.1.1"},
    {"X-Real-IP": "10.0.0.1"},
    {"X-Originating-IP": "127.0.0.1"},
    {"X-Client-IP": "127.0.0.1"},
    {"X-Remote-IP": "127.0.0.1"},
    {"X-Remote-Addr": "127.0.0.1"},
    {"X-Host": "localhost"},
    {"Host": "localhost"},
)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_JSON_BODY = b'{"test":"data"}'


def _ip_rotation(index: int, request: ProbeRequest) -> ProbeRequest:
    address = f"192.168.1.{index % 255 + 1}"
    return request.with_headers({"X-Forwarded-For": address, "X-Real-IP": address})


def _header_manipulation(index: int, request: ProbeRequest) -> ProbeRequest:
    return request.with_headers(HEADER_SETS[index % len(HEADER_SETS)])


def _parameter_pollution(index: int, request: ProbeRequest) -> ProbeRequest:
    return request.with_query({f"dummy{index}": str(index)})


def _method_switching(index: int, request: ProbeRequest) -> ProbeRequest:
    method = HTTP_METHODS[index % len(HTTP_METHODS)]
    body = _JSON_BODY if method in _BODY_METHODS else None
    return request.with_method(method, body).with_headers({"Content-Type": "application/json"})


def _distributed_attack(index: int, request: ProbeRequest) -> ProbeRequest:
    return request.with_headers(
        {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            f"(KHTML, like Gecko) Chrome/91.0.4472.{index} Safari/537.36",
            "X-Forwarded-For": f"192.168.{(index // 255) % 255 + 1}.{index % 255 + 1}",
            "X-Real-IP": f"10.{(index // 65536) % 255 + 1}.{(index // 255) % 255 + 1}."
            f"{index % 255 + 1}",
            "X-Request-ID": f"req-{index}",
        }
    )


def _cache_manipulation(index: int, request: ProbeRequest) -> ProbeRequest:
    busted = request.with_query({"_": str(time.time_ns())})
    return busted.with_headers({"Cache-Control": "no-cache", "Pragma": "no-cache"})


@dataclass(frozen=True)
class BypassTechnique:
    """A named request-mutation strategy aimed at evading a rate limiter."""

    key: str
    name: str
    remediation: str
    customizer: ProbeCustomizer
    # Send the whole burst at once with no pacing instead of the evaluator's ceiling.
    full_concurrency: bool = False


BYPASS_TECHNIQUES: tuple[BypassTechnique, ...] = (
    BypassTechnique(
        key="ip-rotation",
        name="IP Rotation",
        remediation=(
            "Implement rate limiting based on a combination of IP address and other "
            "identifiers. Consider using API keys or tokens for authentication and rate "
            "limiting. Use a reputable IP reputation service to detect and block suspicious "
            "IP patterns."
        ),
        customizer=_ip_rotation,
    ),
    BypassTechnique(
        key="header-manipulation",
        name="Header Manipulation",
        remediation=(
            "Don't rely solely on headers for rate limiting decisions. Implement rate "
            "limiting based on authenticated user identity when possible. Validate and "
            "normalize headers before using them for rate limiting."
        ),
        customizer=_header_manipulation,
    ),
    BypassTechnique(
        key="parameter-pollution",
        name="Parameter Pollution",
        remediation=(
            "Implement rate limiting at the API endpoint level, not just at the URL level. "
            "Normalize request parameters before applying rate limiting. Consider "
            "implementing a request signature mechanism."
        ),
        customizer=_parameter_pollution,
    ),
    BypassTechnique(
        key="http-method-switching",
        name="HTTP Method Switching",
        remediation=(
            "Apply rate limiting consistently across all HTTP methods for the same resource. "
            "Implement proper method validation and restrict unused HTTP methods."
        ),
        customizer=_method_switching,
    ),
    BypassTechnique(
        key="distributed-attack",
        name="Distributed Attack",
        remediation=(
            "Implement global rate limiting across your infrastructure. Consider using a "
            "centralized rate limiting service. Implement progressive rate limiting that "
            "becomes more restrictive as traffic increases."
        ),
        customizer=_distributed_attack,
        full_concurrency=True,
    ),
    BypassTechnique(
        key="cache-manipulation",
        name="Cache Manipulation",
        remediation=(
            "Implement rate limiting at the application level, not just at the caching "
            "layer. Normalize URLs and parameters before applying rate limiting. Consider "
            "implementing token bucket or sliding window rate limiting algorithms."
        ),
        customizer=_cache_manipulation,
    ),
)

_TECHNIQUES_BY_KEY = {technique.key: technique for technique in BYPASS_TECHNIQUES}


def get_technique(key: str) -> BypassTechnique:
    """Look up a catalog technique by key."""
    try:
        return _TECHNIQUES_BY_KEY[key]
    except KeyError:
        available = ", ".join(_TECHNIQUES_BY_KEY)
        raise ValueError(f"Unknown bypass technique: {key}. Available: {available}") from None


@dataclass(frozen=True)
class BypassOutcome:
    """Result of replaying a burst through one technique."""

    technique: BypassTechnique
    attempted: int
    received: int
    successes: int
    ratio: float
    bypassed: bool
    inconclusive: bool = False

    @property
    def evidence(self) -> str:
        return (
            f"Successfully bypassed rate limiting using {self.technique.name} technique: "
            f"{self.successes}/{self.attempted} probes returned 2xx ({self.ratio:.0%})"
        )


def is_bypassed(successes: int, attempted: int, threshold: float = SUCCESS_THRESHOLD) -> bool:
    """Strict threshold test over the attempted probe count."""
    if attempted <= 0:
        return False
    return successes / attempted > threshold


class BypassEvaluator:
    """Test bypass techniques against a target already known to rate limit."""

    def __init__(
        self,
        dispatcher: BurstDispatcher,
        requests_per_test: int = REQUESTS_PER_TEST,
        concurrency: int = CONCURRENT_REQUESTS,
        threshold: float = SUCCESS_THRESHOLD,
    ):
        self.dispatcher = dispatcher
        self.requests_per_test = requests_per_test
        self.concurrency = concurrency
        self.threshold = threshold

    async def evaluate(
        self,
        request: ProbeRequest,
        technique: BypassTechnique,
        cancel_event: asyncio.Event | None = None,
    ) -> BypassOutcome:
        attempted = self.requests_per_test
        if technique.full_concurrency:
            concurrency, delay = max(attempted, 1), 0.0
        else:
            concurrency, delay = self.concurrency, None

        responses = await self.dispatcher.dispatch(
            request,
            attempted,
            concurrency,
            customizer=technique.customizer,
            cancel_event=cancel_event,
            delay=delay,
        )
        successes = sum(1 for response in responses if response.is_success)
        inconclusive = cancel_event is not None and cancel_event.is_set()
        outcome = BypassOutcome(
            technique=technique,
            attempted=attempted,
            received=len(responses),
            successes=successes,
            ratio=success_ratio(responses, attempted),
            bypassed=not inconclusive and is_bypassed(successes, attempted, self.threshold),
            inconclusive=inconclusive,
        )
        logger.info(
            "Bypass technique %s against %s: %d/%d successes (bypassed=%s)",
            technique.key,
            request.url,
            successes,
            attempted,
            outcome.bypassed,
        )
        return outcome

    async def evaluate_all(
        self,
        request: ProbeRequest,
        techniques: Sequence[BypassTechnique] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[BypassOutcome]:
        """Evaluate each technique independently, in catalog order."""
        outcomes: list[BypassOutcome] = []
        for technique in techniques or BYPASS_TECHNIQUES:
            if cancel_event is not None and cancel_event.is_set():
                break
            outcomes.append(await self.evaluate(request, technique, cancel_event))
        return outcomes

