"""Rate-limit presence detection from a calibration burst."""

from collections.abc import Iterable
from dataclasses import dataclass

from apiprobe.tools.http import ProbeResponse

TOO_MANY_REQUESTS = 429

RATE_LIMIT_HEADERS = (
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
    "RateLimit-Limit",
    "RateLimit-Remaining",
    "RateLimit-Reset",
)

_RATE_LIMIT_HEADERS_LOWER = frozenset(name.lower() for name in RATE_LIMIT_HEADERS)


@dataclass(frozen=True)
class RateLimitSignal:
    """Verdict of the oracle plus the rule and evidence that produced it."""

    present: bool
    rule: str | None = None
    evidence: str = ""

    def __bool__(self) -> bool:
        return self.present


def rate_limit_header(response: ProbeResponse) -> str | None:
    """Return ``"Name: value"`` for the first recognised rate-limit header, if any."""
    for key, values in response.headers.items():
        if key.lower() in _RATE_LIMIT_HEADERS_LOWER and values:
            return f"{key}: {values[0]}"
    return None


def success_ratio(responses: Iterable[ProbeResponse], attempted: int) -> float:
    """Share of *attempted* probes answered with a 2xx status.

    The denominator is the number of probes sent, never the number received,
    so dropped probes count against the ratio.
    """
    if attempted <= 0:
        return 0.0
    successes = sum(1 for response in responses if response.is_success)
    return successes / attempted


class RateLimitOracle:
    """Binary classifier: is the target rate limiting this burst?

    A 429 anywhere in the burst wins, then any recognised rate-limit header.
    A limiter that does neither within the sample goes undetected.
    """

    def signal(self, responses: Iterable[ProbeResponse]) -> RateLimitSignal:
        batch = list(responses)
        limited = [r for r in batch if r.status_code == TOO_MANY_REQUESTS]
        if limited:
            return RateLimitSignal(
                present=True,
                rule="status",
                evidence=f"{len(limited)}/{len(batch)} responses returned HTTP 429",
            )
        for response in batch:
            header = rate_limit_header(response)
            if header:
                return RateLimitSignal(present=True, rule="header", evidence=header)
        return RateLimitSignal(present=False)

    def detect(self, responses: Iterable[ProbeResponse]) -> bool:
        return self.signal(responses).present
