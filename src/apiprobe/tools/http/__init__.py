"""HTTP helpers for apiprobe."""

from .client import (
    HTTPProbeExecutor,
    ProbeExecutor,
    ProbeRequest,
    ProbeResponse,
    merge_headers,
    to_probe_response,
)

__all__ = [
    "HTTPProbeExecutor",
    "ProbeExecutor",
    "ProbeRequest",
    "ProbeResponse",
    "merge_headers",
    "to_probe_response",
]
