"""API security testing: burst dispatch, rate-limit oracle, bypass evaluation and testers."""

from .base import SecurityTester, default_executor_factory
from .burst import BurstDispatcher, ResponseCollector
from .bypass import BYPASS_TECHNIQUES, BypassEvaluator, BypassOutcome, BypassTechnique
from .models import Finding, Severity, TargetConfig, TestResult, VulnerabilityType
from .oracle import RateLimitOracle, RateLimitSignal
from .registry import (
    SecurityTestRegistry,
    create_default_registry,
    create_default_testers,
    get_default_registry,
)

__all__ = [
    "BYPASS_TECHNIQUES",
    "BurstDispatcher",
    "BypassEvaluator",
    "BypassOutcome",
    "BypassTechnique",
    "Finding",
    "RateLimitOracle",
    "RateLimitSignal",
    "ResponseCollector",
    "SecurityTestRegistry",
    "SecurityTester",
    "Severity",
    "TargetConfig",
    "TestResult",
    "VulnerabilityType",
    "create_default_registry",
    "create_default_testers",
    "default_executor_factory",
    "get_default_registry",
]
