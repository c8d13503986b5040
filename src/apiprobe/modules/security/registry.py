"""Registry of security testers, one per vulnerability category."""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Sequence

from apiprobe.errors import RegistryRunError, TesterError

from .base import ExecutorFactory, SecurityTester
from .models import TargetConfig, TestResult, VulnerabilityType

logger = logging.getLogger(__name__)


class SecurityTestRegistry:
    """Hold testers keyed by category and run them against a target."""

    def __init__(self, testers: Iterable[SecurityTester] | None = None):
        self._testers: dict[VulnerabilityType, SecurityTester] = {}
        for tester in testers or []:
            self.register(tester)

    def register(self, tester: SecurityTester) -> None:
        """Register or replace the tester for ``tester.get_type()``."""
        key = tester.get_type()
        previous = self._testers.get(key)
        if previous is not None and previous is not tester:
            logger.debug(
                "Replacing %s with %s for %s", previous.get_name(), tester.get_name(), key.label
            )
        self._testers[key] = tester

    def get(self, vuln_type: VulnerabilityType) -> SecurityTester | None:
        return self._testers.get(vuln_type)

    def get_all(self) -> list[SecurityTester]:
        """Return a snapshot of the registered testers."""
        return list(self._testers.values())

    def available_types(self) -> list[VulnerabilityType]:
        return sorted(self._testers)

    def __len__(self) -> int:
        return len(self._testers)

    def __contains__(self, vuln_type: object) -> bool:
        return vuln_type in self._testers

    async def run_all(
        self,
        target: TargetConfig,
        cancel_event: asyncio.Event | None = None,
        types: Sequence[VulnerabilityType] | None = None,
        progress: Callable[[str], None] | None = None,
    ) -> list[TestResult]:
        """Run every registered tester (or the selected *types*) once.

        Fail-fast: the first tester that raises stops the run with a
        ``RegistryRunError`` carrying the results gathered so far; later
        testers are not invoked.
        """
        results: list[TestResult] = []
        for tester in self.select(types):
            started = time.perf_counter()
            if progress:
                progress(f"● [{tester.get_name()}] started")
            try:
                result = await tester.test(target, cancel_event)
            except Exception as exc:
                if progress:
                    elapsed = time.perf_counter() - started
                    progress(f"! [{tester.get_name()}] failed after {elapsed:.1f}s: {exc}")
                failed = exc.result if isinstance(exc, TesterError) else None
                message = str(exc.__cause__ or exc)
                raise RegistryRunError(tester.get_name(), results, message, failed) from exc
            results.append(result)
            if progress:
                elapsed = time.perf_counter() - started
                progress(
                    f"✓ [{tester.get_name()}] completed: "
                    f"{len(result.vulnerabilities)} findings ({elapsed:.1f}s)"
                )
        return results

    def select(self, types: Sequence[VulnerabilityType] | None) -> list[SecurityTester]:
        """Return the testers for *types* (all when empty); ValueError for unregistered ones."""
        if not types:
            return self.get_all()

        missing = sorted({t for t in types if t not in self._testers})
        if missing:
            available = ", ".join(t.label for t in self.available_types()) or "none"
            names = ", ".join(t.label for t in missing)
            raise ValueError(f"No tester registered for: {names}. Available: {available}")
        return [self._testers[t] for t in types]


def create_default_testers(
    executor_factory: ExecutorFactory | None = None,
) -> list[SecurityTester]:
    """Return the built-in tester catalog in registration order."""
    from .testers import (
        BrokenAuthTester,
        BrokenFunctionLevelAuthTester,
        BrokenObjectLevelAuthTester,
        ExcessiveDataExposureTester,
        ImproperAssetsMgmtTester,
        InjectionTester,
        InsufficientLoggingTester,
        LackOfResourcesTester,
        MassAssignmentTester,
        RateLimitBypassTester,
        SecurityMisconfigTester,
    )

    return [
        BrokenObjectLevelAuthTester(executor_factory=executor_factory),
        BrokenAuthTester(executor_factory=executor_factory),
        ExcessiveDataExposureTester(executor_factory=executor_factory),
        LackOfResourcesTester(executor_factory=executor_factory),
        BrokenFunctionLevelAuthTester(executor_factory=executor_factory),
        MassAssignmentTester(executor_factory=executor_factory),
        SecurityMisconfigTester(executor_factory=executor_factory),
        InjectionTester(executor_factory=executor_factory),
        ImproperAssetsMgmtTester(executor_factory=executor_factory),
        InsufficientLoggingTester(executor_factory=executor_factory),
        RateLimitBypassTester(executor_factory=executor_factory),
    ]


def create_default_registry(
    executor_factory: ExecutorFactory | None = None,
) -> SecurityTestRegistry:
    """Construct a registry holding the built-in catalog."""
    return SecurityTestRegistry(create_default_testers(executor_factory))


_default_registry: SecurityTestRegistry | None = None


def get_default_registry() -> SecurityTestRegistry:
    """Return the process-wide registry, building it on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = create_default_registry()
    return _default_registry


def reset_default_registry() -> None:
    """Drop the process-wide registry (tests only)."""
    global _default_registry
    _default_registry = None
