"""Exception hierarchy for apiprobe."""


class ApiProbeError(Exception):
    """Base class for apiprobe errors."""


class TransportError(ApiProbeError):
    """A probe could not be delivered or answered (connect error, timeout, ...)."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class TargetConfigError(ApiProbeError):
    """The target configuration cannot be used to run a tester."""


class TesterError(ApiProbeError):
    """A tester could not complete; ``result`` holds whatever it produced."""

    def __init__(self, tester: str, result, message: str):
        super().__init__(f"{tester} failed: {message}")
        self.tester = tester
        self.result = result


class RegistryRunError(ApiProbeError):
    """A tester failed during ``run_all``; carries the results collected before it."""

    def __init__(self, tester: str, results: list, message: str, failed_result=None):
        super().__init__(f"{tester} failed: {message}")
        self.tester = tester
        self.results = results
        self.failed_result = failed_result
