"""Built-in security testers, one per vulnerability category."""

from .assets import ImproperAssetsMgmtTester
from .auth import BrokenAuthTester
from .bola import BrokenObjectLevelAuthTester
from .data_exposure import ExcessiveDataExposureTester
from .function_auth import BrokenFunctionLevelAuthTester
from .injection import InjectionTester
from .insufficient_logging import InsufficientLoggingTester
from .mass_assignment import MassAssignmentTester
from .misconfig import SecurityMisconfigTester
from .ratelimit import LackOfResourcesTester
from .ratelimit_bypass import RateLimitBypassTester

__all__ = [
    "BrokenAuthTester",
    "BrokenFunctionLevelAuthTester",
    "BrokenObjectLevelAuthTester",
    "ExcessiveDataExposureTester",
    "ImproperAssetsMgmtTester",
    "InjectionTester",
    "InsufficientLoggingTester",
    "LackOfResourcesTester",
    "MassAssignmentTester",
    "RateLimitBypassTester",
    "SecurityMisconfigTester",
]
