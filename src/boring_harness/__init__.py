"""boring-harness: scoped fixtures, artifact capture and failure reporting
for browser test runners."""

from .browser import install_browser_fixtures
from .config import HarnessConfig, HarnessConfigError, load_config
from .errors import HarnessError
from .fixtures import (
    ALL_HOOKS_INCLUDED,
    Acquisition,
    FixtureDefinition,
    FixtureRegistry,
    Hook,
    Scope,
    WorkerRunner,
)
from .models import (
    HookType,
    Outcome,
    RunResult,
    RunStatus,
    Suite,
    TestCase,
    TestError,
    TestInfo,
    TestResult,
    TestStatus,
)
from .reporting import ReportFormatter

__version__ = '0.1.0'

__all__ = [
    'ALL_HOOKS_INCLUDED',
    'Acquisition',
    'FixtureDefinition',
    'FixtureRegistry',
    'HarnessConfig',
    'HarnessConfigError',
    'HarnessError',
    'Hook',
    'HookType',
    'Outcome',
    'ReportFormatter',
    'RunResult',
    'RunStatus',
    'Scope',
    'Suite',
    'TestCase',
    'TestError',
    'TestInfo',
    'TestResult',
    'TestStatus',
    'WorkerRunner',
    'install_browser_fixtures',
    'load_config',
]
