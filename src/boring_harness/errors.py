"""Error types for fixture resolution, artifact capture and guards.

Registration and resolution errors are fatal to the step that raised them
and surface as setup failures of the affected test. Capture errors are
best-effort: the orchestrator logs and swallows them, they never change a
test outcome.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for all boring-harness errors."""


# ── Fixture errors ─────────────────────────────────────────────────


class FixtureError(HarnessError):
    """Raised when fixtures cannot be registered or resolved."""


class DuplicateFixture(FixtureError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Fixture "{name}" is already registered')
        self.name = name


class UnknownFixture(FixtureError):
    def __init__(self, name: str, requested_by: str | None = None) -> None:
        if requested_by:
            message = f'Fixture "{name}" (required by "{requested_by}") is not registered'
        else:
            message = f'Fixture "{name}" is not registered'
        super().__init__(message)
        self.name = name
        self.requested_by = requested_by


class UnknownOption(FixtureError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f'"{name}" is not an option fixture and cannot be overridden'
        )
        self.name = name


class CyclicDependency(FixtureError):
    """Raised when fixture dependencies form a cycle.

    Attributes:
        cycle: Fixture names along the cycle, first name repeated last.
    """

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            'Fixtures are forming a dependency cycle: ' + ' -> '.join(cycle)
        )
        self.cycle = tuple(cycle)


class FixtureScopeMismatch(FixtureError):
    def __init__(self, name: str, dependency: str) -> None:
        super().__init__(
            f'Worker fixture "{name}" cannot depend on test fixture "{dependency}"'
        )
        self.name = name
        self.dependency = dependency


class UnsupportedFixtureUsage(FixtureError):
    """Raised when a per-test capability is requested from a worker-wide hook."""

    def __init__(self, hook_type: str, fixtures: str = '"context" and "page"') -> None:
        super().__init__('\n'.join([
            f'{fixtures} fixtures are not supported in "{hook_type}" since '
            'they are created on a per-test basis.',
            'If you would like to reuse a single page between tests, create '
            'a context manually with browser.new_context().',
            'If you would like to configure your page before each test, do '
            'that in a beforeEach hook instead.',
        ]))
        self.hook_type = hook_type


# ── Capture errors ─────────────────────────────────────────────────


class CaptureFailure(HarnessError):
    """A screenshot, trace or scratch-file operation failed.

    Always swallowed by the orchestrator; exists so that capture helpers
    can raise a single type that callers catch at the capture boundary.
    """


class TraceStateError(HarnessError):
    """Raised on an illegal trace session transition."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f'Cannot {operation} a trace session in state "{state}"')
        self.operation = operation
        self.state = state


# ── Guards ─────────────────────────────────────────────────────────


class ReentryError(HarnessError):
    """Raised when a process-wide init-once guard is claimed twice."""

    def __init__(self, key: str, first: str, second: str) -> None:
        super().__init__(
            f'"{key}" was initialized a second time.\n'
            f'First:\n{first}\n\nSecond:\n{second}'
        )
        self.key = key
        self.first = first
        self.second = second
