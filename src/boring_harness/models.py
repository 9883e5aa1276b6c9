"""Test records shared by the worker driver, the artifact orchestrator
and the reporter.

``TestInfo`` is the live, mutable view of one running test (or hook);
``TestResult`` is the record of one finished attempt, and ``TestCase``
groups all attempts of one test for reporting.
"""

from __future__ import annotations

import hashlib
import re
import traceback
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable


class TestStatus(str, Enum):
    """Status of one test attempt."""
    __test__ = False

    PASSED = 'passed'
    FAILED = 'failed'
    TIMED_OUT = 'timedOut'
    INTERRUPTED = 'interrupted'
    SKIPPED = 'skipped'


class HookType(str, Enum):
    BEFORE_ALL = 'beforeAll'
    AFTER_ALL = 'afterAll'
    BEFORE_EACH = 'beforeEach'
    AFTER_EACH = 'afterEach'

    @property
    def is_worker_wide(self) -> bool:
        return self in (HookType.BEFORE_ALL, HookType.AFTER_ALL)


class Outcome(str, Enum):
    """Aggregate outcome of a test across all of its attempts."""

    SKIPPED = 'skipped'
    EXPECTED = 'expected'
    UNEXPECTED = 'unexpected'
    FLAKY = 'flaky'


# ── Value records ──────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Location:
    file: str
    line: int = 0
    column: int = 0


@dataclass(slots=True)
class Attachment:
    """A file or inline blob attached to a test result."""

    name: str
    content_type: str
    path: Path | None = None
    body: bytes | None = None


@dataclass(slots=True)
class TestError:
    """An error reported for a test, or a fatal error of the run.

    Attributes:
        message: Short message, used when no stack is available.
        stack: Raw stack text: message lines followed by frame lines.
        value: Repr of a non-exception value that was raised/rejected.
        not_fatal: Set on errors that were already reported as part of
            a test so the reporter does not count them again as fatal.
    """
    __test__ = False

    message: str = ''
    stack: str = ''
    value: str = ''
    location: Location | None = None
    not_fatal: bool = False

    @classmethod
    def from_exception(cls, exc: BaseException, *, not_fatal: bool = False) -> TestError:
        """Render *exc* as message lines followed by frames, innermost first."""
        header = ''.join(traceback.format_exception_only(type(exc), exc)).rstrip()
        frames = traceback.extract_tb(exc.__traceback__)
        lines = [header]
        for frame in reversed(frames):
            lines.append(f'  File "{frame.filename}", line {frame.lineno}, in {frame.name}')
        return cls(
            message=str(exc) or header,
            stack='\n'.join(lines),
            not_fatal=not_fatal,
        )


@dataclass(frozen=True, slots=True)
class OutputChunk:
    chunk: str | bytes
    stream: str = 'stdout'  # 'stdout' or 'stderr'

    @property
    def text(self) -> str:
        if isinstance(self.chunk, bytes):
            return self.chunk.decode('utf-8', errors='replace')
        return self.chunk


@dataclass(slots=True)
class TestStep:
    __test__ = False

    title: str
    category: str
    location: Location | None = None
    error: BaseException | None = None
    completed: bool = False

    def complete(self, error: BaseException | None = None) -> None:
        self.error = error
        self.completed = True


@dataclass(frozen=True, slots=True)
class ProjectInfo:
    name: str = ''
    test_dir: Path = Path('.')
    output_dir: Path = Path('test-results')


@dataclass(frozen=True, slots=True)
class WorkerInfo:
    worker_index: int = 0
    project: ProjectInfo = field(default_factory=ProjectInfo)


# ── Live test info ─────────────────────────────────────────────────


FailureCallback = Callable[[], Awaitable[None]]


@dataclass
class TestInfo:
    """Mutable state of the test (or hook) currently being executed.

    Attributes:
        title_path: Relative file followed by describe titles and the
            test title.
        hook_type: Set while a hook, rather than a test body, runs.
        timeout: Timeout in milliseconds; 0 disables it.
    """
    __test__ = False

    title_path: tuple[str, ...]
    file: str
    line: int = 0
    column: int = 0
    project: ProjectInfo = field(default_factory=ProjectInfo)
    worker_index: int = 0
    retry: int = 0
    expected_status: TestStatus = TestStatus.PASSED
    status: TestStatus = TestStatus.PASSED
    timeout: float = 30_000
    hook_type: HookType | None = None
    snapshot_suffix: str = ''
    attachments: list[Attachment] = field(default_factory=list)
    errors: list[TestError] = field(default_factory=list)
    steps: list[TestStep] = field(default_factory=list)
    _failure_callbacks: dict[FailureCallback, str] = field(
        default_factory=dict, init=False, repr=False,
    )

    @property
    def test_id(self) -> str:
        return ' › '.join(self.title_path)

    @property
    def failed(self) -> bool:
        return self.status != self.expected_status

    @property
    def output_dir(self) -> Path:
        titles = '-'.join(self.title_path[1:])
        base = f'{Path(self.file).stem}-{titles}'
        if self.project.name:
            base = f'{base}-{self.project.name}'
        name = _sanitize_for_path(base)
        if self.retry:
            name = f'{name}-retry{self.retry}'
        return self.project.output_dir / name

    def output_path(self, *segments: str) -> Path:
        """Return a path inside the test output directory, creating it."""
        out = self.output_dir
        out.mkdir(parents=True, exist_ok=True)
        return out.joinpath(*segments)

    def set_timeout(self, timeout: float) -> None:
        self.timeout = timeout

    def add_step(
        self,
        title: str,
        *,
        category: str,
        location: Location | None = None,
    ) -> TestStep:
        step = TestStep(title=title, category=category, location=location)
        self.steps.append(step)
        return step

    def on_failure(self, callback: FailureCallback, title: str) -> None:
        """Run *callback* once, as soon as the test fails."""
        self._failure_callbacks[callback] = title

    def remove_failure_callback(self, callback: FailureCallback) -> None:
        self._failure_callbacks.pop(callback, None)

    def failure_callbacks(self) -> list[tuple[FailureCallback, str]]:
        return list(self._failure_callbacks.items())


# ── Finished records ───────────────────────────────────────────────


@dataclass
class TestResult:
    """Record of one finished attempt of a test."""
    __test__ = False

    status: TestStatus
    retry: int = 0
    duration: float = 0.0
    attachments: list[Attachment] = field(default_factory=list)
    errors: list[TestError] = field(default_factory=list)
    output: list[OutputChunk] = field(default_factory=list)

    @classmethod
    def from_test_info(cls, info: TestInfo, duration: float = 0.0) -> TestResult:
        return cls(
            status=info.status,
            retry=info.retry,
            duration=duration,
            attachments=list(info.attachments),
            errors=list(info.errors),
        )


@dataclass
class TestCase:
    """All attempts of one test.

    ``title_path`` is ``(root, project, file, *describes, title)``; the
    root and project entries may be empty strings.
    """
    __test__ = False

    title_path: tuple[str, ...]
    location: Location
    expected_status: TestStatus = TestStatus.PASSED
    retries: int = 0
    results: list[TestResult] = field(default_factory=list)
    parallel: bool = False

    @property
    def project_name(self) -> str:
        return self.title_path[1] if len(self.title_path) > 1 else ''

    @property
    def titles(self) -> tuple[str, ...]:
        return self.title_path[3:]

    @property
    def title(self) -> str:
        return self.title_path[-1] if self.title_path else ''

    def outcome(self) -> Outcome:
        attempted = [
            r for r in self.results
            if r.status not in (TestStatus.SKIPPED, TestStatus.INTERRUPTED)
        ]
        if not attempted:
            return Outcome.SKIPPED
        if all(r.status == self.expected_status for r in attempted):
            return Outcome.EXPECTED
        if any(r.status == self.expected_status for r in attempted):
            return Outcome.FLAKY
        return Outcome.UNEXPECTED

    def ok(self) -> bool:
        return self.outcome() in (Outcome.EXPECTED, Outcome.FLAKY, Outcome.SKIPPED)


@dataclass
class Suite:
    tests: list[TestCase] = field(default_factory=list)

    def all_tests(self) -> list[TestCase]:
        return list(self.tests)


class RunStatus(str, Enum):
    PASSED = 'passed'
    FAILED = 'failed'
    TIMED_OUT = 'timedout'
    INTERRUPTED = 'interrupted'


@dataclass(frozen=True, slots=True)
class RunResult:
    """Final status of a whole run."""

    status: RunStatus = RunStatus.PASSED


# ── Helpers ────────────────────────────────────────────────────────


_UNSAFE_PATH_CHARS = re.compile(r'[^A-Za-z0-9_]+')
_MAX_DIR_NAME = 60


def _sanitize_for_path(text: str) -> str:
    name = _UNSAFE_PATH_CHARS.sub('-', text).strip('-')
    if len(name) <= _MAX_DIR_NAME:
        return name
    digest = hashlib.sha1(text.encode('utf-8')).hexdigest()[:5]
    return f'{name[:_MAX_DIR_NAME].rstrip("-")}-{digest}'

