"""Human-readable run summaries and failure blocks.

``ReportFormatter`` is the base of terminal reporters: it collects
per-file durations and fatal errors during the run and renders the
epilogue (failures, slow files, summary counts) at the end. The
module-level ``format_*`` functions are shared with reporters that render
individual failures as they happen.
"""

from __future__ import annotations

import math
import os
import sys
import time
from dataclasses import dataclass, field
from typing import TextIO

from ..config import HarnessConfig
from ..models import (
    Location,
    OutputChunk,
    Outcome,
    RunResult,
    RunStatus,
    Suite,
    TestCase,
    TestError,
    TestResult,
    TestStatus,
    TestStep,
)
from .ansi import fit_to_width, strip_ansi
from .code_frame import code_frame
from .colors import Colors, colors as default_colors
from .stack import prepare_error_stack

PAD_WIDTH = 100
MAX_TEXT_ATTACHMENT = 300
TRACE_VIEWER_COMMAND = 'boring-harness show-trace'


@dataclass(frozen=True, slots=True)
class FormattedError:
    message: str
    location: Location | None = None


@dataclass(frozen=True, slots=True)
class Annotation:
    """Machine-readable pointer to one failure, for CI annotations."""

    title: str
    message: str
    location: Location | None = None


@dataclass(frozen=True, slots=True)
class FailureReport:
    message: str
    annotations: list[Annotation] = field(default_factory=list)


@dataclass(slots=True)
class Summary:
    skipped: int = 0
    expected: int = 0
    interrupted: list[TestCase] = field(default_factory=list)
    unexpected: list[TestCase] = field(default_factory=list)
    flaky: list[TestCase] = field(default_factory=list)
    failures_to_print: list[TestCase] = field(default_factory=list)
    fatal_errors: list[TestError] = field(default_factory=list)


class ReportFormatter:
    """Base reporter.

    Args:
        omit_failures: Skip the failure blocks in the epilogue.
        colors: Color helpers; detected from the environment by default.
        out: Stream the epilogue is written to.
    """

    def __init__(
        self,
        *,
        omit_failures: bool = False,
        colors: Colors | None = None,
        out: TextIO | None = None,
    ) -> None:
        self.duration = 0.0
        self.config = HarnessConfig()
        self.suite = Suite()
        self.total_test_count = 0
        self.result: RunResult | None = None
        self.file_durations: dict[str, float] = {}
        self.colors = colors or default_colors
        self._out = out or sys.stdout
        self._omit_failures = omit_failures
        self._fatal_errors: list[TestError] = []
        self._started = 0.0
        try:
            self._tty_width_override = int(os.environ.get('HARNESS_TTY_WIDTH', ''))
        except ValueError:
            self._tty_width_override = 0

    # ── Run events ─────────────────────────────────────────────────

    def on_begin(self, config: HarnessConfig, suite: Suite) -> None:
        self._started = time.monotonic()
        self.config = config
        self.suite = suite
        self.total_test_count = len(suite.all_tests())

    def on_stdout(
        self,
        chunk: str | bytes,
        test: TestCase | None = None,
        result: TestResult | None = None,
    ) -> None:
        self._append_output(OutputChunk(chunk, 'stdout'), result)

    def on_stderr(
        self,
        chunk: str | bytes,
        test: TestCase | None = None,
        result: TestResult | None = None,
    ) -> None:
        self._append_output(OutputChunk(chunk, 'stderr'), result)

    @staticmethod
    def _append_output(output: OutputChunk, result: TestResult | None) -> None:
        if result is not None:
            result.output.append(output)

    def on_test_end(self, test: TestCase, result: TestResult) -> None:
        # Parallel tests overlap in time; their durations say nothing
        # about how long a file takes.
        if test.parallel:
            return
        key = file_and_project(self.config, test)
        self.file_durations[key] = self.file_durations.get(key, 0) + result.duration

    def on_error(self, error: TestError) -> None:
        if not error.not_fatal:
            self._fatal_errors.append(error)

    def on_end(self, result: RunResult) -> None:
        self.duration = (time.monotonic() - self._started) * 1000
        self.result = result

    # ── Layout ─────────────────────────────────────────────────────

    def tty_width(self) -> int:
        if self._tty_width_override:
            return self._tty_width_override
        try:
            if self._out.isatty():
                return os.get_terminal_size(self._out.fileno()).columns
        except (AttributeError, OSError, ValueError):
            pass
        return 0

    def pad_width(self, prefix: str | None = None) -> int:
        """Width to pad headers to: the terminal minus *prefix*, else PAD_WIDTH."""
        width = self.tty_width()
        if not width:
            return PAD_WIDTH
        return max(0, width - len(strip_ansi(prefix or '')))

    def fit_to_screen(self, line: str, prefix: str | None = None) -> str:
        width = self.tty_width()
        if not width:
            return line
        return fit_to_width(line, width, prefix)

    # ── Messages ───────────────────────────────────────────────────

    def generate_starting_message(self) -> str:
        jobs = self.config.jobs
        count = self.total_test_count
        shard = self.config.shard
        shard_details = f', shard {shard.current} of {shard.total}' if shard else ''
        return (
            f'\nRunning {count} test{"s" if count != 1 else ""} '
            f'using {jobs} worker{"s" if jobs != 1 else ""}{shard_details}'
        )

    def get_slow_tests(self) -> list[tuple[str, float]]:
        slow = self.config.report_slow_tests
        if slow is None:
            return []
        durations = sorted(self.file_durations.items(), key=lambda kv: kv[1], reverse=True)
        count = min(len(durations), slow.max or len(durations))
        return [entry for entry in durations if entry[1] > slow.threshold][:count]

    def generate_summary(self) -> Summary:
        summary = Summary(fatal_errors=list(self._fatal_errors))
        interrupted_to_print = []
        for test in self.suite.all_tests():
            outcome = test.outcome()
            if outcome == Outcome.SKIPPED:
                # Interrupted tests with nothing to report count as skipped.
                if any(r.errors for r in test.results):
                    summary.interrupted.append(test)
                    interrupted_to_print.append(test)
                else:
                    summary.skipped += 1
            elif outcome == Outcome.EXPECTED:
                summary.expected += 1
            elif outcome == Outcome.UNEXPECTED:
                summary.unexpected.append(test)
            elif outcome == Outcome.FLAKY:
                summary.flaky.append(test)
        summary.failures_to_print = [
            *summary.unexpected, *summary.flaky, *interrupted_to_print,
        ]
        return summary

    def generate_summary_message(self, summary: Summary) -> str:
        c = self.colors
        width = self.pad_width()
        tokens = []
        for label, tests, paint in (
            ('failed', summary.unexpected, c.red),
            ('interrupted', summary.interrupted, c.yellow),
            ('flaky', summary.flaky, c.yellow),
        ):
            if not tests:
                continue
            tokens.append(paint(f'  {len(tests)} {label}'))
            for test in tests:
                header = format_test_header(self.config, test, '    ', width=width, colors=c)
                tokens.append(paint(header))
        if summary.skipped:
            tokens.append(c.yellow(f'  {summary.skipped} skipped'))
        if summary.expected:
            tokens.append(
                c.green(f'  {summary.expected} passed')
                + c.dim(f' ({format_duration(self.duration)})')
            )
        if self.result is not None and self.result.status == RunStatus.TIMED_OUT:
            tokens.append(c.red(
                f'  Timed out waiting {self.config.global_timeout / 1000:g}s '
                'for the entire test run'
            ))
        fatal = len(summary.fatal_errors)
        if fatal:
            what = (
                '1 error was not a part of any test' if fatal == 1
                else f'{fatal} errors were not a part of any test'
            )
            tokens.append(c.red(f'  {what}, see above for details'))
        return '\n'.join(tokens)

    def epilogue(self, full: bool) -> None:
        summary = self.generate_summary()
        message = self.generate_summary_message(summary)
        if full and summary.failures_to_print and not self._omit_failures:
            self._print_failures(summary.failures_to_print)
        self._print_slow_tests()
        self._print_summary(message)

    def will_retry(self, test: TestCase) -> bool:
        return test.outcome() == Outcome.UNEXPECTED and len(test.results) <= test.retries

    # ── Printing ───────────────────────────────────────────────────

    def _print(self, text: str = '') -> None:
        print(text, file=self._out)

    def _print_failures(self, failures: list[TestCase]) -> None:
        self._print()
        width = self.pad_width()
        for index, test in enumerate(failures, start=1):
            self._print(format_failure(
                self.config, test, index=index, width=width, colors=self.colors,
            ).message)

    def _print_slow_tests(self) -> None:
        c = self.colors
        slow = self.get_slow_tests()
        for file, duration in slow:
            self._print(
                c.yellow('  Slow test file: ') + file
                + c.yellow(f' ({format_duration(duration)})')
            )
        if slow:
            self._print(c.yellow('  Consider splitting slow test files to speed up parallel execution'))

    def _print_summary(self, message: str) -> None:
        if message.strip():
            self._print()
            self._print(message)


# ── Failure rendering ──────────────────────────────────────────────


def format_failure(
    config: HarnessConfig,
    test: TestCase,
    *,
    index: int | None = None,
    include_stdio: bool = False,
    include_attachments: bool = True,
    width: int = PAD_WIDTH,
    colors: Colors | None = None,
) -> FailureReport:
    """Render every failed result of *test* as one block."""
    c = colors or default_colors
    lines = []
    title = format_test_title(config, test)
    annotations = []
    header = format_test_header(config, test, '  ', index, width=width, colors=c)
    lines.append(c.red(header))

    for result in test.results:
        errors = format_result_failure(config, test, result, '    ', c.enabled, colors=c)
        if not errors:
            continue
        result_lines = []
        retry_lines = []
        if result.retry:
            retry = pad(f'    Retry #{result.retry}', '-', width=width, colors=c)
            retry_lines = ['', c.gray(retry)]
        result_lines.extend(retry_lines)
        result_lines.extend('\n' + error.message for error in errors)

        if include_attachments:
            result_lines.extend(_format_attachments(result, c, width))

        if include_stdio and result.output:
            text = ''.join(
                c.red(chunk.text) if chunk.stream == 'stderr' else chunk.text
                for chunk in result.output
            )
            result_lines.append('')
            result_lines.append(
                c.gray(pad('--- Test output', '-', width=width, colors=c)) + '\n\n' + text + '\n'
                + pad('', '-', width=width, colors=c)
            )

        for error in errors:
            annotations.append(Annotation(
                title=title,
                message='\n'.join([header, *retry_lines, error.message]),
                location=error.location,
            ))
        lines.extend(result_lines)

    lines.append('')
    return FailureReport(message='\n'.join(lines), annotations=annotations)


def _format_attachments(result: TestResult, c: Colors, width: int = PAD_WIDTH) -> list[str]:
    lines = []
    for number, attachment in enumerate(result.attachments, start=1):
        printable = attachment.content_type.startswith('text/') and attachment.body
        if attachment.path is None and not printable:
            continue
        lines.append('')
        lines.append(c.cyan(pad(
            f'    attachment #{number}: {attachment.name} ({attachment.content_type})',
            '-',
            width=width,
            colors=c,
        )))
        if attachment.path is not None:
            relative = os.path.relpath(attachment.path)
            lines.append(c.cyan(f'    {relative}'))
            if attachment.name == 'trace':
                lines.append(c.cyan('    Usage:'))
                lines.append('')
                lines.append(c.cyan(f'        {TRACE_VIEWER_COMMAND} {relative}'))
                lines.append('')
        else:
            text = attachment.body.decode('utf-8', errors='replace')
            if len(text) > MAX_TEXT_ATTACHMENT:
                text = text[:MAX_TEXT_ATTACHMENT] + '...'
            lines.append(c.cyan(f'    {text}'))
        lines.append(c.cyan(pad('   ', '-', width=width, colors=c)))
    return lines


def format_result_failure(
    config: HarnessConfig,
    test: TestCase,
    result: TestResult,
    initial_indent: str,
    highlight_code: bool,
    *,
    colors: Colors | None = None,
) -> list[FormattedError]:
    c = colors or default_colors
    details = []
    if result.status == TestStatus.PASSED and test.expected_status == TestStatus.FAILED:
        details.append(FormattedError(indent(c.red('Expected to fail, but passed.'), initial_indent)))
    if result.status == TestStatus.INTERRUPTED:
        details.append(FormattedError(indent(c.red('Test was interrupted.'), initial_indent)))
    for error in result.errors:
        formatted = format_error(config, error, highlight_code, test.location.file, colors=c)
        details.append(FormattedError(
            indent(formatted.message, initial_indent), formatted.location,
        ))
    return details


def format_error(
    config: HarnessConfig,
    error: TestError,
    highlight_code: bool,
    file: str | None = None,
    *,
    colors: Colors | None = None,
) -> FormattedError:
    """Render *error*: message, code frame at the user location, raw stack."""
    c = colors or default_colors
    if not error.stack:
        return FormattedError(error.message or error.value)

    parsed = prepare_error_stack(error.stack)
    tokens = [parsed.message]
    location = parsed.location
    if location is not None:
        try:
            with open(location.file, encoding='utf-8') as fh:
                source = fh.read()
        except (OSError, UnicodeDecodeError):
            # Unreadable source only loses the code frame.
            source = None
        if source is not None:
            frame = code_frame(source, location.line, location.column, highlight=highlight_code)
            if not file or os.path.realpath(file) != location.file:
                tokens.append('')
                tokens.append(
                    c.gray('   at ') + f'{relative_file_path(config, location.file)}:{location.line}'
                )
            tokens.append('')
            tokens.append(frame)
    tokens.append('')
    tokens.append(c.dim('\n'.join(parsed.frame_lines)))
    return FormattedError('\n'.join(tokens), location)


# ── Titles ─────────────────────────────────────────────────────────


def relative_file_path(config: HarnessConfig, file: str) -> str:
    try:
        relative = os.path.relpath(file, config.root_dir)
    except ValueError:
        relative = ''
    if not relative or relative == '.':
        return os.path.basename(file)
    return relative


def file_and_project(config: HarnessConfig, test: TestCase) -> str:
    project = test.project_name
    relative = relative_file_path(config, test.location.file)
    return f'[{project}] › {relative}' if project else relative


def format_test_title(
    config: HarnessConfig,
    test: TestCase,
    step: TestStep | None = None,
    omit_location: bool = False,
) -> str:
    """``[project] › file:line:column › describe › title[ › step]``."""
    relative = relative_file_path(config, test.location.file)
    location = relative if omit_location else (
        f'{relative}:{test.location.line}:{test.location.column}'
    )
    project = f'[{test.project_name}] › ' if test.project_name else ''
    step_suffix = f' › {step.title}' if step is not None else ''
    return f'{project}{location} › {" › ".join(test.titles)}{step_suffix}'


def format_test_header(
    config: HarnessConfig,
    test: TestCase,
    indent_text: str,
    index: int | None = None,
    *,
    width: int = PAD_WIDTH,
    colors: Colors | None = None,
) -> str:
    title = format_test_title(config, test)
    numbering = f'{index}) ' if index else ''
    return pad(f'{indent_text}{numbering}{title}', '=', width=width, colors=colors)


# ── Text helpers ───────────────────────────────────────────────────


def pad(line: str, char: str, *, width: int = PAD_WIDTH, colors: Colors | None = None) -> str:
    c = colors or default_colors
    if line:
        line += ' '
    return line + c.gray(char * max(0, width - len(strip_ansi(line))))


def indent(lines: str, tab: str) -> str:
    """Prefix every non-empty line of *lines* with *tab*."""
    return '\n'.join(tab + line if line else line for line in lines.split('\n'))


def format_duration(ms: float) -> str:
    """Compact duration: ``450ms``, ``2s``, ``3m``, ``1h``, ``2d``."""
    for unit, size in (('d', 86_400_000), ('h', 3_600_000), ('m', 60_000), ('s', 1000)):
        if abs(ms) >= size:
            return f'{_round(ms / size)}{unit}'
    return f'{_round(ms)}ms'


def _round(value: float) -> int:
    return math.floor(value + 0.5)
