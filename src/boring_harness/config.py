"""Run configuration consumed by the fixture set and the reporter.

The harness never discovers configuration files itself; the scheduler
hands a ``HarnessConfig`` to the workers and the reporter. This module
provides the typed, read-only view plus an env-driven loader.

Configuration sources (in order):
  1. Explicit keyword arguments (tests, programmatic setup).
  2. Environment variables.
  3. Defaults.

Environment variables:
  - ``HARNESS_WORKERS``: Number of worker processes (default 1).
  - ``HARNESS_SHARD``: ``current/total``, e.g. ``2/4`` (optional).
  - ``HARNESS_REPORT_SLOW_TESTS_MAX``: Slow files to list, 0 = all (default 5).
  - ``HARNESS_REPORT_SLOW_TESTS_THRESHOLD``: Milliseconds (default 15000).
  - ``HARNESS_ROOT_DIR``: Directory test paths are reported relative to.
  - ``HARNESS_GLOBAL_TIMEOUT``: Whole-run timeout in milliseconds, 0 = none.

Read by the browser fixtures:
  - ``HARNESS_CONNECT_WS_ENDPOINT`` and ``HARNESS_CONNECT_HEADERS`` (JSON).
  - ``HARNESS_BASE_URL``: Default ``base_url`` option.
  - ``HARNESS_REUSE_CONTEXT``: Reuse one context across tests when nothing
    is recorded.
  - ``HARNESS_DEBUG``: Disable test timeouts.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class HarnessConfigError(ValueError):
    """Raised when run configuration is invalid."""


# ── Configuration ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShardConfig:
    current: int
    total: int


@dataclass(frozen=True, slots=True)
class SlowTestsConfig:
    """Slow test file reporting.

    Attributes:
        max: Maximum number of files to report; 0 means no limit.
        threshold: Cumulative per-file duration in milliseconds above
            which a file is reported.
    """

    max: int = 5
    threshold: float = 15_000


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """Immutable run configuration.

    Attributes:
        workers: Number of worker processes.
        root_dir: Base directory for relative test paths.
        shard: Shard of the run, if sharded.
        report_slow_tests: Slow file reporting, or None to disable.
        global_timeout: Whole-run timeout in milliseconds, 0 = none.
        max_concurrent_test_groups: Upper bound on the jobs that can run in
            parallel; the starting message reports
            ``min(workers, max_concurrent_test_groups)``.
    """

    workers: int = 1
    root_dir: Path = Path('.')
    shard: ShardConfig | None = None
    report_slow_tests: SlowTestsConfig | None = SlowTestsConfig()
    global_timeout: float = 0
    max_concurrent_test_groups: int | None = None

    @property
    def jobs(self) -> int:
        if self.max_concurrent_test_groups is None:
            return self.workers
        return min(self.workers, self.max_concurrent_test_groups)


# ── Loading ─────────────────────────────────────────────────────────


def load_config(
    *,
    workers: int | None = None,
    root_dir: Path | str | None = None,
    shard: ShardConfig | None = None,
    report_slow_tests: SlowTestsConfig | None = None,
    global_timeout: float | None = None,
) -> HarnessConfig:
    """Load run config from env vars with optional overrides.

    Raises:
        HarnessConfigError: If a value is missing or malformed.
    """
    resolved_workers = workers if workers is not None else _env_int('HARNESS_WORKERS', 1)
    if resolved_workers < 1:
        raise HarnessConfigError(
            f'workers must be at least 1, got {resolved_workers}'
        )

    resolved_root = Path(root_dir or os.environ.get('HARNESS_ROOT_DIR', '') or os.getcwd())

    resolved_shard = shard
    if resolved_shard is None:
        raw_shard = os.environ.get('HARNESS_SHARD', '').strip()
        if raw_shard:
            resolved_shard = parse_shard(raw_shard)

    resolved_slow = report_slow_tests
    if resolved_slow is None:
        resolved_slow = SlowTestsConfig(
            max=_env_int('HARNESS_REPORT_SLOW_TESTS_MAX', 5),
            threshold=_env_float('HARNESS_REPORT_SLOW_TESTS_THRESHOLD', 15_000),
        )

    resolved_timeout = global_timeout
    if resolved_timeout is None:
        resolved_timeout = _env_float('HARNESS_GLOBAL_TIMEOUT', 0)

    return HarnessConfig(
        workers=resolved_workers,
        root_dir=resolved_root,
        shard=resolved_shard,
        report_slow_tests=resolved_slow,
        global_timeout=resolved_timeout,
    )


def parse_shard(raw: str) -> ShardConfig:
    """Parse ``current/total`` into a ShardConfig.

    Raises:
        HarnessConfigError: If the value is not two positive integers
            with ``current <= total``.
    """
    current_text, sep, total_text = raw.partition('/')
    if not sep:
        raise HarnessConfigError(f'Invalid shard {raw!r}; expected current/total')
    try:
        current = int(current_text)
        total = int(total_text)
    except ValueError:
        raise HarnessConfigError(f'Invalid shard {raw!r}; expected current/total')
    if total < 1 or current < 1 or current > total:
        raise HarnessConfigError(
            f'Invalid shard {raw!r}; current must be between 1 and {total}'
        )
    return ShardConfig(current=current, total=total)


# ── Private helpers ─────────────────────────────────────────────────


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise HarnessConfigError(f'Invalid {name}={raw!r}; must be an integer')


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise HarnessConfigError(f'Invalid {name}={raw!r}; must be a number')


# ── Fixture-level environment ───────────────────────────────────────


def env_flag(name: str) -> bool:
    """True when *name* is set to anything but an empty string, 0 or false."""
    raw = os.environ.get(name, '').strip().lower()
    return raw not in ('', '0', 'false', 'no')


def connect_options_from_env() -> dict[str, Any] | None:
    """Remote browser endpoint from ``HARNESS_CONNECT_WS_ENDPOINT``.

    ``HARNESS_CONNECT_HEADERS`` may carry a JSON object of extra headers.

    Raises:
        HarnessConfigError: If the headers are not a JSON object.
    """
    endpoint = os.environ.get('HARNESS_CONNECT_WS_ENDPOINT', '').strip()
    if not endpoint:
        return None
    headers = None
    raw_headers = os.environ.get('HARNESS_CONNECT_HEADERS', '').strip()
    if raw_headers:
        try:
            headers = json.loads(raw_headers)
        except json.JSONDecodeError as exc:
            raise HarnessConfigError(f'Invalid HARNESS_CONNECT_HEADERS: {exc}')
        if not isinstance(headers, dict):
            raise HarnessConfigError('HARNESS_CONNECT_HEADERS must be a JSON object')
    return {'ws_endpoint': endpoint, 'headers': headers}


def base_url_from_env() -> str | None:
    return os.environ.get('HARNESS_BASE_URL') or None
