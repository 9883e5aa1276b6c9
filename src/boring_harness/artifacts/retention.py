"""Retention policies for traces, videos and screenshots.

Two questions are asked of every policy:

  - ``should_record``: before the test runs, is there any chance the
    artifact will be kept? If not, nothing is written at all.
  - ``should_capture``: after the outcome is known, is the recorded
    artifact kept (promoted to an attachment) or discarded?
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from ..errors import HarnessError


class RetentionMode(str, Enum):
    OFF = 'off'
    ON = 'on'
    RETAIN_ON_FAILURE = 'retain-on-failure'
    ON_FIRST_RETRY = 'on-first-retry'


class ScreenshotMode(str, Enum):
    OFF = 'off'
    ON = 'on'
    ONLY_ON_FAILURE = 'only-on-failure'


# Older spellings still accepted in configuration.
_ALIASES = {
    'retry-with-trace': RetentionMode.ON_FIRST_RETRY,
    'retry-with-video': RetentionMode.ON_FIRST_RETRY,
}

DEFAULT_TRACE_OPTIONS = {
    'screenshots': True,
    'snapshots': True,
    'sources': True,
}


def normalize_mode(setting: str | Mapping[str, Any] | None) -> RetentionMode:
    """Normalize a trace/video setting to a RetentionMode.

    Accepts a mode string, a mapping with a ``mode`` key, or a falsy
    value (``off``).

    Raises:
        HarnessError: If the mode is unknown.
    """
    if not setting:
        return RetentionMode.OFF
    raw = setting if isinstance(setting, str) else setting.get('mode', 'off')
    if raw in _ALIASES:
        return _ALIASES[raw]
    try:
        return RetentionMode(raw)
    except ValueError:
        raise HarnessError(
            f'Invalid retention mode {raw!r}. '
            f'Must be one of: {", ".join(m.value for m in RetentionMode)}'
        )


normalize_trace_mode = normalize_mode
normalize_video_mode = normalize_mode


def normalize_screenshot_mode(setting: str | Mapping[str, Any] | None) -> ScreenshotMode:
    if not setting:
        return ScreenshotMode.OFF
    raw = setting if isinstance(setting, str) else setting.get('mode', 'off')
    try:
        return ScreenshotMode(raw)
    except ValueError:
        raise HarnessError(
            f'Invalid screenshot mode {raw!r}. '
            f'Must be one of: {", ".join(m.value for m in ScreenshotMode)}'
        )


def trace_options(setting: str | Mapping[str, Any] | None) -> dict[str, Any]:
    """Options passed to ``tracing.start`` for a trace setting."""
    options = dict(DEFAULT_TRACE_OPTIONS)
    if isinstance(setting, Mapping):
        options.update({k: v for k, v in setting.items() if k != 'mode'})
    return options


def should_record(mode: RetentionMode | str, retry: int) -> bool:
    """Whether recording must start for an attempt with index *retry*."""
    mode = RetentionMode(mode)
    return (
        mode == RetentionMode.ON
        or mode == RetentionMode.RETAIN_ON_FAILURE
        or (mode == RetentionMode.ON_FIRST_RETRY and retry == 1)
    )


def should_capture(mode: RetentionMode | str, failed: bool, retry: int) -> bool:
    """Whether a recorded artifact is kept once the outcome is known.

    Args:
        mode: Retention mode.
        failed: True when the test status differs from the expected one.
        retry: Zero-based attempt index.
    """
    mode = RetentionMode(mode)
    return (
        mode == RetentionMode.ON
        or (mode == RetentionMode.RETAIN_ON_FAILURE and failed)
        or (mode == RetentionMode.ON_FIRST_RETRY and retry == 1)
    )


def should_screenshot(mode: ScreenshotMode | str, failed: bool) -> bool:
    """Whether screenshots are kept; ``only-on-failure`` decides at capture."""
    mode = ScreenshotMode(mode)
    return mode == ScreenshotMode.ON or (
        mode == ScreenshotMode.ONLY_ON_FAILURE and failed
    )


def screenshots_enabled(mode: ScreenshotMode | str) -> bool:
    return ScreenshotMode(mode) != ScreenshotMode.OFF
