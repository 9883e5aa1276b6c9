"""ANSI colors for reporter output.

Colors are on when stdout is a terminal (and ``TERM`` is not ``dumb``),
unless ``NO_COLOR`` is set. ``FORCE_COLOR`` turns them on regardless;
``FORCE_COLOR=0`` turns them off.
"""

from __future__ import annotations

import os
import sys

_COLOR_RESET = '\033[0m'
_COLOR_RED = '\033[31m'
_COLOR_GREEN = '\033[32m'
_COLOR_YELLOW = '\033[33m'
_COLOR_CYAN = '\033[36m'
_COLOR_GRAY = '\033[90m'
_DIM = '\033[2m'
_DIM_RESET = '\033[22m'


def _detect() -> bool:
    forced = os.environ.get('FORCE_COLOR')
    if forced is not None:
        return forced not in ('0', 'false')
    if os.environ.get('NO_COLOR'):
        return False
    term = os.environ.get('TERM', '').lower()
    return sys.stdout.isatty() and term != 'dumb'


class Colors:
    """Color helpers that degrade to plain text when disabled."""

    def __init__(self, enabled: bool | None = None) -> None:
        self.enabled = _detect() if enabled is None else enabled

    def _colorize(self, text: str, color: str, reset: str = _COLOR_RESET) -> str:
        if not self.enabled:
            return text
        return f'{color}{text}{reset}'

    def red(self, text: str) -> str:
        return self._colorize(text, _COLOR_RED)

    def green(self, text: str) -> str:
        return self._colorize(text, _COLOR_GREEN)

    def yellow(self, text: str) -> str:
        return self._colorize(text, _COLOR_YELLOW)

    def cyan(self, text: str) -> str:
        return self._colorize(text, _COLOR_CYAN)

    def gray(self, text: str) -> str:
        return self._colorize(text, _COLOR_GRAY)

    def dim(self, text: str) -> str:
        return self._colorize(text, _DIM, _DIM_RESET)


colors = Colors()
