"""Splitting raw error stacks into message, frames and a source location.

Two frame styles are recognised::

    at handler (/app/tests/login.spec.ts:12:7)          (V8)
    File "/app/tests/test_login.py", line 12, in test   (Python)

The location is the first frame pointing at a real file that is not part
of the harness itself, the standard library or an installed package.
"""

from __future__ import annotations

import os
import re
import sysconfig
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote, urlparse

from ..models import Location

_V8_PREFIX = '    at '
_V8_FRAME = re.compile(
    r'^\s*at (?:(?:async )?(?P<function>.*?) \()?(?P<file>.+?):(?P<line>\d+):(?P<column>\d+)\)?$'
)
_PY_FRAME = re.compile(
    r'^\s*File "(?P<file>[^"]+)", line (?P<line>\d+)(?:, in (?P<function>.+))?$'
)

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


def _internal_roots() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    roots = {str(_PACKAGE_DIR)}
    for key in ('stdlib', 'platstdlib', 'purelib', 'platlib'):
        if paths.get(key):
            roots.add(os.path.realpath(paths[key]))
    return tuple(sorted(roots))


_INTERNAL_ROOTS = _internal_roots()


@dataclass(frozen=True, slots=True)
class ParsedFrame:
    file: str
    line: int = 0
    column: int = 0
    function: str = ''


@dataclass(frozen=True, slots=True)
class StackInfo:
    """A stack split at its first frame line.

    Attributes:
        message: Everything before the first frame line.
        frame_lines: The frame lines, unparsed.
        location: First user frame, if any.
    """

    message: str
    frame_lines: list[str] = field(default_factory=list)
    location: Location | None = None


def is_frame_line(line: str) -> bool:
    return line.startswith(_V8_PREFIX) or bool(_PY_FRAME.match(line))


def parse_stack_line(line: str) -> ParsedFrame | None:
    match = _V8_FRAME.match(line) or _PY_FRAME.match(line)
    if match is None:
        return None
    groups = match.groupdict()
    file = groups['file']
    if file.startswith('file://'):
        file = unquote(urlparse(file).path)
    return ParsedFrame(
        file=file,
        line=int(groups['line']),
        column=int(groups.get('column') or 0),
        function=groups.get('function') or '',
    )


def is_internal(file: str) -> bool:
    """True for files of the harness, the stdlib, installed packages and
    anything that does not exist on disk."""
    if not os.path.isfile(file):
        return True
    real = os.path.realpath(file)
    return any(real == root or real.startswith(root + os.sep) for root in _INTERNAL_ROOTS)


def prepare_error_stack(stack: str) -> StackInfo:
    lines = stack.split('\n')
    first_frame = next(
        (i for i, line in enumerate(lines) if is_frame_line(line)),
        len(lines),
    )
    frame_lines = lines[first_frame:]
    location = None
    for line in frame_lines:
        frame = parse_stack_line(line)
        if frame is None or is_internal(frame.file):
            continue
        location = Location(
            file=os.path.realpath(frame.file), line=frame.line, column=frame.column,
        )
        break
    return StackInfo(
        message='\n'.join(lines[:first_frame]),
        frame_lines=frame_lines,
        location=location,
    )
