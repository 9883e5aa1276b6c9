"""ANSI escape handling and terminal-width fitting."""

from __future__ import annotations

import re

# One capturing group: re.split() yields plain text at even indexes and
# control sequences at odd ones.
ANSI_RE = re.compile(
    '([\u001b\u009b][\\[\\]()#;?]*'
    '(?:(?:(?:[a-zA-Z\\d]*(?:;[-a-zA-Z\\d/#&.:=?%@~_]*)*)?\u0007)'
    '|(?:(?:\\d{1,4}(?:;\\d{0,4})*)?[\\dA-PR-TZcf-ntqry=><~])))'
)

ELLIPSIS = '…'


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub('', text)


def fit_to_width(line: str, width: int, prefix: str | None = None) -> str:
    """Fit *line* into *width* columns, keeping its tail.

    The visible width of *prefix* is reserved as well. Truncation drops
    characters from the start, marks the cut with an ellipsis and keeps
    every control sequence so colors stay balanced.
    """
    width -= len(strip_ansi(prefix)) if prefix else 0
    if len(line) <= width:
        return line

    parts = ANSI_RE.split(line)
    taken: list[str] = []
    for i in range(len(parts) - 1, -1, -1):
        if i % 2:
            taken.append(parts[i])
            continue
        part = parts[i][max(0, len(parts[i]) - width):] if width > 0 else ''
        if 0 < len(part) < len(parts[i]):
            part = ELLIPSIS + part[1:]
        taken.append(part)
        width -= len(part)
    return ''.join(reversed(taken))
