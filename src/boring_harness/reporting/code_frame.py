"""Source excerpts around an error location."""

from __future__ import annotations

import re

from .colors import Colors

LINES_ABOVE = 2
LINES_BELOW = 3


def code_frame(
    source: str,
    line: int,
    column: int = 0,
    *,
    highlight: bool = False,
) -> str:
    """Render the lines around *line* (1-based) with a caret at *column*.

    ::

          10 |   page = await context.new_page()
          11 |
        > 12 |   assert title == 'Dashboard'
             |   ^
          13 |
    """
    colors = Colors(enabled=highlight)
    lines = source.split('\n')
    start = max(line - LINES_ABOVE, 1)
    end = min(line + LINES_BELOW, len(lines))
    width = len(str(end))

    rendered = []
    for number in range(start, end + 1):
        text = lines[number - 1]
        gutter = f' {str(number).rjust(width)} |'
        body = f' {text}' if text else ''
        if number != line:
            rendered.append(' ' + colors.gray(gutter) + body)
            continue
        rendered.append(colors.red('>') + colors.gray(gutter) + body)
        if column > 0:
            # Keep tabs so the caret lines up with the source text.
            spacing = re.sub(r'[^\t]', ' ', text[:column - 1])
            rendered.append(
                ' ' + colors.gray(re.sub(r'\d', ' ', gutter)) + f' {spacing}' + colors.red('^')
            )
    return '\n'.join(rendered)
