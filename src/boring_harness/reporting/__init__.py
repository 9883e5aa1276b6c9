"""Failure and summary rendering for terminal reporters."""

from .ansi import fit_to_width, strip_ansi
from .colors import Colors
from .formatter import (
    Annotation,
    FailureReport,
    FormattedError,
    ReportFormatter,
    Summary,
    format_duration,
    format_error,
    format_failure,
    format_result_failure,
    format_test_header,
    format_test_title,
    indent,
    pad,
    relative_file_path,
)
from .stack import StackInfo, parse_stack_line, prepare_error_stack

__all__ = [
    'Annotation',
    'Colors',
    'FailureReport',
    'FormattedError',
    'ReportFormatter',
    'StackInfo',
    'Summary',
    'fit_to_width',
    'format_duration',
    'format_error',
    'format_failure',
    'format_result_failure',
    'format_test_header',
    'format_test_title',
    'indent',
    'pad',
    'parse_stack_line',
    'prepare_error_stack',
    'relative_file_path',
    'strip_ansi',
]
