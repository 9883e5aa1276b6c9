"""Trace, screenshot and video capture with retention policies."""

from .contexts import ContextFactory, format_pending_calls
from .naming import AttachmentNamer
from .orchestrator import ApiCallListener, ArtifactOrchestrator, CapturePolicy
from .retention import (
    RetentionMode,
    ScreenshotMode,
    normalize_screenshot_mode,
    normalize_trace_mode,
    normalize_video_mode,
    should_capture,
    should_record,
    should_screenshot,
    trace_options,
)
from .scratch import ScratchArtifact, ScratchDirectory
from .tracing import TraceSession, TraceSessionRegistry, TraceState

__all__ = [
    'ApiCallListener',
    'ArtifactOrchestrator',
    'AttachmentNamer',
    'CapturePolicy',
    'ContextFactory',
    'RetentionMode',
    'ScratchArtifact',
    'ScratchDirectory',
    'ScreenshotMode',
    'TraceSession',
    'TraceSessionRegistry',
    'TraceState',
    'format_pending_calls',
    'normalize_screenshot_mode',
    'normalize_trace_mode',
    'normalize_video_mode',
    'should_capture',
    'should_record',
    'should_screenshot',
    'trace_options',
]
