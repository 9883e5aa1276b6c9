"""Trace and screenshot capture around one test.

The orchestrator hooks into the engine's context lifecycle for the
duration of a test:

  1. ``install``: claim the hook slots of every browser type and of the
     request API, start tracing on contexts that already exist and
     register the immediate failure screenshot.
  2. The test runs. Contexts closed by the test have their trace chunk
     and screenshots written to the worker scratch directory, since the
     outcome is not known yet.
  3. ``finalize``: release the hook slots, collect artifacts from contexts
     the test left open, then promote or delete every scratch file
     according to the retention policy.

Capture is best-effort: no failure in this module changes the outcome of
the test.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable

from ..engine import (
    Context,
    Engine,
    Page,
    RequestContext,
    StackFrame,
    Tracing,
    browser_types,
)
from ..errors import CaptureFailure
from ..models import Location, TestInfo
from ..observability import get_logger
from .naming import AttachmentNamer
from .retention import (
    RetentionMode,
    ScreenshotMode,
    screenshots_enabled,
    should_capture,
    should_record,
    should_screenshot,
)
from .scratch import ScratchArtifact, ScratchDirectory
from .tracing import TraceSession, TraceSessionRegistry, TraceState

logger = get_logger(__name__)

SCREENSHOT_TIMEOUT_MS = 5000


@dataclass(frozen=True, slots=True)
class CapturePolicy:
    """What to capture for one test."""

    trace: RetentionMode = RetentionMode.OFF
    trace_options: dict[str, Any] = field(default_factory=dict)
    screenshot: ScreenshotMode = ScreenshotMode.OFF
    action_timeout: float = 0
    navigation_timeout: float = 0


@dataclass(slots=True)
class PageRecord:
    page: Page
    screenshotted: bool = False


class ApiCallListener:
    """Turns engine API calls into ``pw:api`` steps on the TestInfo."""

    def __init__(self, info: TestInfo, context: Context | None = None) -> None:
        self._info = info
        self._context = context

    def on_api_call_begin(
        self,
        api_name: str,
        frames: tuple[StackFrame, ...],
        user_data: dict[str, Any],
    ) -> None:
        if api_name.startswith('expect.'):
            user_data['step'] = None
            return
        if api_name == 'page.pause':
            self._info.set_timeout(0)
            if self._context is not None:
                self._context.set_default_navigation_timeout(0)
                self._context.set_default_timeout(0)
        location = None
        if frames:
            location = Location(frames[0].file, frames[0].line, frames[0].column)
        user_data['step'] = self._info.add_step(
            api_name, category='pw:api', location=location,
        )

    def on_api_call_end(
        self,
        user_data: dict[str, Any],
        error: BaseException | None,
    ) -> None:
        step = user_data.get('step')
        if step is not None:
            step.complete(error)


class ArtifactOrchestrator:
    """Captures traces and screenshots for one test.

    Args:
        engine: Automation engine whose hook slots are claimed.
        info: The running test.
        policy: Trace and screenshot policy.
        scratch: Worker scratch directory.
        sessions: Worker-wide trace sessions, keyed by tracing handle.
        context_options: Defaults applied to contexts created during the
            test.
    """

    def __init__(
        self,
        engine: Engine,
        info: TestInfo,
        *,
        policy: CapturePolicy,
        scratch: ScratchDirectory,
        sessions: TraceSessionRegistry,
        context_options: dict[str, Any] | None = None,
    ) -> None:
        self._engine = engine
        self._info = info
        self._policy = policy
        self._scratch = scratch
        self._sessions = sessions
        self._context_options = context_options
        self._capture_trace = should_record(policy.trace, info.retry)
        self._scratch_traces: list[ScratchArtifact] = []
        self._scratch_screenshots: list[ScratchArtifact] = []
        self._pages: dict[int, PageRecord] = {}

    @property
    def capture_trace(self) -> bool:
        return self._capture_trace

    @property
    def trace_title(self) -> str:
        try:
            relative = os.path.relpath(self._info.file, self._info.project.test_dir)
        except ValueError:
            relative = self._info.file
        return ' › '.join([f'{relative}:{self._info.line}', *self._info.title_path[1:]])

    # ── Lifecycle ──────────────────────────────────────────────────

    async def install(self) -> None:
        for browser_type in browser_types(self._engine):
            browser_type.on_did_create_context = self.on_did_create_context
            browser_type.on_will_close_context = self.on_will_close_context
            browser_type.default_context_options = self._context_options
            existing = list(browser_type.contexts)
            await asyncio.gather(*(self.on_did_create_context(c) for c in existing))

        request = self._engine.request
        request.on_did_create_context = self.on_did_create_request_context
        request.on_will_close_context = self.on_will_close_request_context
        existing_requests = list(request.contexts)
        await asyncio.gather(*(self.on_did_create_request_context(c) for c in existing_requests))

        if screenshots_enabled(self._policy.screenshot):
            self._info.on_failure(self.screenshot_on_failure, 'Screenshot on failure')

    async def finalize(self) -> None:
        """Collect leftovers, then promote or delete scratch artifacts."""
        failed = self._info.failed
        preserve_trace = self._capture_trace and should_capture(
            self._policy.trace, failed, self._info.retry,
        )
        capture_screenshots = should_screenshot(self._policy.screenshot, failed)
        namer = AttachmentNamer(self._info)

        leftover_contexts, leftover_requests = self._uninstall()

        await asyncio.gather(
            *(self._collect_context(c, namer, preserve_trace, capture_screenshots, failed)
              for c in leftover_contexts),
            *(self._stop_trace_chunk(r.tracing, namer, preserve_trace)
              for r in leftover_requests),
        )
        self._sessions.retain(
            [c.tracing for c in leftover_contexts] + [r.tracing for r in leftover_requests]
        )

        await self._settle(self._scratch_traces, 'trace', namer, preserve_trace, failed)
        await self._settle(
            self._scratch_screenshots, 'screenshot', namer, capture_screenshots, failed,
        )

    def _uninstall(self) -> tuple[list[Context], list[RequestContext]]:
        leftover_contexts: list[Context] = []
        for browser_type in browser_types(self._engine):
            leftover_contexts.extend(browser_type.contexts)
            browser_type.on_did_create_context = None
            browser_type.on_will_close_context = None
            browser_type.default_context_options = None
        for context in leftover_contexts:
            context.instrumentation.remove_all_listeners()

        request = self._engine.request
        leftover_requests = list(request.contexts)
        for request_context in leftover_requests:
            request_context.instrumentation.remove_all_listeners()
        request.on_did_create_context = None
        request.on_will_close_context = None

        self._info.remove_failure_callback(self.screenshot_on_failure)
        return leftover_contexts, leftover_requests

    # ── Engine hooks ───────────────────────────────────────────────

    async def on_did_create_context(self, context: Context) -> None:
        action = self._policy.action_timeout or 0
        context.set_default_timeout(action)
        context.set_default_navigation_timeout(self._policy.navigation_timeout or action)
        await self.start_tracing(context.tracing)
        context.instrumentation.add_listener(ApiCallListener(self._info, context))

    async def on_did_create_request_context(self, context: RequestContext) -> None:
        await self.start_tracing(context.tracing)
        context.instrumentation.add_listener(ApiCallListener(self._info))

    async def on_will_close_context(self, context: Context) -> None:
        await self.stop_tracing(context.tracing)
        if screenshots_enabled(self._policy.screenshot):
            # The outcome is unknown yet; keep the screenshots in scratch.
            await asyncio.gather(*(self.screenshot_page(p) for p in context.pages()))

    async def on_will_close_request_context(self, context: RequestContext) -> None:
        await self.stop_tracing(context.tracing)

    # ── Tracing ────────────────────────────────────────────────────

    async def start_tracing(self, tracing: Tracing) -> None:
        session = self._sessions.session_for(tracing)
        session.collecting = False
        if self._capture_trace:
            if not session.started:
                await session.start(title=self.trace_title, options=self._policy.trace_options)
            else:
                await session.start_chunk(title=self.trace_title)
        elif session.started:
            if session.state == TraceState.CHUNK_ACTIVE:
                await session.stop_chunk()
            await session.stop()

    async def stop_tracing(self, tracing: Tracing) -> None:
        """Write the current chunk of a closing context to scratch."""
        session = self._sessions.session_for(tracing)
        session.collecting = True
        if not self._capture_trace or session.state != TraceState.CHUNK_ACTIVE:
            return
        path = self._scratch.new_path('.zip')
        self._scratch_traces.append(ScratchArtifact(path=path, kind='trace'))
        await _best_effort(_stop_chunk(session, path))

    async def _stop_trace_chunk(
        self,
        tracing: Tracing,
        namer: AttachmentNamer,
        preserve: bool,
    ) -> bool:
        """Stop the chunk of a context left open by the test.

        Returns False when the context's artifacts were already collected,
        which happens when a timeout interrupts ``context.close()``.
        """
        session = self._sessions.session_for(tracing)
        if session.collecting:
            return False
        session.collecting = True
        if session.state != TraceState.CHUNK_ACTIVE:
            return True
        if preserve:
            path = namer.reserve('trace')
            if await _best_effort(_stop_chunk(session, path)):
                namer.attach('trace', path)
        elif self._capture_trace:
            await _best_effort(_stop_chunk(session))
        return True

    # ── Screenshots ────────────────────────────────────────────────

    def page_record(self, page: Page) -> PageRecord:
        record = self._pages.get(id(page))
        if record is None or record.page is not page:
            record = PageRecord(page=page)
            self._pages[id(page)] = record
        return record

    async def screenshot_page(self, page: Page) -> None:
        """Screenshot *page* into scratch, at most once per test."""
        record = self.page_record(page)
        if record.screenshotted:
            return
        record.screenshotted = True
        path = self._scratch.new_path('.png')
        self._scratch_screenshots.append(ScratchArtifact(path=path, kind='screenshot'))
        await _best_effort(_screenshot(page, path))

    async def screenshot_on_failure(self) -> None:
        contexts: list[Context] = []
        for browser_type in browser_types(self._engine):
            contexts.extend(browser_type.contexts)
        await asyncio.gather(*(
            self.screenshot_page(page)
            for context in contexts
            for page in context.pages()
        ))

    async def _collect_context(
        self,
        context: Context,
        namer: AttachmentNamer,
        preserve_trace: bool,
        capture_screenshots: bool,
        failed: bool,
    ) -> None:
        if not await self._stop_trace_chunk(context.tracing, namer, preserve_trace):
            return
        if not capture_screenshots:
            return
        pending = []
        for page in context.pages():
            if self.page_record(page).screenshotted:
                continue
            pending.append((page, namer.reserve('screenshot', failed=failed)))
        results = await asyncio.gather(*(
            _best_effort(_screenshot(p, path)) for p, path in pending
        ))
        for (_, path), ok in zip(pending, results):
            if ok:
                namer.attach('screenshot', path)

    # ── Scratch disposition ────────────────────────────────────────

    async def _settle(
        self,
        artifacts: list[ScratchArtifact],
        kind: str,
        namer: AttachmentNamer,
        keep: bool,
        failed: bool,
    ) -> None:
        if not keep:
            await asyncio.gather(*(asyncio.to_thread(a.discard) for a in artifacts))
            return
        destinations = [namer.reserve(kind, failed=failed) for _ in artifacts]
        results = await asyncio.gather(*(
            asyncio.to_thread(a.promote, dest) for a, dest in zip(artifacts, destinations)
        ))
        for dest, ok in zip(destinations, results):
            if ok:
                namer.attach(kind, dest)


async def _screenshot(page: Page, path: Path) -> None:
    # caret='initial' avoids evaluations that could disturb the page state
    # captured at the moment of failure.
    try:
        await page.screenshot(path=path, timeout=SCREENSHOT_TIMEOUT_MS, caret='initial')
    except Exception as exc:
        raise CaptureFailure(f'Screenshot to {path} failed: {exc}') from exc


async def _stop_chunk(session: TraceSession, path: Path | None = None) -> None:
    try:
        await session.stop_chunk(path)
    except Exception as exc:
        raise CaptureFailure(f'Trace chunk export failed: {exc}') from exc


async def _best_effort(capture: Awaitable[None]) -> bool:
    """Await *capture*; a CaptureFailure is logged and reported as False."""
    try:
        await capture
    except CaptureFailure as exc:
        logger.debug('capture_failed', error=str(exc))
        return False
    return True
