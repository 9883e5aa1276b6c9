"""Per-test browser contexts and their video recordings."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Mapping

from ..engine import Browser, Context, Page, PendingCall, StackFrame
from ..errors import UnsupportedFixtureUsage
from ..models import TestError, TestInfo, TestStatus
from ..observability import get_logger
from .naming import AttachmentNamer
from .retention import normalize_video_mode, should_capture, should_record
from .scratch import ScratchArtifact, ScratchDirectory

logger = get_logger(__name__)


class ContextFactory:
    """Creates browser contexts for one test and closes them afterwards.

    Contexts are recorded to the worker scratch directory when the video
    policy asks for it; ``close_all`` keeps or deletes each recording once
    the outcome of the test is known.
    """

    def __init__(
        self,
        browser: Browser,
        info: TestInfo,
        *,
        video: str | Mapping[str, Any] | None,
        scratch: ScratchDirectory,
    ) -> None:
        self._browser = browser
        self._info = info
        self._scratch = scratch
        self._mode = normalize_video_mode(video)
        self._size = video.get('size') if isinstance(video, Mapping) else None
        self._record = should_record(self._mode, info.retry)
        self._contexts: dict[int, tuple[Context, list[Page]]] = {}

    @property
    def recording(self) -> bool:
        return self._record

    @property
    def contexts(self) -> list[Context]:
        return [context for context, _ in self._contexts.values()]

    async def __call__(self, **options: Any) -> Context:
        """Create a new context for the running test.

        Raises:
            UnsupportedFixtureUsage: If called from a worker-wide hook.
        """
        hook_type = self._info.hook_type
        if hook_type is not None and hook_type.is_worker_wide:
            raise UnsupportedFixtureUsage(hook_type.value)

        video_options: dict[str, Any] = {}
        if self._record:
            video_options['record_video'] = {'dir': self._scratch(), 'size': self._size}
        context = await self._browser.new_context(**{**video_options, **options})

        pages: list[Page] = []
        self._contexts[id(context)] = (context, pages)
        context.on('page', pages.append)
        return context

    async def close_all(self) -> None:
        pending = ''
        if self._info.status == TestStatus.TIMED_OUT:
            pending = format_pending_calls(self._browser.pending_calls())

        namer = AttachmentNamer(self._info)
        entries = list(self._contexts.values())
        self._contexts.clear()
        await asyncio.gather(*(self._close(context, pages, namer) for context, pages in entries))

        if pending:
            self._info.errors.append(TestError(message=pending))

    async def _close(self, context: Context, pages: list[Page], namer: AttachmentNamer) -> None:
        await context.close()
        if not self._record:
            return
        preserve = should_capture(self._mode, self._info.failed, self._info.retry)
        videos = [v for v in (p.video() for p in pages) if v is not None]
        for video in videos:
            try:
                path = Path(await video.path())
            except Exception as exc:
                # Pages closed before their first frame have no video.
                logger.debug('video_unavailable', error=str(exc))
                continue
            artifact = ScratchArtifact(path=path, kind='video')
            if not preserve:
                artifact.discard()
                continue
            destination = namer.reserve('video')
            if artifact.promote(destination):
                namer.attach('video', destination)


def format_pending_calls(calls: list[PendingCall]) -> str:
    """Describe engine calls still in flight when a test timed out."""
    calls = [call for call in calls if call.api_name]
    if not calls:
        return ''
    lines = ['Pending operations:\n']
    for call in calls:
        frame = f' at {format_stack_frame(call.frames[0])}' if call.frames else ''
        lines.append(f'  - {call.api_name}{frame}\n')
    return ''.join(lines)


def format_stack_frame(frame: StackFrame) -> str:
    file = os.path.relpath(frame.file) if os.path.isabs(frame.file) else frame.file
    return f'{file or os.path.basename(frame.file)}:{frame.line or 1}:{frame.column or 1}'
