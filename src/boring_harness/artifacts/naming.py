"""Sequential attachment naming, reset for every test.

    trace.zip, trace-1.zip, trace-2.zip, ...
    test-failed-1.png, test-failed-2.png, ...   (or test-finished-N.png)
    video.webm, video-1.webm, ...

A name is reserved before the artifact is written; the attachment is
registered only once the file is in place.
"""

from __future__ import annotations

from pathlib import Path

from ..models import Attachment, TestInfo

CONTENT_TYPES = {
    'trace': 'application/zip',
    'screenshot': 'image/png',
    'video': 'video/webm',
}


class AttachmentNamer:
    """Allocates output paths and registers attachments on a TestInfo."""

    def __init__(self, info: TestInfo) -> None:
        self._info = info
        self._counters = {kind: 0 for kind in CONTENT_TYPES}

    def reserve(self, kind: str, *, failed: bool = False) -> Path:
        """Reserve the next output path for an artifact of *kind*."""
        index = self._counters[kind]
        self._counters[kind] = index + 1
        if kind == 'trace':
            filename = f'trace-{index}.zip' if index else 'trace.zip'
        elif kind == 'video':
            filename = f'video-{index}.webm' if index else 'video.webm'
        else:
            label = 'failed' if failed else 'finished'
            filename = f'test-{label}-{index + 1}.png'
        return self._info.output_path(filename)

    def attach(self, kind: str, path: Path) -> Attachment:
        attachment = Attachment(
            name=kind, content_type=CONTENT_TYPES[kind], path=path,
        )
        self._info.attachments.append(attachment)
        return attachment
