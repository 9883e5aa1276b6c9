"""Per-worker scratch space for artifacts whose fate is not decided yet.

Traces, screenshots and videos are written here while the test runs.
Once the outcome is known each file is either promoted (renamed, never
copied, into the test output directory) or deleted. Both operations are
best-effort: a failure is logged and swallowed so that capture can never
change a test's outcome.
"""

from __future__ import annotations

import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

from ..observability import get_logger

logger = get_logger(__name__)


class ScratchDirectory:
    """Lazily created ``<output_dir>/.harness-artifacts-<worker>`` directory."""

    def __init__(self, output_dir: Path, worker_index: int) -> None:
        self._path = output_dir / f'.harness-artifacts-{worker_index}'
        self._created = False

    @property
    def created(self) -> bool:
        return self._created

    def __call__(self) -> Path:
        """Return the directory, creating it on first use."""
        if not self._created:
            self._path.mkdir(parents=True, exist_ok=True)
            self._created = True
        return self._path

    def new_path(self, suffix: str) -> Path:
        return self() / f'{uuid.uuid4().hex}{suffix}'

    def remove(self) -> None:
        if self._created:
            shutil.rmtree(self._path, ignore_errors=True)
            self._created = False


@dataclass(slots=True)
class ScratchArtifact:
    """A temporary artifact file awaiting its disposition."""

    path: Path
    kind: str  # 'trace', 'screenshot' or 'video'

    def promote(self, destination: Path) -> bool:
        """Rename into *destination*; returns False if that failed."""
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            os.replace(self.path, destination)
        except OSError as exc:
            logger.debug(
                'scratch_promote_failed',
                kind=self.kind,
                path=str(self.path),
                destination=str(destination),
                error=str(exc),
            )
            return False
        return True

    def discard(self) -> bool:
        """Delete the scratch file; returns False if that failed."""
        try:
            self.path.unlink()
        except OSError as exc:
            logger.debug(
                'scratch_discard_failed',
                kind=self.kind,
                path=str(self.path),
                error=str(exc),
            )
            return False
        return True
