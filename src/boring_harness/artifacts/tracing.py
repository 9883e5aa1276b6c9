"""Trace session state machine, one per automation context.

A context's tracing is started once with the full options and then
recorded in chunks, one per test::

    NoSession --start--> Started --start_chunk--> ChunkActive
        ^                  |  ^                        |
        +------stop--------+  +-------stop_chunk-------+

Sessions outlive tests: a context created in a ``beforeAll`` hook keeps
its session across tests, so sessions are kept in a worker-scope
``TraceSessionRegistry``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..engine import Tracing
from ..errors import TraceStateError


class TraceState(str, Enum):
    NO_SESSION = 'no-session'
    STARTED = 'started'
    CHUNK_ACTIVE = 'chunk-active'


@dataclass
class TraceSession:
    """Explicit trace state for one context.

    Attributes:
        tracing: The engine's tracing handle for the context.
        state: Current state.
        collecting: Set once artifact collection for the current test has
            begun, so a close racing with end-of-test reconciliation does
            not collect twice.
    """

    tracing: Tracing
    state: TraceState = TraceState.NO_SESSION
    collecting: bool = False

    @property
    def started(self) -> bool:
        return self.state != TraceState.NO_SESSION

    async def start(self, *, title: str, options: dict[str, Any]) -> None:
        if self.state != TraceState.NO_SESSION:
            raise TraceStateError('start', self.state.value)
        await self.tracing.start(**options, title=title)
        # The initial start opens the first chunk as well.
        self.state = TraceState.CHUNK_ACTIVE

    async def start_chunk(self, *, title: str) -> None:
        if self.state != TraceState.STARTED:
            raise TraceStateError('start a chunk of', self.state.value)
        await self.tracing.start_chunk(title=title)
        self.state = TraceState.CHUNK_ACTIVE

    async def stop_chunk(self, path: Path | None = None) -> None:
        if self.state != TraceState.CHUNK_ACTIVE:
            raise TraceStateError('stop a chunk of', self.state.value)
        self.state = TraceState.STARTED
        await self.tracing.stop_chunk(path=path)

    async def stop(self) -> None:
        if self.state != TraceState.STARTED:
            raise TraceStateError('stop', self.state.value)
        self.state = TraceState.NO_SESSION
        await self.tracing.stop()


class TraceSessionRegistry:
    """Trace sessions keyed by tracing handle, for the life of a worker."""

    def __init__(self) -> None:
        self._sessions: dict[int, TraceSession] = {}

    def session_for(self, tracing: Tracing) -> TraceSession:
        session = self._sessions.get(id(tracing))
        if session is None or session.tracing is not tracing:
            session = TraceSession(tracing=tracing)
            self._sessions[id(tracing)] = session
        return session

    def forget(self, tracing: Tracing) -> None:
        session = self._sessions.get(id(tracing))
        if session is not None and session.tracing is tracing:
            del self._sessions[id(tracing)]

    def retain(self, tracings: list[Tracing]) -> None:
        """Drop sessions of every tracing handle not in *tracings*."""
        keep = {id(t) for t in tracings}
        for key in [k for k in self._sessions if k not in keep]:
            del self._sessions[key]

    def __len__(self) -> int:
        return len(self._sessions)
