"""Contract of the browser automation engine consumed by the harness.

The engine itself is an external collaborator; these protocols describe
only what the fixture set and the artifact orchestrator call. Hook slots
(``on_did_create_context`` / ``on_will_close_context``) are plain
attributes the orchestrator assigns and clears.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

BROWSER_NAMES = ('chromium', 'firefox', 'webkit')

ContextHook = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class StackFrame:
    file: str
    line: int = 0
    column: int = 0
    function: str = ''


@dataclass(frozen=True, slots=True)
class PendingCall:
    """An engine call that has been sent but not answered yet."""

    api_name: str
    frames: tuple[StackFrame, ...] = field(default_factory=tuple)


class InstrumentationListener(Protocol):
    def on_api_call_begin(
        self, api_name: str, frames: tuple[StackFrame, ...], user_data: dict[str, Any],
    ) -> None: ...

    def on_api_call_end(
        self, user_data: dict[str, Any], error: BaseException | None,
    ) -> None: ...


class Instrumentation(Protocol):
    def add_listener(self, listener: InstrumentationListener) -> None: ...

    def remove_all_listeners(self) -> None: ...


class Tracing(Protocol):
    async def start(self, **options: Any) -> None: ...

    async def start_chunk(self, *, title: str | None = None) -> None: ...

    async def stop_chunk(self, *, path: Path | str | None = None) -> None: ...

    async def stop(self) -> None: ...


class Video(Protocol):
    async def path(self) -> Path: ...


class Page(Protocol):
    async def screenshot(
        self, *, path: Path | str | None = None, timeout: float = 0, caret: str = 'hide',
    ) -> bytes: ...

    def video(self) -> Video | None: ...


class Context(Protocol):
    tracing: Tracing
    instrumentation: Instrumentation

    async def new_page(self) -> Page: ...

    def pages(self) -> list[Page]: ...

    def on(self, event: str, handler: Callable[[Any], None]) -> None: ...

    async def close(self) -> None: ...

    def set_default_timeout(self, timeout: float) -> None: ...

    def set_default_navigation_timeout(self, timeout: float) -> None: ...


class Browser(Protocol):
    async def new_context(self, **options: Any) -> Context: ...

    async def new_context_for_reuse(self, **options: Any) -> Context: ...

    def pending_calls(self) -> list[PendingCall]: ...

    async def close(self) -> None: ...


class BrowserType(Protocol):
    name: str
    contexts: list[Context]
    on_did_create_context: ContextHook | None
    on_will_close_context: ContextHook | None
    default_context_options: dict[str, Any] | None
    default_launch_options: dict[str, Any] | None
    default_connect_options: dict[str, Any] | None

    async def launch(self, **options: Any) -> Browser: ...


class RequestContext(Protocol):
    tracing: Tracing
    instrumentation: Instrumentation

    async def dispose(self) -> None: ...


class APIRequest(Protocol):
    contexts: list[RequestContext]
    on_did_create_context: ContextHook | None
    on_will_close_context: ContextHook | None

    async def new_context(self, **options: Any) -> RequestContext: ...


class Selectors(Protocol):
    def set_test_id_attribute(self, attribute_name: str) -> None: ...


class Engine(Protocol):
    chromium: BrowserType
    firefox: BrowserType
    webkit: BrowserType
    request: APIRequest
    selectors: Selectors


def browser_types(engine: Engine) -> list[BrowserType]:
    return [engine.chromium, engine.firefox, engine.webkit]
