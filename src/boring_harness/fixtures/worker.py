"""Drives hooks and test bodies of one worker inside fixture scopes.

The worker owns one worker-scope cache for its whole life and opens a
fresh test-scope cache for every test (and every ``beforeAll`` /
``afterAll`` hook invocation). Execution is cooperative and sequential:
a test, including the teardown of its fixtures, completes before the
next one starts.

Usage::

    runner = WorkerRunner(registry, worker_index=0, options={'trace': 'on'})
    result = await runner.run_test(info, test_body, fixtures=('page',))
    fatal_errors = await runner.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from ..models import (
    HookType,
    ProjectInfo,
    TestError,
    TestInfo,
    TestResult,
    TestStatus,
    WorkerInfo,
)
from ..observability import get_logger, test_id_ctx
from .registry import FixtureRegistry, Scope
from .resolver import FixtureResolver, ScopeCache, ScopeContext

logger = get_logger(__name__)

Body = Callable[..., Any]


class _TimeoutExpired(Exception):
    pass


@dataclass(frozen=True, slots=True)
class Hook:
    """A hook body and the fixtures it asks for."""

    fn: Body
    fixtures: tuple[str, ...] = ()


class WorkerRunner:
    """Runs tests and hooks for one worker process.

    Args:
        registry: Registered fixtures; frozen on construction.
        worker_index: Index of this worker; keys the worker scope.
        project: Project the worker runs tests for.
        options: Overrides for option fixtures, applied to every test of
            this worker.

    Worker processes call ``observability.configure_logging()`` once
    before constructing the runner; fixture and capture diagnostics are
    logged to stderr tagged with the running test's id.
    """

    def __init__(
        self,
        registry: FixtureRegistry,
        *,
        worker_index: int = 0,
        project: ProjectInfo | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        registry.freeze()
        self._registry = registry
        self._resolver = FixtureResolver(registry, options=options)
        self._worker_info = WorkerInfo(
            worker_index=worker_index,
            project=project or ProjectInfo(),
        )
        self._worker_scope = ScopeCache(
            scope=Scope.WORKER,
            key=f'worker-{worker_index}',
            info=self._worker_info,
        )
        self._started = False
        self._test_counter = 0

    @property
    def worker_info(self) -> WorkerInfo:
        return self._worker_info

    @property
    def resolver(self) -> FixtureResolver:
        return self._resolver

    async def start(self) -> None:
        """Instantiate worker-scope auto fixtures.

        Called lazily before the first hook or test; idempotent.
        """
        if self._started:
            return
        self._started = True
        names = self._registry.auto_fixtures(Scope.WORKER)
        await self._resolver.resolve(names, ScopeContext(worker=self._worker_scope))

    async def stop(self) -> list[TestError]:
        """Tear down the worker scope.

        Returns:
            Teardown errors; they belong to no single test and are
            reported as fatal errors.
        """
        errors = await self._worker_scope.teardown()
        self._started = False
        return [TestError.from_exception(e) for e in errors]

    async def __aenter__(self) -> WorkerRunner:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ── Hooks ──────────────────────────────────────────────────────

    async def run_hook(
        self,
        hook_type: HookType,
        info: TestInfo,
        hook: Hook,
    ) -> TestInfo:
        """Run a worker-wide hook (``beforeAll`` / ``afterAll``).

        The hook gets its own test-scope cache, wrapped by the
        ``all-hooks-included`` auto fixtures, torn down right after it.
        """
        info.hook_type = hook_type
        names = [
            *self._registry.auto_fixtures(Scope.TEST, hooks_only=True),
            *hook.fixtures,
        ]
        await self._execute(info, names, hook.fixtures, hook.fn, (), ())
        return info

    # ── Tests ──────────────────────────────────────────────────────

    async def run_test(
        self,
        info: TestInfo,
        body: Body,
        *,
        fixtures: tuple[str, ...] = (),
        before_each: tuple[Hook, ...] = (),
        after_each: tuple[Hook, ...] = (),
    ) -> TestResult:
        """Run one test attempt and return its finished result."""
        names = [*self._registry.auto_fixtures(Scope.TEST), *fixtures]
        for hook in (*before_each, *after_each):
            names.extend(hook.fixtures)
        started = time.monotonic()
        await self._execute(info, names, fixtures, body, before_each, after_each)
        duration = (time.monotonic() - started) * 1000
        return TestResult.from_test_info(info, duration)

    async def _execute(
        self,
        info: TestInfo,
        names: list[str],
        requested: tuple[str, ...],
        body: Body,
        before_each: tuple[Hook, ...],
        after_each: tuple[Hook, ...],
    ) -> None:
        self._test_counter += 1
        token = test_id_ctx.set(info.test_id)
        scope = ScopeCache(
            scope=Scope.TEST,
            key=f'{self._worker_scope.key}/test-{self._test_counter}',
            info=info,
        )
        context = ScopeContext(worker=self._worker_scope, test=scope)
        try:
            try:
                await self._with_timeout(
                    info,
                    self._run_body(info, context, names, requested, body, before_each, after_each),
                )
            except _TimeoutExpired:
                info.status = TestStatus.TIMED_OUT
                info.errors.append(TestError(
                    message=f'Test timeout of {info.timeout:g}ms exceeded.',
                ))
            except Exception as exc:
                self._record_error(info, exc)

            if info.status != TestStatus.PASSED:
                await self._notify_failure(info)

            await scope.teardown(on_error=lambda exc: self._record_error(info, exc))
        finally:
            test_id_ctx.reset(token)

    async def _run_body(
        self,
        info: TestInfo,
        context: ScopeContext,
        names: list[str],
        requested: tuple[str, ...],
        body: Body,
        before_each: tuple[Hook, ...],
        after_each: tuple[Hook, ...],
    ) -> None:
        await self.start()
        values = await self._resolver.resolve(_unique(names), context)
        for hook in before_each:
            await _call(hook.fn, {n: values[n] for n in hook.fixtures})
        try:
            await _call(body, {n: values[n] for n in requested})
        except Exception as exc:
            # afterEach hooks still run; the body error wins.
            self._record_error(info, exc)
            await self._notify_failure(info)
        for hook in after_each:
            await _call(hook.fn, {n: values[n] for n in hook.fixtures})

    @staticmethod
    async def _with_timeout(info: TestInfo, coro: Awaitable[None]) -> None:
        """Await *coro*, honouring ``info.timeout`` changes made while it runs."""
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(coro)
        started = loop.time()
        while True:
            if info.timeout <= 0:
                await task
                return
            remaining = info.timeout / 1000 - (loop.time() - started)
            if remaining <= 0:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise _TimeoutExpired()
            done, _ = await asyncio.wait({task}, timeout=remaining)
            if done:
                task.result()
                return

    @staticmethod
    def _record_error(info: TestInfo, exc: BaseException) -> None:
        info.errors.append(TestError.from_exception(exc, not_fatal=True))
        if info.status == TestStatus.PASSED:
            info.status = TestStatus.FAILED

    @staticmethod
    async def _notify_failure(info: TestInfo) -> None:
        """Run failure callbacks once, at the first failure."""
        callbacks = info.failure_callbacks()
        for callback, title in callbacks:
            info.remove_failure_callback(callback)
        for callback, title in callbacks:
            try:
                await callback()
            except Exception as exc:
                logger.warning('failure_callback_failed', callback=title, error=str(exc))


async def _call(fn: Body, kwargs: dict[str, Any]) -> None:
    result = fn(**kwargs)
    if inspect.isawaitable(result):
        await result


def _unique(names: list[str]) -> list[str]:
    return list(dict.fromkeys(names))
