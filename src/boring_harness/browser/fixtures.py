"""The standard browser fixture set.

``install_browser_fixtures`` registers, into a fixture registry, every
fixture a browser test can ask for (``browser``, ``context``, ``page``,
``request`` and the options that shape them) plus the hidden machinery
that drives the artifact orchestrator around each test.

Usage::

    registry = FixtureRegistry()
    install_browser_fixtures(registry, engine)
    runner = WorkerRunner(registry, options={'browser_name': 'firefox'})
    await runner.run_test(info, body, fixtures=('page',))

Installation is once per process; a second installation means the
package was loaded twice and raises ``ReentryError`` naming both sites.
"""

from __future__ import annotations

import sys
from typing import Any, Mapping

from ..artifacts import (
    ArtifactOrchestrator,
    CapturePolicy,
    ContextFactory,
    ScratchDirectory,
    TraceSessionRegistry,
    normalize_screenshot_mode,
    normalize_trace_mode,
    normalize_video_mode,
    should_record,
    trace_options,
)
from ..config import base_url_from_env, connect_options_from_env, env_flag
from ..engine import BROWSER_NAMES, Engine, browser_types
from ..errors import HarnessError
from ..fixtures import (
    ALL_HOOKS_INCLUDED,
    Acquisition,
    FixtureDefinition,
    FixtureRegistry,
    Scope,
)
from ..init_once import PROCESS_GUARDS, InitOnceRegistry
from ..models import TestInfo, WorkerInfo
from ..observability import get_logger
from .context_options import OPTION_NAMES, ContextOptions, option_from_base

logger = get_logger(__name__)

GUARD_KEY = 'browser-fixtures'


def install_browser_fixtures(
    registry: FixtureRegistry,
    engine: Engine,
    *,
    guards: InitOnceRegistry = PROCESS_GUARDS,
) -> FixtureRegistry:
    """Register the browser fixture set into *registry*.

    Args:
        registry: Registry to populate; must not be frozen.
        engine: The automation engine the fixtures drive.
        guards: Init-once registry guarding against double installation.

    Raises:
        ReentryError: If the fixture set was already installed in this
            process.
    """
    guards.claim(GUARD_KEY)
    _register_worker_fixtures(registry, engine)
    _register_context_option_fixtures(registry)
    _register_test_fixtures(registry)
    logger.debug('browser_fixtures_installed', fixtures=len(registry))
    return registry


# ── Worker scope ───────────────────────────────────────────────────


def _register_worker_fixtures(registry: FixtureRegistry, engine: Engine) -> None:
    worker = Scope.WORKER

    registry.register(FixtureDefinition.constant('engine', engine, scope=worker))
    registry.register(FixtureDefinition.constant(
        'default_browser_type', 'chromium', scope=worker, option=True,
    ))

    @registry.fixture(scope=worker, option=True)
    def browser_name(default_browser_type):
        return default_browser_type

    registry.register(FixtureDefinition.constant(
        'launch_options', {}, scope=worker, option=True,
    ))

    @registry.fixture(scope=worker, option=True)
    def headless(launch_options):
        return launch_options.get('headless', True)

    @registry.fixture(scope=worker, option=True)
    def channel(launch_options):
        return launch_options.get('channel')

    @registry.fixture(scope=worker, option=True)
    def connect_options():
        return connect_options_from_env()

    for name in ('screenshot', 'video', 'trace'):
        registry.register(FixtureDefinition.constant(name, 'off', scope=worker, option=True))

    registry.register(FixtureDefinition.constant(
        'snapshot_suffix', sys.platform, scope=worker,
    ))

    @registry.fixture(scope=worker)
    def context_reuse_enabled():
        return env_flag('HARNESS_REUSE_CONTEXT')

    @registry.fixture(scope=worker, title='harness configuration')
    def artifacts_dir(info: WorkerInfo):
        scratch = ScratchDirectory(info.project.output_dir, info.worker_index)
        return Acquisition(scratch, scratch.remove)

    @registry.fixture(scope=worker)
    def trace_sessions():
        return TraceSessionRegistry()

    @registry.fixture(scope=worker, auto=True)
    def browser_options(engine, headless, channel, launch_options, connect_options):
        options = {'handle_sigint': False, 'timeout': 0, **launch_options}
        if headless is not None:
            options['headless'] = headless
        if channel is not None:
            options['channel'] = channel
        for browser_type in browser_types(engine):
            browser_type.default_launch_options = options
            browser_type.default_connect_options = connect_options

        def reset():
            for browser_type in browser_types(engine):
                browser_type.default_launch_options = None
                browser_type.default_connect_options = None

        return Acquisition(options, reset)

    @registry.fixture(scope=worker)
    async def browser(engine, browser_name):
        if browser_name not in BROWSER_NAMES:
            raise HarnessError(
                f'Unexpected browser_name "{browser_name}", must be one of '
                '"chromium", "firefox" or "webkit"'
            )
        launched = await getattr(engine, browser_name).launch()
        return Acquisition(launched, launched.close)


# ── Context options ────────────────────────────────────────────────


def _register_context_option_fixtures(registry: FixtureRegistry) -> None:
    registry.register(FixtureDefinition.constant('context_options', {}, option=True))

    for name in OPTION_NAMES:
        if name == 'base_url':
            continue
        registry.register(FixtureDefinition(
            name=name,
            setup=_option_reader(name),
            dependencies=('context_options',),
            option=True,
        ))

    @registry.fixture(option=True)
    def base_url():
        return base_url_from_env()

    registry.register(FixtureDefinition.constant('action_timeout', 0, option=True))
    registry.register(FixtureDefinition.constant('navigation_timeout', 0, option=True))
    registry.register(FixtureDefinition.constant(
        'test_id_attribute', 'data-testid', option=True,
    ))

    def combine(context_options: Mapping[str, Any], **values: Any) -> dict[str, Any]:
        if values.get('base_url') is None:
            values.pop('base_url', None)
        return ContextOptions(**values).merged(context_options)

    registry.register(FixtureDefinition(
        name='combined_context_options',
        setup=combine,
        dependencies=(*OPTION_NAMES, 'context_options'),
    ))


def _option_reader(name: str):
    def read(context_options):
        return option_from_base(name, context_options)
    read.__name__ = name
    return read


# ── Test scope ─────────────────────────────────────────────────────


def _register_test_fixtures(registry: FixtureRegistry) -> None:

    @registry.fixture(auto=ALL_HOOKS_INCLUDED, title='harness configuration')
    async def artifact_orchestrator(
        engine,
        snapshot_suffix,
        combined_context_options,
        browser_options,
        artifacts_dir,
        trace_sessions,
        trace,
        screenshot,
        action_timeout,
        navigation_timeout,
        test_id_attribute,
        info: TestInfo,
    ):
        if test_id_attribute:
            engine.selectors.set_test_id_attribute(test_id_attribute)
        info.snapshot_suffix = snapshot_suffix
        if env_flag('HARNESS_DEBUG'):
            info.set_timeout(0)

        policy = CapturePolicy(
            trace=normalize_trace_mode(trace),
            trace_options=trace_options(trace),
            screenshot=normalize_screenshot_mode(screenshot),
            action_timeout=action_timeout or 0,
            navigation_timeout=navigation_timeout or 0,
        )
        orchestrator = ArtifactOrchestrator(
            engine,
            info,
            policy=policy,
            scratch=artifacts_dir,
            sessions=trace_sessions,
            context_options=combined_context_options,
        )
        await orchestrator.install()
        return Acquisition(orchestrator, orchestrator.finalize)

    @registry.fixture(title='context')
    def context_factory(browser, video, artifacts_dir, info: TestInfo):
        factory = ContextFactory(browser, info, video=video, scratch=artifacts_dir)
        return Acquisition(factory, factory.close_all)

    @registry.fixture
    def reuse_context(video, trace, context_reuse_enabled, info: TestInfo):
        return (
            context_reuse_enabled
            and not should_record(normalize_video_mode(video), info.retry)
            and not should_record(normalize_trace_mode(trace), info.retry)
        )

    @registry.fixture
    async def context(engine, browser, reuse_context, context_factory):
        if not reuse_context:
            return await context_factory()
        defaults = engine.chromium.default_context_options or {}
        return await browser.new_context_for_reuse(**defaults)

    @registry.fixture
    async def page(context, reuse_context):
        if reuse_context:
            existing = context.pages()
            if existing:
                return existing[0]
        return await context.new_page()

    @registry.fixture
    async def request(engine, combined_context_options):
        request_context = await engine.request.new_context(**combined_context_options)
        return Acquisition(request_context, request_context.dispose)
