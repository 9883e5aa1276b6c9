"""Tests for the browser fixture set.

Tests cover:
  - Installation guard against double loading
  - browser_name option override and validation
  - default_browser_type drives one browser shared by the worker
  - Launch/connect defaults published on every browser type
  - Combined context options: defaults, base options, explicit None
  - context/page rejected in beforeAll hooks
  - Context reuse, debug mode, snapshot suffix, test id attribute
"""

from __future__ import annotations

import sys

import pytest

from boring_harness.browser import install_browser_fixtures
from boring_harness.errors import ReentryError
from boring_harness.fixtures import FixtureRegistry, Hook, WorkerRunner
from boring_harness.init_once import InitOnceRegistry
from boring_harness.models import HookType, TestStatus
from boring_harness.testing import StubEngine


# ── Fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def engine():
    return StubEngine()


@pytest.fixture
def make_runner(engine, project):
    def factory(**options):
        registry = install_browser_fixtures(
            FixtureRegistry(), engine, guards=InitOnceRegistry(),
        )
        return WorkerRunner(registry, project=project, options=options)

    return factory


async def _resolve(runner, info, *names):
    """Run a test that only captures the requested fixture values."""
    seen = {}
    result = await runner.run_test(info, _capture(seen), fixtures=names)
    return seen, result


def _capture(seen):
    def body(**values):
        seen.update(values)
    return body


# ── Installation ──────────────────────────────────────────────────


class TestInstallation:
    def test_second_install_reports_both_sites(self, engine):
        guards = InitOnceRegistry()
        install_browser_fixtures(FixtureRegistry(), engine, guards=guards)

        with pytest.raises(ReentryError) as exc:
            install_browser_fixtures(FixtureRegistry(), engine, guards=guards)

        message = str(exc.value)
        assert 'First:' in message
        assert 'Second:' in message
        assert 'test_second_install_reports_both_sites' in exc.value.first

    def test_registers_public_fixtures(self, engine):
        registry = install_browser_fixtures(FixtureRegistry(), engine, guards=InitOnceRegistry())
        for name in ('browser', 'context', 'page', 'request', 'trace', 'video', 'screenshot'):
            assert name in registry
        assert registry['artifact_orchestrator'].wraps_hooks


# ── Browser ───────────────────────────────────────────────────────


class TestBrowser:
    @pytest.mark.asyncio
    async def test_defaults_to_chromium(self, make_runner, make_info, engine):
        runner = make_runner()
        seen, _ = await _resolve(runner, make_info(), 'browser', 'browser_name')

        assert seen['browser_name'] == 'chromium'
        assert seen['browser'] is engine.chromium.launched[0]
        await runner.stop()
        assert seen['browser'].closed

    @pytest.mark.asyncio
    async def test_browser_name_override(self, make_runner, make_info, engine):
        runner = make_runner(browser_name='firefox')
        seen, _ = await _resolve(runner, make_info(), 'browser')

        assert seen['browser'].browser_type is engine.firefox
        assert engine.chromium.launched == []
        await runner.stop()

    @pytest.mark.asyncio
    async def test_default_browser_type_shared_across_tests(self, make_runner, make_info, engine):
        runner = make_runner(default_browser_type='firefox')
        first, _ = await _resolve(runner, make_info('one'), 'browser', 'browser_name')
        second, _ = await _resolve(runner, make_info('two'), 'browser', 'browser_name')

        assert first['browser_name'] == second['browser_name'] == 'firefox'
        assert first['browser'] is second['browser']
        assert engine.firefox.launched == [first['browser']]
        assert engine.chromium.launched == []
        await runner.stop()
        assert first['browser'].closed

    @pytest.mark.asyncio
    async def test_unknown_browser_name(self, make_runner, make_info):
        runner = make_runner(browser_name='opera')
        _, result = await _resolve(runner, make_info(), 'browser')

        assert result.status == TestStatus.FAILED
        assert 'Unexpected browser_name "opera"' in result.errors[0].message
        await runner.stop()

    @pytest.mark.asyncio
    async def test_launch_options_published_and_reset(self, make_runner, make_info, engine):
        runner = make_runner(launch_options={'slow_mo': 50}, channel='chrome-beta')
        seen, _ = await _resolve(runner, make_info(), 'browser')

        for browser_type in (engine.chromium, engine.firefox, engine.webkit):
            assert browser_type.default_launch_options == {
                'handle_sigint': False,
                'timeout': 0,
                'slow_mo': 50,
                'headless': True,
                'channel': 'chrome-beta',
            }
        assert seen['browser'].launch_options['channel'] == 'chrome-beta'

        await runner.stop()
        assert engine.chromium.default_launch_options is None

    @pytest.mark.asyncio
    async def test_connect_options_from_env(self, make_runner, make_info, engine, monkeypatch):
        monkeypatch.setenv('HARNESS_CONNECT_WS_ENDPOINT', 'ws://grid:3000')
        monkeypatch.setenv('HARNESS_CONNECT_HEADERS', '{"x-token": "abc"}')
        runner = make_runner()
        await _resolve(runner, make_info())

        assert engine.webkit.default_connect_options == {
            'ws_endpoint': 'ws://grid:3000',
            'headers': {'x-token': 'abc'},
        }
        await runner.stop()


# ── Context options ───────────────────────────────────────────────


class TestContextOptions:
    @pytest.mark.asyncio
    async def test_defaults(self, make_runner, make_info):
        runner = make_runner()
        seen, _ = await _resolve(runner, make_info(), 'combined_context_options')

        assert seen['combined_context_options'] == {
            'accept_downloads': True,
            'java_script_enabled': True,
            'locale': 'en-US',
            'viewport': {'width': 1280, 'height': 720},
            'service_workers': 'allow',
        }
        await runner.stop()

    @pytest.mark.asyncio
    async def test_base_options_and_overrides(self, make_runner, make_info, monkeypatch):
        monkeypatch.setenv('HARNESS_BASE_URL', 'http://localhost:5173')
        runner = make_runner(
            context_options={'locale': 'fr-FR', 'color_scheme': 'dark', 'record_har': 'x.har'},
            viewport=None,
            user_agent='harness-bot',
        )
        seen, _ = await _resolve(runner, make_info(), 'combined_context_options')
        options = seen['combined_context_options']

        assert options['locale'] == 'fr-FR'
        assert options['color_scheme'] == 'dark'
        assert options['record_har'] == 'x.har'
        assert options['viewport'] is None
        assert options['user_agent'] == 'harness-bot'
        assert options['base_url'] == 'http://localhost:5173'
        await runner.stop()

    @pytest.mark.asyncio
    async def test_contexts_created_with_combined_options(self, make_runner, make_info):
        runner = make_runner(locale='de-DE')
        seen, _ = await _resolve(runner, make_info(), 'context')

        assert seen['context'].options['locale'] == 'de-DE'
        await runner.stop()


# ── Test-scope wiring ─────────────────────────────────────────────


class TestContextFixtures:
    @pytest.mark.asyncio
    async def test_page_rejected_in_before_all(self, make_runner, make_info):
        runner = make_runner()
        info = make_info('beforeAll hook')

        await runner.run_hook(HookType.BEFORE_ALL, info, Hook(lambda page: None, ('page',)))

        assert info.status == TestStatus.FAILED
        assert '"context" and "page" fixtures are not supported in "beforeAll"' in (
            info.errors[0].message
        )
        await runner.stop()

    @pytest.mark.asyncio
    async def test_browser_allowed_in_before_all(self, make_runner, make_info):
        runner = make_runner()
        info = make_info('beforeAll hook')

        await runner.run_hook(HookType.BEFORE_ALL, info, Hook(lambda browser: None, ('browser',)))

        assert info.status == TestStatus.PASSED
        await runner.stop()

    @pytest.mark.asyncio
    async def test_contexts_closed_after_test(self, make_runner, make_info):
        runner = make_runner()
        seen, _ = await _resolve(runner, make_info(), 'page')

        assert seen['page'].context.closed
        await runner.stop()

    @pytest.mark.asyncio
    async def test_reuse_context(self, make_runner, make_info, monkeypatch):
        monkeypatch.setenv('HARNESS_REUSE_CONTEXT', '1')
        runner = make_runner()

        first, _ = await _resolve(runner, make_info('one'), 'page', 'reuse_context')
        second, _ = await _resolve(runner, make_info('two'), 'page')

        assert first['reuse_context'] is True
        assert first['page'] is second['page']
        await runner.stop()

    @pytest.mark.asyncio
    async def test_no_reuse_while_recording(self, make_runner, make_info, monkeypatch):
        monkeypatch.setenv('HARNESS_REUSE_CONTEXT', '1')
        runner = make_runner(trace='on')
        seen, _ = await _resolve(runner, make_info(), 'reuse_context')

        assert seen['reuse_context'] is False
        await runner.stop()


class TestTestInfoSetup:
    @pytest.mark.asyncio
    async def test_snapshot_suffix_and_test_id_attribute(self, make_runner, make_info, engine):
        runner = make_runner(test_id_attribute='data-qa')
        info = make_info()
        await _resolve(runner, info)

        assert info.snapshot_suffix == sys.platform
        assert engine.selectors.test_id_attribute == 'data-qa'
        await runner.stop()

    @pytest.mark.asyncio
    async def test_debug_disables_timeout(self, make_runner, make_info, monkeypatch):
        monkeypatch.setenv('HARNESS_DEBUG', '1')
        runner = make_runner()
        info = make_info()
        await _resolve(runner, info)

        assert info.timeout == 0
        await runner.stop()
