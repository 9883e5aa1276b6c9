"""Tests for fixture registration and scoped resolution.

Tests cover:
  - Registry: duplicates, freezing, auto fixture selection, reserved names
  - Dependency inference from setup signatures
  - Exactly-once setup per scope instantiation
  - Reverse-order teardown and teardown error isolation
  - Cycle, unknown fixture and scope mismatch detection
  - Option overrides
"""

from __future__ import annotations

import pytest

from boring_harness.errors import (
    CyclicDependency,
    DuplicateFixture,
    FixtureError,
    FixtureScopeMismatch,
    UnknownFixture,
    UnknownOption,
)
from boring_harness.fixtures import (
    ALL_HOOKS_INCLUDED,
    Acquisition,
    FixtureDefinition,
    FixtureRegistry,
    FixtureResolver,
    Scope,
    ScopeCache,
    ScopeContext,
)
from boring_harness.models import WorkerInfo


# ── Fixtures ──────────────────────────────────────────────────────


def _worker_cache() -> ScopeCache:
    return ScopeCache(scope=Scope.WORKER, key='worker-0', info=WorkerInfo())


def _context(make_info=None) -> ScopeContext:
    test = None
    if make_info is not None:
        test = ScopeCache(scope=Scope.TEST, key='worker-0/test-1', info=make_info())
    return ScopeContext(worker=_worker_cache(), test=test)


# ── Registry ──────────────────────────────────────────────────────


class TestFixtureRegistry:
    def test_duplicate_name_rejected(self):
        registry = FixtureRegistry()
        registry.register(FixtureDefinition.constant('base_url', 'http://a'))
        with pytest.raises(DuplicateFixture) as exc:
            registry.register(FixtureDefinition.constant('base_url', 'http://b'))
        assert exc.value.name == 'base_url'

    def test_frozen_registry_rejects_registration(self):
        registry = FixtureRegistry()
        registry.freeze()
        with pytest.raises(FixtureError, match='frozen'):
            registry.register(FixtureDefinition.constant('x', 1))

    def test_unknown_lookup_raises(self):
        with pytest.raises(UnknownFixture):
            FixtureRegistry()['page']

    def test_decorator_infers_dependencies_and_info(self):
        registry = FixtureRegistry()

        @registry.fixture
        def page(context, info):
            return None

        definition = registry['page']
        assert definition.dependencies == ('context',)
        assert definition.wants_info is True

    def test_info_is_reserved(self):
        with pytest.raises(FixtureError, match='reserved'):
            FixtureDefinition.constant('info', 1)

    def test_invalid_auto_value_rejected(self):
        with pytest.raises(FixtureError, match='invalid auto'):
            FixtureDefinition(name='x', setup=lambda: 1, auto='always')

    def test_auto_fixtures_by_scope_and_hooks(self):
        registry = FixtureRegistry()
        registry.fixture(lambda: 1, name='plain_auto', auto=True)
        registry.fixture(lambda: 2, name='hook_auto', auto=ALL_HOOKS_INCLUDED)
        registry.fixture(lambda: 3, name='worker_auto', scope=Scope.WORKER, auto=True)
        registry.fixture(lambda: 4, name='not_auto')

        assert registry.auto_fixtures(Scope.TEST) == ['plain_auto', 'hook_auto']
        assert registry.auto_fixtures(Scope.TEST, hooks_only=True) == ['hook_auto']
        assert registry.auto_fixtures(Scope.WORKER) == ['worker_auto']

    def test_options_lists_option_fixtures(self):
        registry = FixtureRegistry()
        registry.register(FixtureDefinition.constant('trace', 'off', option=True))
        registry.register(FixtureDefinition.constant('engine', object()))
        assert registry.options() == ['trace']


# ── Resolution ────────────────────────────────────────────────────


class TestResolution:
    @pytest.mark.asyncio
    async def test_shared_dependency_set_up_once(self, make_info):
        registry = FixtureRegistry()
        calls = []

        @registry.fixture
        def a():
            calls.append('a')
            return 'A'

        @registry.fixture
        def b(a):
            calls.append('b')
            return a + 'B'

        @registry.fixture
        def c(a, b):
            calls.append('c')
            return a + b + 'C'

        values = await FixtureResolver(registry).resolve(['c', 'b', 'a'], _context(make_info))

        assert values == {'c': 'AABC', 'b': 'AB', 'a': 'A'}
        assert calls == ['a', 'b', 'c']

    @pytest.mark.asyncio
    async def test_async_setup_and_info_injection(self, make_info):
        registry = FixtureRegistry()

        @registry.fixture
        async def title(info):
            return info.title_path[-1]

        values = await FixtureResolver(registry).resolve(['title'], _context(make_info))
        assert values['title'] == 'renders dashboard'

    @pytest.mark.asyncio
    async def test_worker_instance_shared_across_tests(self, make_info):
        registry = FixtureRegistry()
        launches = []

        @registry.fixture(scope=Scope.WORKER)
        def browser():
            launches.append(1)
            return object()

        resolver = FixtureResolver(registry)
        worker = _worker_cache()
        first = ScopeContext(worker=worker, test=ScopeCache(Scope.TEST, 't1', make_info()))
        second = ScopeContext(worker=worker, test=ScopeCache(Scope.TEST, 't2', make_info()))

        one = await resolver.resolve(['browser'], first)
        two = await resolver.resolve(['browser'], second)

        assert one['browser'] is two['browser']
        assert len(launches) == 1

    @pytest.mark.asyncio
    async def test_cycle_reported_with_path(self, make_info):
        registry = FixtureRegistry()
        registry.fixture(lambda b: 1, name='a')
        registry.register(FixtureDefinition(name='b', setup=lambda a: 2, dependencies=('a',)))

        with pytest.raises(CyclicDependency) as exc:
            await FixtureResolver(registry).resolve(['a'], _context(make_info))
        assert exc.value.cycle == ('a', 'b', 'a')
        assert 'a -> b -> a' in str(exc.value)

    @pytest.mark.asyncio
    async def test_unknown_dependency_names_requester(self, make_info):
        registry = FixtureRegistry()

        @registry.fixture
        def page(context):
            return None

        with pytest.raises(UnknownFixture) as exc:
            await FixtureResolver(registry).resolve(['page'], _context(make_info))
        assert exc.value.name == 'context'
        assert exc.value.requested_by == 'page'

    @pytest.mark.asyncio
    async def test_worker_fixture_cannot_depend_on_test_fixture(self, make_info):
        registry = FixtureRegistry()
        registry.fixture(lambda: 1, name='page')

        @registry.fixture(scope=Scope.WORKER)
        def browser(page):
            return None

        with pytest.raises(FixtureScopeMismatch):
            await FixtureResolver(registry).resolve(['browser'], _context(make_info))

    @pytest.mark.asyncio
    async def test_test_fixture_outside_test_scope_rejected(self):
        registry = FixtureRegistry()
        registry.fixture(lambda: 1, name='page')
        with pytest.raises(FixtureError, match='outside of a test'):
            await FixtureResolver(registry).resolve(['page'], _context())


# ── Options ───────────────────────────────────────────────────────


class TestOptions:
    @pytest.mark.asyncio
    async def test_override_skips_setup(self, make_info):
        registry = FixtureRegistry()
        calls = []

        @registry.fixture(scope=Scope.WORKER, option=True)
        def browser_name(default_browser_type):
            calls.append('setup')
            return default_browser_type

        resolver = FixtureResolver(registry, options={'browser_name': 'firefox'})
        values = await resolver.resolve(['browser_name'], _context(make_info))

        assert values['browser_name'] == 'firefox'
        assert calls == []

    def test_override_of_non_option_rejected(self):
        registry = FixtureRegistry()
        registry.register(FixtureDefinition.constant('engine', object()))
        with pytest.raises(UnknownOption):
            FixtureResolver(registry, options={'engine': None})

    def test_override_of_unknown_name_rejected(self):
        with pytest.raises(UnknownOption):
            FixtureResolver(FixtureRegistry(), options={'nope': 1})


# ── Teardown ──────────────────────────────────────────────────────


class TestTeardown:
    @pytest.mark.asyncio
    async def test_reverse_order(self, make_info):
        registry = FixtureRegistry()
        events = []

        def acquire(name):
            def setup(**_):
                events.append(f'setup {name}')
                return Acquisition(name, lambda: events.append(f'teardown {name}'))
            return setup

        registry.register(FixtureDefinition(name='a', setup=acquire('a')))
        registry.register(FixtureDefinition(name='b', setup=acquire('b'), dependencies=('a',)))
        registry.register(FixtureDefinition(name='c', setup=acquire('c'), dependencies=('b',)))

        context = _context(make_info)
        await FixtureResolver(registry).resolve(['c'], context)
        errors = await context.test.teardown()

        assert errors == []
        assert events == [
            'setup a', 'setup b', 'setup c',
            'teardown c', 'teardown b', 'teardown a',
        ]

    @pytest.mark.asyncio
    async def test_failing_teardown_does_not_skip_others(self, make_info):
        registry = FixtureRegistry()
        released = []

        def broken():
            raise RuntimeError('close failed')

        async def release_a():
            released.append('a')

        registry.fixture(lambda: Acquisition('a', release_a), name='a')
        registry.register(FixtureDefinition(
            name='b', setup=lambda a: Acquisition('b', broken), dependencies=('a',),
        ))

        context = _context(make_info)
        await FixtureResolver(registry).resolve(['b'], context)
        errors = await context.test.teardown()

        assert [str(e) for e in errors] == ['close failed']
        assert released == ['a']
        assert len(context.test.instances) == 0

    @pytest.mark.asyncio
    async def test_partial_setup_is_torn_down(self, make_info):
        registry = FixtureRegistry()
        released = []
        registry.fixture(lambda: Acquisition('a', lambda: released.append('a')), name='a')

        def failing(a):
            raise ValueError('setup failed')

        registry.fixture(failing, name='b')

        context = _context(make_info)
        with pytest.raises(ValueError):
            await FixtureResolver(registry).resolve(['b'], context)
        await context.test.teardown()

        assert released == ['a']
