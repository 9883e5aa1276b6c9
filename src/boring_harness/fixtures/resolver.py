"""Scoped, memoized fixture resolution with reverse-order teardown.

Each scope instantiation (one worker, one test) owns a ``ScopeCache``.
Instances are created on first resolution, memoized for the rest of the
scope's life, and torn down in the exact reverse of their instantiation
order when the scope ends. Dependencies are always instantiated before
their dependents, so reverse order never releases a fixture while a
consumer of it is still live.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ..errors import (
    CyclicDependency,
    FixtureError,
    FixtureScopeMismatch,
    UnknownFixture,
    UnknownOption,
)
from ..models import TestInfo, WorkerInfo
from ..observability import get_logger
from .registry import (
    INFO_PARAM,
    Acquisition,
    FixtureDefinition,
    FixtureRegistry,
    Scope,
)

logger = get_logger(__name__)


@dataclass(slots=True)
class FixtureInstance:
    """A live fixture value and its pending teardown."""

    definition: FixtureDefinition
    value: Any
    scope_key: str
    teardown: Any = None
    torn_down: bool = False


@dataclass
class ScopeCache:
    """Fixture instances owned by one scope instantiation."""

    scope: Scope
    key: str
    info: TestInfo | WorkerInfo
    instances: dict[str, FixtureInstance] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    def __contains__(self, name: str) -> bool:
        return name in self.instances

    def add(self, instance: FixtureInstance) -> None:
        name = instance.definition.name
        self.instances[name] = instance
        self.order.append(name)

    async def teardown(
        self, on_error: Callable[[BaseException], None] | None = None,
    ) -> list[BaseException]:
        """Tear down every instance in reverse setup order.

        A failing teardown does not stop the remaining ones; all errors
        are returned in the order they occurred. *on_error* is called
        with each error before the next teardown runs, so later
        teardowns observe it.
        """
        errors: list[BaseException] = []
        for name in reversed(self.order):
            instance = self.instances[name]
            if instance.torn_down:
                continue
            instance.torn_down = True
            if instance.teardown is None:
                continue
            try:
                result = instance.teardown()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning(
                    'fixture_teardown_failed',
                    fixture=instance.definition.display_name,
                    scope=self.scope.value,
                    error=str(exc),
                )
                errors.append(exc)
                if on_error is not None:
                    on_error(exc)
        self.instances.clear()
        self.order.clear()
        return errors


@dataclass
class ScopeContext:
    """The caches a resolution may read from and populate."""

    worker: ScopeCache
    test: ScopeCache | None = None

    def cache_for(self, scope: Scope) -> ScopeCache | None:
        return self.worker if scope == Scope.WORKER else self.test


class FixtureResolver:
    """Resolves fixture names against a registry.

    Args:
        registry: Registered fixture definitions.
        options: Per-worker overrides for option fixtures.

    Raises:
        UnknownOption: If an override names a fixture that is not an
            option.
    """

    def __init__(
        self,
        registry: FixtureRegistry,
        *,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        self._registry = registry
        self._options = dict(options or {})
        for name in self._options:
            definition = registry.get(name)
            if definition is None or not definition.option:
                raise UnknownOption(name)

    @property
    def registry(self) -> FixtureRegistry:
        return self._registry

    @property
    def options(self) -> dict[str, Any]:
        return dict(self._options)

    async def resolve(
        self,
        names: list[str] | tuple[str, ...],
        context: ScopeContext,
    ) -> dict[str, Any]:
        """Resolve *names* (and their dependencies) in *context*.

        Returns:
            Mapping of each requested name to its value.

        Raises:
            UnknownFixture, CyclicDependency, FixtureScopeMismatch: On an
                invalid graph. Setup errors propagate unchanged.
        """
        values: dict[str, Any] = {}
        for name in names:
            values[name] = await self._resolve_one(name, context, [], None)
        return values

    async def _resolve_one(
        self,
        name: str,
        context: ScopeContext,
        path: list[str],
        requested_by: str | None,
    ) -> Any:
        definition = self._registry.get(name)
        if definition is None:
            raise UnknownFixture(name, requested_by)

        cache = context.cache_for(definition.scope)
        if cache is None:
            raise FixtureError(
                f'Test fixture "{name}" cannot be resolved outside of a test or hook'
            )
        if name in cache:
            return cache.instances[name].value

        if name in path:
            raise CyclicDependency(path[path.index(name):] + [name])
        path.append(name)
        try:
            kwargs: dict[str, Any] = {}
            if definition.option and name in self._options:
                value, teardown = self._options[name], None
            else:
                for dependency in definition.dependencies:
                    self._check_scope(definition, dependency)
                    kwargs[dependency] = await self._resolve_one(
                        dependency, context, path, name,
                    )
                if definition.wants_info:
                    kwargs[INFO_PARAM] = cache.info
                value, teardown = await self._run_setup(definition, kwargs)
        finally:
            path.pop()

        cache.add(FixtureInstance(
            definition=definition,
            value=value,
            scope_key=cache.key,
            teardown=teardown,
        ))
        logger.debug(
            'fixture_setup',
            fixture=definition.display_name,
            scope=definition.scope.value,
            scope_key=cache.key,
        )
        return value

    def _check_scope(self, definition: FixtureDefinition, dependency: str) -> None:
        if definition.scope != Scope.WORKER:
            return
        dep = self._registry.get(dependency)
        if dep is not None and dep.scope == Scope.TEST:
            raise FixtureScopeMismatch(definition.name, dependency)

    @staticmethod
    async def _run_setup(
        definition: FixtureDefinition,
        kwargs: dict[str, Any],
    ) -> tuple[Any, Any]:
        result = definition.setup(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Acquisition):
            return result.value, result.teardown
        return result, None
