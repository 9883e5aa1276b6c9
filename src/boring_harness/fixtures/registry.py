"""Fixture definitions and the process-wide registry that holds them.

A fixture is a named, scoped, lazily-resolved dependency. Its setup
function receives its dependencies as keyword arguments (plus ``info``,
the current ``TestInfo`` or ``WorkerInfo``, when it asks for it) and
returns either a plain value or an ``Acquisition`` pairing the value with
the teardown action to run when the owning scope ends.

Usage::

    registry = FixtureRegistry()

    @registry.fixture(scope=Scope.WORKER)
    async def browser(engine, browser_name):
        b = await getattr(engine, browser_name).launch()
        return Acquisition(b, b.close)

    registry.register(FixtureDefinition.constant(
        'trace', 'off', scope=Scope.WORKER, option=True,
    ))
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, NamedTuple

from ..errors import DuplicateFixture, FixtureError, UnknownFixture

ALL_HOOKS_INCLUDED = 'all-hooks-included'

# Reserved parameter name through which setup functions receive scope info.
INFO_PARAM = 'info'


class Scope(str, Enum):
    WORKER = 'worker'
    TEST = 'test'


class Acquisition(NamedTuple):
    """A fixture value paired with the action that releases it."""

    value: Any
    teardown: Callable[[], Any] | None = None


@dataclass(frozen=True, slots=True)
class FixtureDefinition:
    """Immutable description of one fixture.

    Attributes:
        name: Unique fixture name.
        setup: Callable invoked with dependencies as keyword arguments.
            May be sync or async; returns a value or an ``Acquisition``.
        scope: Lifetime of one instance.
        dependencies: Names of the fixtures setup needs.
        option: Whether the value can be overridden per worker.
        auto: ``True`` to resolve for every test, ``'all-hooks-included'``
            to also wrap ``beforeAll``/``afterAll`` hooks.
        wants_info: Whether setup receives ``info``.
        title: Display name used in logs.
    """

    name: str
    setup: Callable[..., Any]
    scope: Scope = Scope.TEST
    dependencies: tuple[str, ...] = ()
    option: bool = False
    auto: bool | str = False
    wants_info: bool = False
    title: str = ''

    def __post_init__(self) -> None:
        if self.name == INFO_PARAM:
            raise FixtureError(f'"{INFO_PARAM}" is reserved and cannot name a fixture')
        if self.auto not in (False, True, ALL_HOOKS_INCLUDED):
            raise FixtureError(
                f'Fixture "{self.name}" has invalid auto={self.auto!r}; '
                f'must be True, False or {ALL_HOOKS_INCLUDED!r}'
            )

    @property
    def display_name(self) -> str:
        return self.title or self.name

    @property
    def wraps_hooks(self) -> bool:
        return self.auto == ALL_HOOKS_INCLUDED

    @classmethod
    def constant(
        cls,
        name: str,
        value: Any,
        *,
        scope: Scope = Scope.TEST,
        option: bool = False,
    ) -> FixtureDefinition:
        """A fixture whose value is fixed at registration time."""
        return cls(name=name, setup=lambda: value, scope=scope, option=option)

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        scope: Scope = Scope.TEST,
        option: bool = False,
        auto: bool | str = False,
        title: str = '',
    ) -> FixtureDefinition:
        """Build a definition whose dependencies are *fn*'s parameter names."""
        params = list(inspect.signature(fn).parameters)
        return cls(
            name=name or fn.__name__,
            setup=fn,
            scope=Scope(scope),
            dependencies=tuple(p for p in params if p != INFO_PARAM),
            option=option,
            auto=auto,
            wants_info=INFO_PARAM in params,
            title=title,
        )


class FixtureRegistry:
    """Name → definition map, populated once at process start."""

    def __init__(self) -> None:
        self._definitions: dict[str, FixtureDefinition] = {}
        self._frozen = False

    def register(self, definition: FixtureDefinition) -> FixtureDefinition:
        """Add *definition*.

        Raises:
            DuplicateFixture: If the name is already registered.
            FixtureError: If the registry has been frozen.
        """
        if self._frozen:
            raise FixtureError(
                f'Cannot register "{definition.name}": registry is frozen'
            )
        if definition.name in self._definitions:
            raise DuplicateFixture(definition.name)
        self._definitions[definition.name] = definition
        return definition

    def fixture(
        self,
        fn: Callable[..., Any] | None = None,
        *,
        name: str | None = None,
        scope: Scope = Scope.TEST,
        option: bool = False,
        auto: bool | str = False,
        title: str = '',
    ) -> Any:
        """Decorator form of :meth:`register`."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(FixtureDefinition.from_function(
                func, name=name, scope=scope, option=option, auto=auto,
                title=title,
            ))
            return func

        if fn is not None:
            return decorator(fn)
        return decorator

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> FixtureDefinition | None:
        return self._definitions.get(name)

    def __getitem__(self, name: str) -> FixtureDefinition:
        definition = self._definitions.get(name)
        if definition is None:
            raise UnknownFixture(name)
        return definition

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[FixtureDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def auto_fixtures(self, scope: Scope, *, hooks_only: bool = False) -> list[str]:
        """Names of auto fixtures of *scope*, in registration order.

        With ``hooks_only`` only fixtures that also wrap worker-wide hooks
        are returned.
        """
        names = []
        for definition in self._definitions.values():
            if definition.scope != scope or not definition.auto:
                continue
            if hooks_only and not definition.wraps_hooks:
                continue
            names.append(definition.name)
        return names

    def options(self) -> list[str]:
        return [d.name for d in self._definitions.values() if d.option]
