"""Scoped fixture registry, resolver and worker driver."""

from .registry import (
    ALL_HOOKS_INCLUDED,
    Acquisition,
    FixtureDefinition,
    FixtureRegistry,
    Scope,
)
from .resolver import FixtureInstance, FixtureResolver, ScopeCache, ScopeContext
from .worker import Hook, WorkerRunner

__all__ = [
    'ALL_HOOKS_INCLUDED',
    'Acquisition',
    'FixtureDefinition',
    'FixtureInstance',
    'FixtureRegistry',
    'FixtureResolver',
    'Hook',
    'Scope',
    'ScopeCache',
    'ScopeContext',
    'WorkerRunner',
]
