"""Test doubles for exercising the harness without a browser."""

from .stubs import (
    StubAPIRequest,
    StubBrowser,
    StubBrowserType,
    StubContext,
    StubEngine,
    StubPage,
    StubRequestContext,
    StubTracing,
)

__all__ = [
    'StubAPIRequest',
    'StubBrowser',
    'StubBrowserType',
    'StubContext',
    'StubEngine',
    'StubPage',
    'StubRequestContext',
    'StubTracing',
]
