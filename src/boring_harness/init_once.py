"""Process-wide init-once guards.

Some setup must happen exactly once per process (installing the browser
fixture set into the shared registry, for instance). Loading it a second
time usually means two copies of the package are on the path. The
registry remembers who initialized each key first and reports both call
sites on re-entry.
"""

from __future__ import annotations

import traceback

from .errors import ReentryError


def _call_site(skip: int = 2) -> str:
    frames = traceback.format_stack()[:-skip]
    return ''.join(frames).rstrip()


class InitOnceRegistry:
    """Records the first initiation of each key."""

    def __init__(self) -> None:
        self._initiators: dict[str, str] = {}

    def claim(self, key: str, origin: str | None = None) -> None:
        """Claim *key* for the caller.

        Args:
            key: Identifier of the one-time initialization.
            origin: Description of the initiation point. Defaults to the
                caller's stack.

        Raises:
            ReentryError: If *key* was already claimed.
        """
        site = origin if origin is not None else _call_site()
        first = self._initiators.get(key)
        if first is not None:
            raise ReentryError(key, first, site)
        self._initiators[key] = site

    def initiator(self, key: str) -> str | None:
        return self._initiators.get(key)

    def release(self, key: str) -> None:
        self._initiators.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._initiators


PROCESS_GUARDS = InitOnceRegistry()
