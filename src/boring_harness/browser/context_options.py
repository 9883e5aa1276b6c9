"""Browser context options assembled from individual option fixtures.

Every field starts as ``UNSET``. ``None`` is a meaningful value for some
options (``viewport=None`` disables the fixed viewport), so an explicit
sentinel marks "not configured". Set fields are merged over the base
``context_options`` mapping in declaration order.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping


class _Unset:
    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'UNSET'

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

DEFAULT_VIEWPORT = {'width': 1280, 'height': 720}


@dataclass(slots=True)
class ContextOptions:
    accept_downloads: Any = UNSET
    bypass_csp: Any = UNSET
    color_scheme: Any = UNSET
    device_scale_factor: Any = UNSET
    extra_http_headers: Any = UNSET
    geolocation: Any = UNSET
    has_touch: Any = UNSET
    http_credentials: Any = UNSET
    ignore_https_errors: Any = UNSET
    is_mobile: Any = UNSET
    java_script_enabled: Any = UNSET
    locale: Any = UNSET
    offline: Any = UNSET
    permissions: Any = UNSET
    proxy: Any = UNSET
    storage_state: Any = UNSET
    viewport: Any = UNSET
    timezone_id: Any = UNSET
    user_agent: Any = UNSET
    base_url: Any = UNSET
    service_workers: Any = UNSET

    def set_fields(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def merged(self, base: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Return *base* overlaid with every set field."""
        return {**(base or {}), **self.set_fields()}


OPTION_NAMES = tuple(f.name for f in fields(ContextOptions))

# Fallbacks applied when neither the option fixture nor ``context_options``
# provides a value.
OPTION_DEFAULTS: dict[str, Any] = {
    'accept_downloads': True,
    'java_script_enabled': True,
    'locale': 'en-US',
    'service_workers': 'allow',
    'viewport': DEFAULT_VIEWPORT,
}


def option_from_base(name: str, base: Mapping[str, Any] | None) -> Any:
    """Value of option *name* derived from the base ``context_options``."""
    base = base or {}
    if name in base:
        return base[name]
    default = OPTION_DEFAULTS.get(name, UNSET)
    return dict(default) if isinstance(default, dict) else default
