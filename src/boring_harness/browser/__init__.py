"""Browser fixtures wiring the automation engine into the resolver."""

from .context_options import UNSET, ContextOptions
from .fixtures import install_browser_fixtures

__all__ = [
    'UNSET',
    'ContextOptions',
    'install_browser_fixtures',
]
