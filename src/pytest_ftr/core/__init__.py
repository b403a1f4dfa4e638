"""Provider resolution and lifecycle coordination core.

This package defines the machinery every run is built on.

It provides:
- a name-keyed registry of lazily constructed, memoized providers;
- capability objects through which providers reach each other;
- a phase event dispatcher with sequential handlers.
"""

from .api import ProviderApi, TestProviderApi
from .awaitables import invoke
from .lifecycle import Lifecycle, Phase
from .registry import EntryStatus, ProviderKind, ProviderRegistry

__all__ = (
    'EntryStatus',
    'Lifecycle',
    'Phase',
    'ProviderApi',
    'ProviderKind',
    'ProviderRegistry',
    'TestProviderApi',
    'invoke',
)
