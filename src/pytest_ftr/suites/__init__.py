"""Test suite declaration and loading.

Test modules declare one top-level suite each with `describe`; the loader
evaluates them in order and assembles the suite tree of the run.
"""

from .declare import FileScope, after, after_each, before, before_each, describe, it
from .loader import TestLoader
from .models import Hook, HookKind, Suite, Test

__all__ = (
    'FileScope',
    'Hook',
    'HookKind',
    'Suite',
    'Test',
    'TestLoader',
    'after',
    'after_each',
    'before',
    'before_each',
    'describe',
    'it',
)
