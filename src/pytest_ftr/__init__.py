"""Functional test runner for end-to-end UI test suites.

The `pytest_ftr` package runs suites of functional tests against a live
application and its backing data service, with pytest as the execution
engine.

Key features:
- layered Python or YAML config files with deep merging;
- lazily constructed services and page objects resolved by name;
- ordered lifecycle phases for setup and best-effort cleanup;
- suites declared with `describe` and `it`, one top-level suite per file.

Test modules import the declaration functions from this package:

    from pytest_ftr import describe, it
"""

from pytest_ftr.suites import after, after_each, before, before_each, describe, it
from pytest_ftr.values import replace

__all__ = (
    'after',
    'after_each',
    'before',
    'before_each',
    'describe',
    'it',
    'replace',
)
