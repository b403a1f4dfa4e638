"""Tests configurations and fixtures."""

from asyncio import Runner
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pytest_ftr.config import ConfigSchema, ConfigTree
from pytest_ftr.runtime import Runtime

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from typing import Any

EXAMPLES = Path(__file__).parent / 'examples'


@pytest.fixture
def examples() -> Path:
    """Provide the directory holding example config and test modules."""
    return EXAMPLES


@pytest.fixture
def make_config() -> 'Callable[..., ConfigTree]':
    """Provide a factory building validated configs from raw settings.

    Returns a callable accepting config keys as keyword arguments, for
    example `make_config(timeouts={'test': 50})`.
    """
    def make(**settings: 'Any') -> ConfigTree:
        """Validate raw settings into a config tree."""
        return ConfigTree(ConfigSchema.model_validate(settings))

    return make


@pytest.fixture
def runner() -> 'Iterator[Runner]':
    """Provide an event loop runner closed after the test.

    Tests using it must be synchronous: the runner can not start while
    another event loop is running.
    """
    with Runner() as runner:
        yield runner


@pytest.fixture
def make_runtime(runner: Runner,
                 make_config: 'Callable[..., ConfigTree]') -> 'Callable[..., Runtime]':
    """Provide a factory building runtimes on the test's event loop."""
    def make(**settings: 'Any') -> Runtime:
        """Build a runtime for a config made of raw settings."""
        return Runtime(make_config(**settings), runner=runner)

    return make
