"""Capability objects handed to providers.

A capability object is a narrow read-only view over the registry of the
run. A fresh one is built for every provider invocation.

Service and page object factories run on the event loop of the run and
receive the asynchronous `ProviderApi`. Test modules are evaluated while
the loop is idle, so `TestProviderApi` exposes the same operations
synchronously by running them on the loop. Hooks and test bodies run on
the busy loop; from there it only hands out instances constructed while
the test file loaded.
"""

from asyncio import get_running_loop
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

if TYPE_CHECKING:
    from pytest_ftr.config import ConfigTree
    from pytest_ftr.suites import Suite, TestLoader

    from .registry import ProviderRegistry


def _loop_busy() -> bool:
    """Check whether the caller runs on an event loop."""
    try:
        get_running_loop()
    except RuntimeError:
        return False

    return True


class ProviderApi:
    """Capability object for service and page object factories."""

    def __init__(self, registry: 'ProviderRegistry') -> None:
        """Initialize a provider capability object.

        Args:
            registry: Registry of the run.
        """
        self._registry = registry

    async def get_service(self, name: str) -> Any:  # noqa: ANN401
        """Resolve a service by name."""
        return await self._registry.get_service(name)

    async def get_page_objects(self, names: 'Sequence[str]') -> dict[str, Any]:
        """Resolve page objects by name, concurrently."""
        return await self._registry.get_page_objects(names)

    def has_service(self, name: str) -> bool:
        """Check whether a service is registered."""
        return self._registry.has_service(name)

    async def get_config(self) -> 'ConfigTree':
        """Resolve the config of the run."""
        return await self._registry.get_config()


class TestProviderApi:
    """Capability object for test modules.

    Attributes:
        path: Test file being loaded.
    """

    __test__ = False

    def __init__(self, registry: 'ProviderRegistry',
                 call: 'Callable[..., Any]',
                 loader: 'TestLoader',
                 path: 'Path') -> None:
        """Initialize a test provider capability object.

        Args:
            registry: Registry of the run.
            call: Function running a sync or async callable on the event
                loop of the run and returning its result.
            loader: Loader evaluating the test module.
            path: Test file being loaded.
        """
        self.path = path

        self._registry = registry
        self._call = call
        self._loader = loader

    def get_service(self, name: str) -> Any:  # noqa: ANN401
        """Resolve a service by name.

        Raises:
            ProviderError: If called from a hook or test body for a service
                the test file did not request while loading.
        """
        if _loop_busy():
            return self._registry.cached(name, 'service')

        return self._call(self._registry.get_service, name)

    def get_page_objects(self, names: 'Sequence[str]') -> dict[str, Any]:
        """Resolve page objects by name."""
        if _loop_busy():
            return {name: self._registry.cached(name, 'pageObject') for name in names}

        return self._call(self._registry.get_page_objects, names)

    def has_service(self, name: str) -> bool:
        """Check whether a service is registered."""
        return self._registry.has_service(name)

    def get_config(self) -> 'ConfigTree':
        """Resolve the config of the run."""
        if _loop_busy():
            return self._registry.cached('config', 'config')

        return self._call(self._registry.get_config)

    def load_test_file(self, path: 'str | Path') -> 'Suite':
        """Load another test file.

        Inside a suite body the loaded file's suite becomes a nested suite
        of the suite being declared.

        Args:
            path: Test file path, relative to the current test file.

        Returns:
            The top-level suite of the loaded file.
        """
        return self._loader.load_test_file(path)
