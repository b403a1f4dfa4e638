"""Shared state of one run.

The runtime owns the provider registry and the lifecycle dispatcher of a
run and executes asynchronous work on the run's event loop. Everything
asynchronous in a run, from provider factories to test bodies, goes
through `Runtime.call`, so all of it shares one loop.
"""

from logging import getLogger
from typing import TYPE_CHECKING, Any

from pytest_ftr.builtins import register_builtins
from pytest_ftr.core import Lifecycle, ProviderKind, ProviderRegistry, invoke
from pytest_ftr.suites import TestLoader

if TYPE_CHECKING:
    from asyncio import Runner
    from collections.abc import Callable
    from logging import Logger

if TYPE_CHECKING:
    from pytest_ftr.config import ConfigTree


class Runtime:
    """Registry, lifecycle and event loop of one run.

    Attributes:
        config: Resolved config of the run.
        log: Run logger.
        lifecycle: Phase dispatcher.
        registry: Provider registry holding configured and builtin
            providers.
    """

    def __init__(self, config: 'ConfigTree', *,
                 runner: 'Runner',
                 lifecycle: Lifecycle | None = None,
                 log: 'Logger | None' = None) -> None:
        """Initialize a run runtime.

        Args:
            config: Resolved config of the run.
            runner: Event loop runner of the run.
            lifecycle: Phase dispatcher, a new one when omitted.
            log: Run logger.
        """
        self.config = config
        self.log = log or getLogger('pytest_ftr')
        self.lifecycle = lifecycle or Lifecycle()
        self.registry = ProviderRegistry()

        self._runner = runner

        settings = config.settings
        for name, factory in settings.services.items():
            self.registry.register(name, ProviderKind.SERVICE, factory)
        for name, factory in settings.page_objects.items():
            self.registry.register(name, ProviderKind.PAGE_OBJECT, factory)

        register_builtins(self)

    def call(self, func: 'Callable[..., Any]', *args: Any) -> Any:  # noqa: ANN401
        """Run a sync or async callable on the event loop of the run.

        Args:
            func: Callable to run.
            *args: Positional arguments of the call.

        Returns:
            The settled result.
        """
        return self._runner.run(invoke(func, *args))

    def trigger(self, phase: str, *args: Any) -> None:
        """Trigger a lifecycle phase and wait for its handlers."""
        self.call(self.lifecycle.trigger, phase, *args)

    def create_loader(self) -> TestLoader:
        """Create a test loader bound to this run."""
        return TestLoader(self.registry, self.call)
