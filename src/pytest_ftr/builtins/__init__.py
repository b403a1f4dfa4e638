"""Providers registered in every run.

- `config` (config kind and service): the resolved `ConfigTree`;
- `log` service: the run logger;
- `lifecycle` service: the phase dispatcher, for registering handlers;
- `retry` service: repetition of blocks until they succeed.

Services configured under the same names take precedence over the
builtin ones.
"""

from typing import TYPE_CHECKING, Any

from pytest_ftr.core import ProviderKind

from .retry import RetryService, provide_retry

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_ftr.runtime import Runtime

__all__ = (
    'RetryService',
    'register_builtins',
)


def _constant(value: Any) -> 'Callable[..., Any]':  # noqa: ANN401
    """Make a provider returning a ready value."""
    def provide(_api: Any) -> Any:  # noqa: ANN401
        return value

    return provide


def register_builtins(runtime: 'Runtime') -> None:
    """Register builtin providers of a run.

    Args:
        runtime: Runtime of the run.
    """
    registry = runtime.registry
    registry.register('config', ProviderKind.CONFIG, _constant(runtime.config))

    services: dict[str, Callable[..., Any]] = {
        'config': _constant(runtime.config),
        'log': _constant(runtime.log),
        'lifecycle': _constant(runtime.lifecycle),
        'retry': provide_retry,
    }

    for name, factory in services.items():
        if not registry.has_service(name):
            registry.register(name, ProviderKind.SERVICE, factory)
