"""Uniform invocation of sync and async callables."""

from inspect import isawaitable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


async def invoke(func: 'Callable[..., Any]', *args: Any) -> Any:  # noqa: ANN401
    """Call a function and await its result when it is awaitable.

    Exceptions raised synchronously by the call and exceptions raised by
    the returned awaitable propagate the same way.

    Args:
        func: Sync or async callable.
        *args: Positional arguments of the call.

    Returns:
        The settled result.
    """
    result = func(*args)
    if isawaitable(result):
        result = await result

    return result
