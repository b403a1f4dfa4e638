"""Retry service.

Functional tests talk to a live application, so most checks need to be
repeated until the application reaches the expected state. The `retry`
service repeats a block until it succeeds or a time budget runs out.
"""

from asyncio import get_running_loop, sleep
from typing import TYPE_CHECKING, Any

from pytest_ftr.core import invoke

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

if TYPE_CHECKING:
    from pytest_ftr.core import ProviderApi

#: Pause between attempts, in milliseconds.
DEFAULT_DELAY = 500


class RetryService:
    """Repeats blocks until they succeed.

    Attributes:
        timeout: Default time budget in milliseconds.
    """

    def __init__(self, timeout: int, log: 'Logger') -> None:
        """Initialize a retry service.

        Args:
            timeout: Default time budget in milliseconds.
            log: Run logger.
        """
        self.timeout = timeout
        self._log = log

    async def attempt(self, block: 'Callable[[], Any]', *,
                      on_failure: 'Callable[[BaseException], Any] | None' = None) -> Any:  # noqa: ANN401
        """Repeat a block within the default time budget.

        Returns:
            Result of the first successful attempt.
        """
        return await self.attempt_for_time(self.timeout, block, on_failure=on_failure)

    async def attempt_for_time(self, timeout: int,
                               block: 'Callable[[], Any]', *,
                               on_failure: 'Callable[[BaseException], Any] | None' = None,
                               delay: int = DEFAULT_DELAY) -> Any:  # noqa: ANN401
        """Repeat a block until it returns without raising.

        Args:
            timeout: Time budget in milliseconds.
            block: Zero-argument sync or async callable.
            on_failure: Callable receiving each failure before the next
                attempt.
            delay: Pause between attempts in milliseconds.

        Returns:
            Result of the first successful attempt.

        Raises:
            TimeoutError: If no attempt succeeded within the budget; the
                last failure is chained as its cause.
        """
        loop = get_running_loop()
        deadline = loop.time() + timeout / 1000
        attempts = 0

        while True:
            attempts += 1
            try:
                return await invoke(block)

            except Exception as error:
                if loop.time() >= deadline:
                    raise TimeoutError(
                        f'Retry timed out after {timeout}ms and {attempts} attempt(s): {error}',
                    ) from error

                self._log.debug('Attempt %d failed: %r', attempts, error)
                if on_failure is not None:
                    await invoke(on_failure, error)

            await sleep(delay / 1000)

    async def wait_for(self, description: str,
                       predicate: 'Callable[[], Any]', *,
                       timeout: int | None = None,
                       delay: int = DEFAULT_DELAY) -> Any:  # noqa: ANN401
        """Repeat a predicate until it returns a truthy value.

        Failures raised by the predicate count as falsy results.

        Args:
            description: What is being waited for, used in the error.
            predicate: Zero-argument sync or async callable.
            timeout: Time budget in milliseconds, the default when omitted.
            delay: Pause between attempts in milliseconds.

        Returns:
            The truthy result.

        Raises:
            TimeoutError: If the predicate stayed falsy within the budget.
        """
        async def check() -> Any:  # noqa: ANN401
            if result := await invoke(predicate):
                return result
            raise AssertionError(f'condition {description!r} is not met')

        timeout = self.timeout if timeout is None else timeout
        self._log.debug('Waiting for %s', description)

        try:
            return await self.attempt_for_time(timeout, check, delay=delay)
        except TimeoutError as error:
            raise TimeoutError(f'Timed out waiting for {description}') from error


async def provide_retry(api: 'ProviderApi') -> RetryService:
    """Build the retry service from the run config."""
    config = await api.get_config()
    log = await api.get_service('log')

    return RetryService(config.get('timeouts.try'), log)
