"""Lifecycle phases of a run.

Phases are named coordination points. Handlers registered for a phase
run one after another in registration order; the next handler starts only
after the previous one has settled. The first failing handler fails the
phase and skips the remaining handlers, except for `cleanup`, where every
handler runs and all failures are reported together.
"""

from contextlib import asynccontextmanager
from enum import StrEnum
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING, Any, overload, TypeAlias

from pytest_ftr.errors import ErrorContext, LifecycleError, LifecyclePhaseError, UnknownPhaseError
from pytest_ftr.logs import VERBOSE

from .awaitables import invoke

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = getLogger(__name__)

Handler: TypeAlias = Callable[..., Any]


class Phase(StrEnum):
    """Recognized lifecycle phases in run order."""

    BEFORE_LOAD_TESTS = 'beforeLoadTests'
    BEFORE_TESTS = 'beforeTests'
    BEFORE_TEST_SUITE = 'beforeTestSuite'
    BEFORE_EACH_TEST = 'beforeEachTest'
    AFTER_TEST_SUITE = 'afterTestSuite'
    TEST_FAILURE = 'testFailure'
    TEST_HOOK_FAILURE = 'testHookFailure'
    CLEANUP = 'cleanup'
    PHASE_START = 'phaseStart'
    PHASE_END = 'phaseEnd'


#: Phases triggered at most once per run.
SINGULAR_PHASES = frozenset({
    Phase.BEFORE_LOAD_TESTS,
    Phase.BEFORE_TESTS,
    Phase.CLEANUP,
})

#: Phases running every handler regardless of failures.
BEST_EFFORT_PHASES = frozenset({
    Phase.CLEANUP,
})


class Lifecycle:
    """Phase event dispatcher of one run."""

    def __init__(self) -> None:
        """Initialize a dispatcher without handlers."""
        self._handlers: dict[Phase, list[Handler]] = {phase: [] for phase in Phase}
        self._triggered: set[Phase] = set()

    @overload
    def on(self, phase: Phase | str) -> 'Callable[[Handler], Handler]': ...

    @overload
    def on(self, phase: Phase | str, handler: Handler) -> Handler: ...

    def on(self, phase: Phase | str, handler: Handler | None = None) -> Any:
        """Register a phase handler.

        Can be used directly or as a decorator:

            @lifecycle.on('cleanup')
            async def close_browser() -> None: ...

        Args:
            phase: Phase name.
            handler: Sync or async callable receiving the trigger
                arguments.

        Returns:
            The handler, or a decorator when no handler is given.

        Raises:
            UnknownPhaseError: If the phase is not recognized.
        """
        phase = self.get_phase(phase)

        if handler is None:
            def decorator(func: Handler) -> Handler:
                self._handlers[phase].append(func)
                return func
            return decorator

        self._handlers[phase].append(handler)
        return handler

    def triggered(self, phase: Phase | str) -> bool:
        """Check whether a phase was triggered at least once."""
        return self.get_phase(phase) in self._triggered

    async def trigger(self, phase: Phase | str, *args: Any) -> None:
        """Run every handler of a phase in registration order.

        Args:
            phase: Phase name.
            *args: Arguments passed to each handler.

        Raises:
            UnknownPhaseError: If the phase is not recognized.
            LifecycleError: If a singular phase is triggered again.
            LifecyclePhaseError: If handlers failed.
        """
        phase = self.get_phase(phase)

        if phase in SINGULAR_PHASES and phase in self._triggered:
            raise LifecycleError(
                f'Phase {phase!r} can be triggered only once',
                context=ErrorContext(phase=phase),
            )
        self._triggered.add(phase)

        handlers = tuple(self._handlers[phase])
        logger.log(VERBOSE, 'Triggering %s with %d handler(s)', phase, len(handlers))

        if phase in BEST_EFFORT_PHASES:
            await self._trigger_all(phase, handlers, args)
            return

        for handler in handlers:
            try:
                await invoke(handler, *args)
            except Exception as error:
                raise LifecyclePhaseError(phase, [error]) from error

    @asynccontextmanager
    async def phase(self, name: str) -> 'AsyncIterator[None]':
        """Bracket a logical group of work with `phaseStart` and `phaseEnd`.

        `phaseEnd` is triggered even when the group fails.

        Args:
            name: Name of the group passed to the handlers.
        """
        await self.trigger(Phase.PHASE_START, name)
        try:
            yield
        finally:
            await self.trigger(Phase.PHASE_END, name)

    @staticmethod
    def get_phase(name: Phase | str) -> Phase:
        """Normalize a phase name.

        Raises:
            UnknownPhaseError: If the phase is not recognized.
        """
        try:
            return Phase(name)
        except ValueError:
            raise UnknownPhaseError(f'Unknown lifecycle phase {name!r}') from None

    @staticmethod
    async def _trigger_all(phase: Phase, handlers: tuple[Handler, ...], args: tuple[Any, ...]) -> None:
        """Run every handler and report all failures at once."""
        errors: list[Exception] = []

        for handler in handlers:
            try:
                await invoke(handler, *args)
            except Exception as error:
                logger.error('Handler %r of %s failed: %r', handler, phase, error)  # noqa: TRY400
                errors.append(error)

        if errors:
            raise LifecyclePhaseError(phase, errors) from errors[0]
