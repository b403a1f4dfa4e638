"""Name-keyed lazy provider registry.

Providers are factories registered under a logical name and a kind.
Instances are constructed on first request, at most once per run, and
shared by every later request. Construction is asynchronous: the first
request starts one task for the name, concurrent requests await the same
task, and the settled outcome is memoized, failures included.

A request for a name that is already being constructed by the requesting
task chain is a dependency cycle and fails immediately instead of waiting
on itself. Cycles between chains started independently, as happens when
several names are warmed up concurrently, are found by following the
names each construction is waiting for.
"""

from asyncio import Task, gather, get_running_loop, shield
from contextvars import ContextVar
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Any, TypeAlias

from pytest_ftr.errors import (
    CircularDependencyError,
    ProviderConstructionError,
    ProviderError,
    UnknownProviderError,
)
from pytest_ftr.logs import VERBOSE
from pytest_ftr.names import PROVIDER_PATTERN

from .api import ProviderApi
from .awaitables import invoke

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

if TYPE_CHECKING:
    from pytest_ftr.config import ConfigTree

logger = getLogger(__name__)


class ProviderKind(StrEnum):
    """Kinds of registered providers."""

    SERVICE = 'service'
    PAGE_OBJECT = 'pageObject'
    CONFIG = 'config'
    TEST = 'test'


class EntryStatus(StrEnum):
    """Construction state of a cached provider instance."""

    PENDING = 'pending'
    RESOLVED = 'resolved'
    FAILED = 'failed'


ProviderKey: TypeAlias = tuple[ProviderKind, str]

#: Providers under construction by the current task, outermost first.
_chain: ContextVar[tuple[ProviderKey, ...]] = ContextVar('provider_chain', default=())


class Registration:
    """Provider factory registered under a name."""

    __slots__ = ('factory', 'kind', 'name')

    def __init__(self, name: str, kind: ProviderKind,
                 factory: 'Callable[[ProviderApi], Any]') -> None:
        """Initialize a registration.

        Args:
            name: Logical provider name.
            kind: Provider kind.
            factory: Callable receiving a `ProviderApi`.
        """
        self.name = name
        self.kind = kind
        self.factory = factory

    def __repr__(self) -> str:
        """String represenatation."""
        return f'Registration({self.kind}:{self.name})'


class CacheEntry:
    """Memoized construction outcome of one provider."""

    __slots__ = ('error', 'status', 'task', 'value')

    def __init__(self) -> None:
        """Initialize a pending cache entry."""
        self.status = EntryStatus.PENDING
        self.task: Task[Any] | None = None
        self.value: Any = None
        self.error: BaseException | None = None

    def resolve(self, value: Any) -> None:  # noqa: ANN401
        """Settle the entry with a constructed instance."""
        self.status = EntryStatus.RESOLVED
        self.value = value

    def fail(self, error: BaseException) -> None:
        """Settle the entry with a construction failure."""
        self.status = EntryStatus.FAILED
        self.error = error


def _retrieve_exception(task: Task[Any]) -> None:
    """Mark a construction failure as retrieved.

    Failures are memoized and re-raised to requesters, so a construction
    whose only requester was cancelled must not be reported by the loop.
    """
    if not task.cancelled():
        task.exception()


class ProviderRegistry:
    """Registry of service, page object and config providers for one run."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._registrations: dict[ProviderKey, Registration] = {}
        self._cache: dict[ProviderKey, CacheEntry] = {}
        self._waiting: dict[ProviderKey, set[ProviderKey]] = {}

    def register(self, name: str, kind: ProviderKind | str,
                 factory: 'Callable[[ProviderApi], Any]') -> Registration:
        """Register a provider factory.

        Args:
            name: Logical provider name.
            kind: Provider kind.
            factory: Callable receiving a `ProviderApi` and returning the
                instance, optionally through an awaitable.

        Returns:
            The registration.

        Raises:
            ProviderError: If the name is invalid, the factory is not
                callable or the name is already registered for the kind.
        """
        kind = ProviderKind(kind)

        if not PROVIDER_PATTERN.match(name):
            raise ProviderError(f'Invalid {kind} name {name!r}')

        if not callable(factory):
            raise ProviderError(f'Provider of {kind} {name!r} is not callable')

        if (kind, name) in self._registrations:
            raise ProviderError(f'Duplicate {kind} {name!r}')

        registration = Registration(name, kind, factory)
        self._registrations[kind, name] = registration

        logger.log(VERBOSE, 'Registered %s %r', kind, name)

        return registration

    def is_registered(self, name: str, kind: ProviderKind | str) -> bool:
        """Check whether a name is registered for a kind."""
        return (ProviderKind(kind), name) in self._registrations

    def has_service(self, name: str) -> bool:
        """Check whether a service is registered under a name."""
        return self.is_registered(name, ProviderKind.SERVICE)

    def names(self, kind: ProviderKind | str) -> tuple[str, ...]:
        """Return registered names of a kind in registration order."""
        kind = ProviderKind(kind)
        return tuple(name for registered, name in self._registrations if registered is kind)

    def status(self, name: str, kind: ProviderKind | str) -> EntryStatus | None:
        """Return the construction state of a provider.

        Returns:
            Entry status, or None when the provider was never requested.
        """
        if entry := self._cache.get((ProviderKind(kind), name)):
            return entry.status

        return None

    def cached(self, name: str, kind: ProviderKind | str) -> Any:  # noqa: ANN401
        """Return an instance constructed earlier in the run.

        Never starts a construction, so it can be called while the event
        loop of the run is busy.

        Raises:
            UnknownProviderError: If the provider was never registered.
            ProviderError: If the provider was not constructed yet.
            ProviderConstructionError: If the construction failed.
        """
        key = (ProviderKind(kind), name)
        if key not in self._registrations:
            raise UnknownProviderError(name, key[0])

        entry = self._cache.get(key)
        if entry is None or entry.status is EntryStatus.PENDING:
            raise ProviderError(
                f'The {key[0]} {name!r} has not been constructed yet, '
                'request it from the test provider while the file loads',
            )
        if entry.status is EntryStatus.FAILED:
            raise entry.error  # type: ignore[misc]

        return entry.value

    async def get_service(self, name: str) -> Any:  # noqa: ANN401
        """Resolve a service instance.

        Raises:
            UnknownProviderError: If the service was never registered.
            CircularDependencyError: If the service depends on itself.
            ProviderConstructionError: If the service factory failed.
        """
        return await self._resolve(ProviderKind.SERVICE, name)

    async def get_page_objects(self, names: 'Sequence[str]') -> dict[str, Any]:
        """Resolve several page objects concurrently.

        The first failure fails the call; constructions of the other page
        objects keep running and stay cached.

        Args:
            names: Page object names.

        Returns:
            Instances keyed by name.
        """
        names = tuple(names)
        values = await gather(*(
            self._resolve(ProviderKind.PAGE_OBJECT, name)
            for name in names
        ))

        return dict(zip(names, values, strict=True))

    async def get_config(self) -> 'ConfigTree':
        """Resolve the config of the run."""
        return await self._resolve(ProviderKind.CONFIG, 'config')

    async def load_all(self) -> dict[str, Any]:
        """Construct every registered service.

        Returns:
            Service instances keyed by name.
        """
        names = self.names(ProviderKind.SERVICE)
        logger.debug('Warming up %d services', len(names))

        values = await gather(*(
            self._resolve(ProviderKind.SERVICE, name)
            for name in names
        ))

        return dict(zip(names, values, strict=True))

    def clear(self) -> None:
        """Release every cached instance.

        Constructions still in flight are cancelled. Registrations are
        kept.
        """
        for (kind, name), entry in self._cache.items():
            if entry.status is EntryStatus.PENDING and entry.task is not None:
                entry.task.cancel()
                logger.debug('Cancelled construction of %s %r', kind, name)
            elif entry.status is EntryStatus.RESOLVED:
                logger.debug('Released %s %r', kind, name)

        self._cache.clear()
        self._waiting.clear()

    async def _resolve(self, kind: ProviderKind, name: str) -> Any:  # noqa: ANN401
        """Return a memoized instance, constructing it on first request."""
        key = (kind, name)
        if key not in self._registrations:
            raise UnknownProviderError(name, kind)

        entry = self._cache.get(key)
        if entry is not None and entry.status is EntryStatus.RESOLVED:
            return entry.value
        if entry is not None and entry.status is EntryStatus.FAILED:
            raise entry.error  # type: ignore[misc]

        chain = _chain.get()
        if key in chain:
            raise CircularDependencyError(item for _, item in chain[chain.index(key):])

        if entry is None:
            entry = self._start(key)

        if not chain:
            return await shield(entry.task)  # type: ignore[arg-type]

        waiter = chain[-1]
        if cycle := self._find_wait_cycle(key, chain):
            raise CircularDependencyError(cycle)

        self._waiting.setdefault(waiter, set()).add(key)
        try:
            return await shield(entry.task)  # type: ignore[arg-type]
        finally:
            self._waiting.get(waiter, set()).discard(key)

    def _start(self, key: ProviderKey) -> CacheEntry:
        """Create a pending entry and schedule its construction task.

        The entry is stored before the task gets a chance to run, so
        concurrent requests always find it.
        """
        kind, name = key

        entry = CacheEntry()
        self._cache[key] = entry

        entry.task = get_running_loop().create_task(
            self._construct(key, entry),
            name=f'construct {kind} {name}',
        )
        entry.task.add_done_callback(_retrieve_exception)

        return entry

    async def _construct(self, key: ProviderKey, entry: CacheEntry) -> Any:  # noqa: ANN401
        """Invoke a factory and settle its cache entry."""
        registration = self._registrations[key]
        _chain.set((*_chain.get(), key))

        logger.log(VERBOSE, 'Constructing %s %r', registration.kind, registration.name)

        try:
            value = await invoke(registration.factory, ProviderApi(self))

        except CircularDependencyError as error:
            entry.fail(error)
            raise

        except Exception as base:
            error = ProviderConstructionError(registration.name, registration.kind, base)
            entry.fail(error)
            raise error from base

        finally:
            self._waiting.pop(key, None)

        entry.resolve(value)
        logger.debug('Constructed %s %r', registration.kind, registration.name)

        return value

    def _find_wait_cycle(self, target: ProviderKey,
                         chain: 'Sequence[ProviderKey]') -> list[str] | None:
        """Follow pending waits from a target back into the current chain.

        Args:
            target: Provider the current construction is about to wait for.
            chain: Providers under construction by the current task.

        Returns:
            Names forming the cycle, starting with the chain member the
            waits lead back to, or None when there is no cycle.
        """
        members = set(chain)
        stack: list[tuple[ProviderKey, tuple[ProviderKey, ...]]] = [(target, (target,))]
        visited: set[ProviderKey] = set()

        while stack:
            current, path = stack.pop()
            if current in visited:
                continue
            visited.add(current)

            for awaited in self._waiting.get(current, ()):
                if awaited in members:
                    start = list(chain).index(awaited)
                    return [name for _, name in (*chain[start:], *path)]
                stack.append((awaited, (*path, awaited)))

        return None

    def __iter__(self) -> 'Iterator[Registration]':
        """Iterate registrations in registration order."""
        return iter(self._registrations.values())
