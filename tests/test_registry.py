"""Tests for lazy provider resolution."""

import asyncio
from typing import TYPE_CHECKING

import pytest

from pytest_ftr.core import EntryStatus, ProviderKind, ProviderRegistry
from pytest_ftr.errors import (
    CircularDependencyError,
    ErrorFormatter,
    ProviderConstructionError,
    ProviderError,
    UnknownProviderError,
)

if TYPE_CHECKING:
    from pytest_ftr.core import ProviderApi


class Counter:
    """Records factory invocations by name."""

    def __init__(self) -> None:
        self.calls: dict[str, int] = {}

    def hit(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1


@pytest.fixture
def counter() -> Counter:
    """Provide a factory invocation counter."""
    return Counter()


@pytest.fixture
def registry() -> ProviderRegistry:
    """Provide an empty provider registry."""
    return ProviderRegistry()


@pytest.mark.asyncio
async def test_concurrent_requests_share_construction(registry: ProviderRegistry, counter: Counter) -> None:
    """Construct a service once for concurrent requests."""
    async def factory(api: 'ProviderApi') -> object:
        counter.hit('browser')
        await asyncio.sleep(0)
        return object()

    registry.register('browser', ProviderKind.SERVICE, factory)

    first, second, third = await asyncio.gather(
        registry.get_service('browser'),
        registry.get_service('browser'),
        registry.get_service('browser'),
    )

    assert first is second is third
    assert await registry.get_service('browser') is first
    assert counter.calls == {'browser': 1}
    assert registry.status('browser', ProviderKind.SERVICE) is EntryStatus.RESOLVED


@pytest.mark.asyncio
async def test_failure_is_memoized(registry: ProviderRegistry, counter: Counter) -> None:
    """Re-raise the same construction failure without calling the factory again."""
    async def factory(api: 'ProviderApi') -> None:
        counter.hit('esArchiver')
        await asyncio.sleep(0)
        raise ValueError('no archive')

    registry.register('esArchiver', ProviderKind.SERVICE, factory)

    results = await asyncio.gather(
        registry.get_service('esArchiver'),
        registry.get_service('esArchiver'),
        return_exceptions=True,
    )

    with pytest.raises(ProviderConstructionError) as error:
        await registry.get_service('esArchiver')

    assert results[0] is results[1] is error.value
    assert isinstance(error.value.__cause__, ValueError)
    assert error.value.name == 'esArchiver'
    assert counter.calls == {'esArchiver': 1}
    assert registry.status('esArchiver', 'service') is EntryStatus.FAILED


@pytest.mark.asyncio
async def test_sync_factory_failure(registry: ProviderRegistry) -> None:
    """Handle synchronous factory failures like asynchronous ones."""
    def factory(api: 'ProviderApi') -> None:
        raise RuntimeError('sync failure')

    registry.register('sync', ProviderKind.SERVICE, factory)

    with pytest.raises(ProviderConstructionError, match='sync failure'):
        await registry.get_service('sync')


@pytest.mark.asyncio
async def test_dependencies(registry: ProviderRegistry) -> None:
    """Resolve services depending on other services."""
    async def provide_common(api: 'ProviderApi') -> dict:
        return {'browser': await api.get_service('browser')}

    registry.register('browser', ProviderKind.SERVICE, lambda api: 'browser')
    registry.register('common', ProviderKind.PAGE_OBJECT, provide_common)

    pages = await registry.get_page_objects(['common'])

    assert pages == {'common': {'browser': 'browser'}}


@pytest.mark.asyncio
async def test_dependency_failure(registry: ProviderRegistry) -> None:
    """Fail a dependent with its own error wrapping the dependency failure."""
    def provide_proxy(api: 'ProviderApi') -> None:
        raise ConnectionError('proxy down')

    async def provide_browser(api: 'ProviderApi') -> dict:
        return {'proxy': await api.get_service('proxy')}

    registry.register('proxy', ProviderKind.SERVICE, provide_proxy)
    registry.register('browser', ProviderKind.SERVICE, provide_browser)

    with pytest.raises(ProviderConstructionError) as error:
        await registry.get_service('browser')

    with pytest.raises(ProviderConstructionError) as cause:
        await registry.get_service('proxy')

    assert error.value.name == 'browser'
    assert error.value.__cause__ is cause.value
    assert cause.value.name == 'proxy'
    assert isinstance(cause.value.__cause__, ConnectionError)
    assert ErrorFormatter.format_chain(error.value).splitlines() == [
        "ProviderConstructionError: Failed to construct service 'browser': "
        "Failed to construct service 'proxy': proxy down",
        "    while resolving provider 'browser'",
        "  caused by ProviderConstructionError: Failed to construct service 'proxy': proxy down",
        "    while resolving provider 'proxy'",
        '  caused by ConnectionError: proxy down',
    ]


@pytest.mark.asyncio
async def test_cached(registry: ProviderRegistry) -> None:
    """Hand out constructed instances without starting constructions."""
    def broken(api: 'ProviderApi') -> None:
        raise RuntimeError('no display')

    registry.register('browser', ProviderKind.SERVICE, lambda api: 'browser')
    registry.register('screenshots', ProviderKind.SERVICE, broken)
    registry.register('search', ProviderKind.SERVICE, lambda api: 'search')

    await registry.get_service('browser')
    with pytest.raises(ProviderConstructionError) as failure:
        await registry.get_service('screenshots')

    assert registry.cached('browser', 'service') == 'browser'

    with pytest.raises(ProviderConstructionError) as error:
        registry.cached('screenshots', 'service')
    assert error.value is failure.value

    with pytest.raises(ProviderError, match="The service 'search' has not been constructed yet"):
        registry.cached('search', 'service')
    assert registry.status('search', 'service') is None

    with pytest.raises(UnknownProviderError):
        registry.cached('missing', 'service')


@pytest.mark.asyncio
async def test_self_dependency(registry: ProviderRegistry, counter: Counter) -> None:
    """Reject a service requesting itself."""
    async def factory(api: 'ProviderApi') -> None:
        counter.hit('a')
        await api.get_service('a')

    registry.register('a', ProviderKind.SERVICE, factory)

    with pytest.raises(CircularDependencyError) as error:
        await registry.get_service('a')

    assert error.value.cycle == ['a']
    assert counter.calls == {'a': 1}


@pytest.mark.asyncio
async def test_mutual_dependency(registry: ProviderRegistry, counter: Counter) -> None:
    """Reject two services requesting each other."""
    def make_factory(name: str, other: str):  # noqa: ANN202
        async def factory(api: 'ProviderApi') -> None:
            counter.hit(name)
            await api.get_service(other)
        return factory

    registry.register('a', ProviderKind.SERVICE, make_factory('a', 'b'))
    registry.register('b', ProviderKind.SERVICE, make_factory('b', 'a'))

    with pytest.raises(CircularDependencyError) as error:
        await registry.get_service('a')

    assert error.value.cycle == ['a', 'b']
    assert 'a -> b -> a' in str(error.value)
    assert counter.calls == {'a': 1, 'b': 1}

    with pytest.raises(CircularDependencyError) as memoized:
        await registry.get_service('b')

    assert memoized.value is error.value


@pytest.mark.asyncio
async def test_concurrent_cycle(registry: ProviderRegistry, counter: Counter) -> None:
    """Detect cycles between constructions started independently."""
    def make_factory(name: str, other: str):  # noqa: ANN202
        async def factory(api: 'ProviderApi') -> None:
            counter.hit(name)
            await asyncio.sleep(0)
            await api.get_service(other)
        return factory

    registry.register('a', ProviderKind.SERVICE, make_factory('a', 'b'))
    registry.register('b', ProviderKind.SERVICE, make_factory('b', 'a'))

    with pytest.raises(CircularDependencyError) as error:
        await asyncio.wait_for(registry.load_all(), timeout=5)

    assert error.value.cycle in (['a', 'b'], ['b', 'a'])
    assert counter.calls == {'a': 1, 'b': 1}


@pytest.mark.asyncio
async def test_unknown_provider(registry: ProviderRegistry) -> None:
    """Reject names that were never registered for the kind."""
    registry.register('browser', ProviderKind.SERVICE, lambda api: 'browser')

    with pytest.raises(UnknownProviderError, match="Unknown pageObject 'browser'"):
        await registry.get_page_objects(['browser'])

    with pytest.raises(UnknownProviderError, match="Unknown service 'missing'"):
        await registry.get_service('missing')


@pytest.mark.asyncio
async def test_page_objects_partial_failure(registry: ProviderRegistry, counter: Counter) -> None:
    """Keep other page objects constructing when one fails."""
    done = asyncio.Event()

    async def provide_slow(api: 'ProviderApi') -> str:
        counter.hit('slow')
        await done.wait()
        return 'slow'

    def provide_broken(api: 'ProviderApi') -> None:
        raise RuntimeError('broken page')

    registry.register('slow', ProviderKind.PAGE_OBJECT, provide_slow)
    registry.register('broken', ProviderKind.PAGE_OBJECT, provide_broken)

    with pytest.raises(ProviderConstructionError, match='broken page'):
        await registry.get_page_objects(['slow', 'broken'])

    assert registry.status('slow', ProviderKind.PAGE_OBJECT) is EntryStatus.PENDING

    done.set()
    assert await registry.get_page_objects(['slow']) == {'slow': 'slow'}
    assert counter.calls == {'slow': 1}


@pytest.mark.asyncio
async def test_pending_before_suspension(registry: ProviderRegistry) -> None:
    """Mark entries pending as soon as they are requested."""
    ready = asyncio.Event()

    async def factory(api: 'ProviderApi') -> str:
        await ready.wait()
        return 'ready'

    registry.register('slow', ProviderKind.SERVICE, factory)
    assert registry.status('slow', ProviderKind.SERVICE) is None

    request = asyncio.ensure_future(registry.get_service('slow'))
    await asyncio.sleep(0)

    assert registry.status('slow', ProviderKind.SERVICE) is EntryStatus.PENDING

    ready.set()
    assert await request == 'ready'


@pytest.mark.asyncio
async def test_cancelled_request_keeps_construction(registry: ProviderRegistry, counter: Counter) -> None:
    """Keep constructing when the requester is cancelled."""
    ready = asyncio.Event()

    async def factory(api: 'ProviderApi') -> str:
        counter.hit('slow')
        await ready.wait()
        return 'ready'

    registry.register('slow', ProviderKind.SERVICE, factory)

    request = asyncio.ensure_future(registry.get_service('slow'))
    await asyncio.sleep(0)
    request.cancel()

    with pytest.raises(asyncio.CancelledError):
        await request

    ready.set()
    assert await registry.get_service('slow') == 'ready'
    assert counter.calls == {'slow': 1}


@pytest.mark.asyncio
async def test_clear(registry: ProviderRegistry, counter: Counter) -> None:
    """Release cached instances and construct again afterwards."""
    def factory(api: 'ProviderApi') -> object:
        counter.hit('browser')
        return object()

    registry.register('browser', ProviderKind.SERVICE, factory)
    first = await registry.get_service('browser')

    registry.clear()

    assert registry.status('browser', ProviderKind.SERVICE) is None
    assert await registry.get_service('browser') is not first
    assert counter.calls == {'browser': 2}


@pytest.mark.asyncio
async def test_load_all(registry: ProviderRegistry) -> None:
    """Construct every registered service."""
    registry.register('a', ProviderKind.SERVICE, lambda api: 'a')
    registry.register('b', ProviderKind.SERVICE, lambda api: 'b')
    registry.register('page', ProviderKind.PAGE_OBJECT, lambda api: 'page')

    assert await registry.load_all() == {'a': 'a', 'b': 'b'}
    assert registry.status('page', ProviderKind.PAGE_OBJECT) is None


@pytest.mark.parametrize(('name', 'kind', 'message'), (
    pytest.param('browser', ProviderKind.SERVICE, 'Duplicate service', id='duplicate'),
    pytest.param('1browser', ProviderKind.SERVICE, 'Invalid service name', id='invalid name'),
))
def test_register_errors(registry: ProviderRegistry, name: str, kind: ProviderKind, message: str) -> None:
    """Reject invalid and duplicate registrations."""
    registry.register('browser', ProviderKind.SERVICE, lambda api: 'browser')

    with pytest.raises(ProviderError, match=message):
        registry.register(name, kind, lambda api: None)


def test_same_name_different_kinds(registry: ProviderRegistry) -> None:
    """Allow one name per kind."""
    registry.register('common', ProviderKind.SERVICE, lambda api: 'service')
    registry.register('common', ProviderKind.PAGE_OBJECT, lambda api: 'page')

    assert registry.has_service('common')
    assert registry.names(ProviderKind.PAGE_OBJECT) == ('common',)
    assert [registration.kind for registration in registry] == [ProviderKind.SERVICE, ProviderKind.PAGE_OBJECT]
