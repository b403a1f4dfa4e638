"""Suite declaration functions used by test modules.

A test module exports a `provider` function; while the loader runs it,
`describe` declares suites, `it` declares tests and the hook functions
attach hooks to the suite being declared:

    from pytest_ftr import describe, it, before_each

    def provider(api):
        browser = api.get_service('browser')

        @describe('home page', tags=['smoke'])
        def _():
            @before_each
            async def navigate():
                await browser.navigate('/')

            @it('shows the header')
            async def _():
                assert await browser.find('header')

Suite bodies run synchronously at load time and must not be async. Tests
and hooks are zero-argument callables and may be async.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from inspect import isawaitable, iscoroutinefunction
from typing import TYPE_CHECKING, Any, overload

from pytest_ftr.errors import ErrorContext, MultipleTopLevelSuitesError, SuiteDefinitionError

from .models import HookKind, Suite, Test

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from pathlib import Path

    from .models import Body

#: Suite whose body is being evaluated.
_current_suite: ContextVar[Suite | None] = ContextVar('current_suite', default=None)
#: Test file being evaluated.
_current_file: ContextVar['FileScope | None'] = ContextVar('current_file', default=None)


class FileScope:
    """Declaration scope of one test file.

    Attributes:
        path: Test file being evaluated.
        parent: Suite the file's top-level suite is attached to.
        suite: Top-level suite declared by the file so far.
    """

    def __init__(self, path: 'Path', parent: Suite) -> None:
        """Initialize a file scope.

        Args:
            path: Test file being evaluated.
            parent: Suite the file's top-level suite is attached to.
        """
        self.path = path
        self.parent = parent
        self.suite: Suite | None = None

    def claim(self, suite: Suite) -> None:
        """Record the top-level suite of the file.

        Raises:
            MultipleTopLevelSuitesError: If the file already declared one.
        """
        if self.suite is not None:
            raise MultipleTopLevelSuitesError(
                f'Test file declares more than one top-level suite: '
                f'{self.suite.title!r} and {suite.title!r}',
                context=ErrorContext(filename=f'{self.path}'),
            )

        self.suite = suite

    def declare(self, suite: Suite) -> None:
        """Record the top-level suite and attach it to the parent suite."""
        self.claim(suite)
        self.parent.add_suite(suite)

    @contextmanager
    def activate(self) -> 'Iterator[FileScope]':
        """Make this scope current, outside of any suite body."""
        file_token = _current_file.set(self)
        suite_token = _current_suite.set(None)
        try:
            yield self
        finally:
            _current_suite.reset(suite_token)
            _current_file.reset(file_token)


def current_file() -> FileScope | None:
    """Return the scope of the test file being evaluated."""
    return _current_file.get()


def current_suite() -> Suite | None:
    """Return the suite whose body is being evaluated."""
    return _current_suite.get()


def _require_suite(name: str) -> Suite:
    """Return the current suite or fail for a declaration outside suites."""
    suite = _current_suite.get()
    if suite is None:
        scope = _current_file.get()
        raise SuiteDefinitionError(
            f'{name}() must be called inside a describe() body',
            context=ErrorContext(filename=f'{scope.path}' if scope else None),
        )

    return suite


@overload
def describe(title: str, body: None = None, *,
             tags: 'Iterable[str]' = (),
             skip: bool = False) -> 'Callable[[Body], Suite]': ...


@overload
def describe(title: str, body: 'Body', *,
             tags: 'Iterable[str]' = (),
             skip: bool = False) -> Suite: ...


def describe(title: str, body: 'Body | None' = None, *,
             tags: 'Iterable[str]' = (),
             skip: bool = False) -> Any:
    """Declare a suite.

    Outside any suite body this declares the top-level suite of the test
    file; inside a body it declares a nested suite.

    Args:
        title: Suite title.
        body: Zero-argument callable declaring the suite contents.
        tags: Tags used to select suites for a run.
        skip: Skip every test of the suite.

    Returns:
        The declared suite, or a decorator when no body is given.

    Raises:
        SuiteDefinitionError: If the body is async or no test file is
            being loaded.
        MultipleTopLevelSuitesError: If the test file already declared a
            top-level suite.
    """
    if body is None:
        def decorator(func: 'Body') -> Suite:
            return describe(title, func, tags=tags, skip=skip)
        return decorator

    scope = _current_file.get()
    if iscoroutinefunction(body):
        raise SuiteDefinitionError(
            f'Body of suite {title!r} must not be async',
            context=ErrorContext(filename=f'{scope.path}' if scope else None),
        )

    parent = _current_suite.get()
    if parent is not None:
        suite = parent.add_suite(Suite(title, file=parent.file, tags=tags, skip=skip))
    elif scope is not None:
        suite = Suite(title, file=scope.path, tags=tags, skip=skip)
        scope.declare(suite)
    else:
        raise SuiteDefinitionError(f'Suite {title!r} declared outside of a test file')

    token = _current_suite.set(suite)
    try:
        result = body()
    finally:
        _current_suite.reset(token)

    if isawaitable(result):
        if close := getattr(result, 'close', None):
            close()
        raise SuiteDefinitionError(
            f'Body of suite {title!r} must not return an awaitable',
            context=ErrorContext(filename=f'{suite.file}' if suite.file else None),
        )

    return suite


@overload
def it(title: str, fn: None = None, *, skip: bool = False) -> 'Callable[[Body], Test]': ...


@overload
def it(title: str, fn: 'Body', *, skip: bool = False) -> Test: ...


def it(title: str, fn: 'Body | None' = None, *, skip: bool = False) -> Any:
    """Declare a test in the current suite.

    Args:
        title: Test title.
        fn: Zero-argument sync or async callable.
        skip: Skip the test.

    Returns:
        The declared test, or a decorator when no callable is given.
    """
    if fn is None:
        def decorator(func: 'Body') -> Test:
            return it(title, func, skip=skip)
        return decorator

    suite = _require_suite('it')
    return suite.add_test(Test(title, fn, parent=suite, skip=skip))


def _hook(kind: HookKind, name: str, fn: 'Body') -> 'Body':
    """Attach a hook to the current suite."""
    _require_suite(name).add_hook(kind, fn)
    return fn


def before(fn: 'Body') -> 'Body':
    """Run a callable once before the tests of the current suite."""
    return _hook(HookKind.BEFORE, 'before', fn)


def after(fn: 'Body') -> 'Body':
    """Run a callable once after the tests of the current suite."""
    return _hook(HookKind.AFTER, 'after', fn)


def before_each(fn: 'Body') -> 'Body':
    """Run a callable before every test of the current suite."""
    return _hook(HookKind.BEFORE_EACH, 'before_each', fn)


def after_each(fn: 'Body') -> 'Body':
    """Run a callable after every test of the current suite."""
    return _hook(HookKind.AFTER_EACH, 'after_each', fn)
