"""Tests for test file loading and suite declarations."""

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pytest_ftr import after, after_each, before, before_each, describe, it
from pytest_ftr.errors import (
    MultipleTopLevelSuitesError,
    NoTopLevelSuiteError,
    SuiteDefinitionError,
    TestFileError,
)
from pytest_ftr.suites import FileScope, HookKind, Suite

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_ftr.runtime import Runtime


def provide_browser(api):
    return {}


def provide_home(api):
    return {'title': 'Home'}


@pytest.fixture
def runtime(make_runtime: 'Callable[..., Runtime]') -> 'Runtime':
    """Provide a runtime with the services used by example suites."""
    return make_runtime(
        services={'browser': provide_browser},
        page_objects={'home': provide_home},
        timeouts={'try': 3000},
    )


def test_load_suite(runtime: 'Runtime', examples: 'Path') -> None:
    """Collect the top-level suite of a test file under the root."""
    loader = runtime.create_loader()

    root = loader.load_test_files([examples / 'suites' / 'home.py'])

    (suite,) = root.suites
    assert root.is_root
    assert suite.title == 'home page'
    assert suite.parent is root
    assert suite.file == (examples / 'suites' / 'home.py').resolve()
    assert suite.tags == {'smoke'}
    assert [test.title for test in suite.tests] == ['opens the home page', 'keeps the browser open']
    assert [hook.fn.__name__ for hook in suite.hooks(HookKind.BEFORE)] == ['open_browser']
    assert [hook.fn.__name__ for hook in suite.hooks(HookKind.AFTER)] == ['close_browser']
    assert suite.tests[0].full_title == 'home page opens the home page'


def test_load_files_in_order(runtime: 'Runtime', examples: 'Path') -> None:
    """Attach suites of several files in load order."""
    loader = runtime.create_loader()

    root = loader.load_test_files([
        examples / 'suites' / 'plain.py',
        examples / 'suites' / 'home.py',
    ])

    assert [suite.title for suite in root.suites] == ['plain suite', 'home page']
    assert root.count_tests() == 3


def test_services_while_loading(runtime: 'Runtime', examples: 'Path') -> None:
    """Resolve config, services and page objects from test providers."""
    loader = runtime.create_loader()

    suite = loader.load_test_file(examples / 'suites' / 'services.py')

    assert suite.tags == {'try-3000'}
    assert [test.title for test in suite.tests] == ['retries for 3000ms', 'has Home']


def test_nested_test_file(runtime: 'Runtime', examples: 'Path') -> None:
    """Nest a file loaded inside a suite body in that suite."""
    loader = runtime.create_loader()

    outer = loader.load_test_file(examples / 'suites' / 'outer.py')

    (nested,) = outer.suites
    assert loader.root.suites == [outer]
    assert nested.title == 'plain suite'
    assert nested.parent is outer
    assert nested.file == (examples / 'suites' / 'plain.py').resolve()
    assert [test.full_title for test in outer.iter_tests()] == [
        'outer suite runs first',
        'outer suite plain suite passes',
    ]


def test_reexported_test_file(runtime: 'Runtime', examples: 'Path') -> None:
    """Use a suite loaded at the top level of a provider as its own."""
    loader = runtime.create_loader()

    suite = loader.load_test_file(examples / 'suites' / 'reexport.py')

    assert suite.title == 'plain suite'
    assert loader.root.suites == [suite]


@pytest.mark.parametrize(('filename', 'error', 'message'), (
    pytest.param('missing.py', TestFileError, 'Test file not found', id='missing'),
    pytest.param('broken.py', TestFileError, 'Failed to import test file', id='import failure'),
    pytest.param('no_provider.py', TestFileError, "callable 'provider'", id='no provider'),
    pytest.param('empty.py', NoTopLevelSuiteError, 'declares no suite', id='no suite'),
    pytest.param('double.py', MultipleTopLevelSuitesError, "'first' and 'second'", id='two suites'),
    pytest.param('self_include.py', TestFileError, 'already being loaded', id='self include'),
    pytest.param('async_body.py', SuiteDefinitionError, 'must not be async', id='async body'),
    pytest.param('orphan.py', SuiteDefinitionError, r'it\(\) must be called inside', id='orphan test'),
))
def test_load_errors(runtime: 'Runtime', examples: 'Path', filename: str,
                     error: type[Exception], message: str) -> None:
    """Reject test files that can not be loaded."""
    loader = runtime.create_loader()

    with pytest.raises(error, match=message):
        loader.load_test_file(examples / 'suites' / filename)


def test_async_provider(runtime: 'Runtime', tmp_path: 'Path') -> None:
    """Reject test files with an async provider."""
    path = tmp_path / 'async_provider.py'
    path.write_text('async def provider(api):\n    pass\n')

    with pytest.raises(TestFileError, match='must not be async'):
        runtime.create_loader().load_test_file(path)


def test_provider_failure(runtime: 'Runtime', tmp_path: 'Path') -> None:
    """Wrap failures raised by test providers."""
    path = tmp_path / 'failing.py'
    path.write_text('def provider(api):\n    api.get_service("missing")\n')

    with pytest.raises(TestFileError, match='Test provider failed') as error:
        runtime.create_loader().load_test_file(path)

    assert "Unknown service 'missing'" in str(error.value)


def test_hook_order() -> None:
    """Order each-test hooks from the outside in and back out."""
    root = Suite.root()
    scope = FileScope(Path('nested.py'), root)

    def noop() -> None: ...

    with scope.activate():
        @describe('outer', tags=['a'])
        def _():
            before_each(noop)
            after_each(noop)
            before(noop)

            @describe('inner', tags=['b'], skip=True)
            def _():
                before_each(noop)
                after_each(noop)
                after(noop)
                it('test', noop)

    (outer,) = root.suites
    (inner,) = outer.suites
    (test,) = inner.tests

    assert [hook.suite for hook in test.hooks(HookKind.BEFORE_EACH)] == [outer, inner]
    assert [hook.suite for hook in test.hooks(HookKind.AFTER_EACH)] == [inner, outer]
    assert test.tags == {'a', 'b'}
    assert test.skipped
    assert not outer.skipped
    assert test.full_title == 'outer inner test'
    assert list(root.iter_tests()) == [test]


def test_declare_outside_file() -> None:
    """Reject suites declared while no test file is loading."""
    with pytest.raises(SuiteDefinitionError, match='outside of a test file'):
        describe('nowhere', lambda: None)

    with pytest.raises(SuiteDefinitionError, match='before_each'):
        before_each(lambda: None)
