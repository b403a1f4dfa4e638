"""Test file loading.

A test file is a Python module exporting a `provider` function. The loader
evaluates the module, calls the provider with a `TestProviderApi` and
collects the single top-level suite the provider declares.
"""

from inspect import isawaitable
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pytest_ftr.core import TestProviderApi
from pytest_ftr.errors import ErrorContext, LoaderError, NoTopLevelSuiteError, TestFileError
from pytest_ftr.modules import PROVIDER_ATTRIBUTE, load_module

from .declare import FileScope, current_file, current_suite
from .models import Suite

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

if TYPE_CHECKING:
    from pytest_ftr.core import ProviderRegistry

logger = getLogger(__name__)


class TestLoader:
    """Loader of test files into one suite tree.

    Attributes:
        root: Untitled suite holding the top-level suite of every file.
    """

    __test__ = False

    def __init__(self, registry: 'ProviderRegistry',
                 call: 'Callable[..., Any]',
                 root: Suite | None = None) -> None:
        """Initialize a test loader.

        Args:
            registry: Registry of the run.
            call: Function running a sync or async callable on the event
                loop of the run and returning its result.
            root: Suite receiving the loaded suites.
        """
        self.root = root or Suite.root()

        self._registry = registry
        self._call = call
        self._stack: list[Path] = []

    def load_test_files(self, paths: 'Iterable[str | Path]') -> Suite:
        """Load test files in order.

        Returns:
            The root suite.
        """
        for path in paths:
            self.load_test_file(path)

        return self.root

    def load_test_file(self, path: str | Path) -> Suite:
        """Load one test file.

        Relative paths are resolved against the directory of the test file
        being loaded, or against the working directory at the top level.
        Called while a suite body is being evaluated, the loaded suite is
        nested in that suite.

        Args:
            path: Test file path.

        Returns:
            The top-level suite declared by the file.

        Raises:
            TestFileError: If the file is missing, already being loaded,
                fails to import or does not export a callable `provider`.
            NoTopLevelSuiteError: If the provider declares no suite.
            MultipleTopLevelSuitesError: If the provider declares more than
                one top-level suite.
            SuiteDefinitionError: If a declaration is invalid.
        """
        path = self._resolve_path(path)
        context = ErrorContext(filename=f'{path}')

        if path in self._stack:
            chain = ' -> '.join(f'{item}' for item in (*self._stack, path))
            raise TestFileError(f'Test file is already being loaded: {chain}', context=context)

        if not path.is_file():
            raise TestFileError('Test file not found', context=context)

        outer_file = current_file()
        outer_suite = current_suite()

        parent = outer_suite
        if parent is None:
            parent = outer_file.parent if outer_file else self.root

        logger.debug('Loading test file %s', path)

        scope = FileScope(path, parent)
        self._stack.append(path)
        try:
            with scope.activate():
                self._evaluate(path, context)
        finally:
            self._stack.pop()

        if scope.suite is None:
            raise NoTopLevelSuiteError('Test file declares no suite', context=context)

        if outer_suite is None and outer_file is not None:
            outer_file.claim(scope.suite)

        return scope.suite

    def _evaluate(self, path: Path, context: ErrorContext) -> None:
        """Import a test module and call its provider."""
        try:
            module = load_module(path, 'pytest_ftr.tests')

        except Exception as base:
            raise TestFileError(f'Failed to import test file: {base!r}', context=context) from base

        provider = getattr(module, PROVIDER_ATTRIBUTE, None)
        if not callable(provider):
            raise TestFileError(
                f'Test file must export a callable {PROVIDER_ATTRIBUTE!r}',
                context=context,
            )

        api = TestProviderApi(self._registry, self._call, self, path)

        try:
            result = provider(api)

        except LoaderError:
            raise

        except Exception as base:
            raise TestFileError(f'Test provider failed: {base!r}', context=context) from base

        if isawaitable(result):
            if close := getattr(result, 'close', None):
                close()
            raise TestFileError('Test provider must not be async', context=context)

    def _resolve_path(self, path: str | Path) -> Path:
        """Resolve a test file path against the file being loaded."""
        path = Path(path)
        if not path.is_absolute() and self._stack:
            path = self._stack[-1].parent / path

        return path.absolute().resolve()
