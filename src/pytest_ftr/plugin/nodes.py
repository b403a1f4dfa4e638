"""Pytest nodes executing the suite tree.

Every suite becomes a collector node and every test an item, so pytest
setup and teardown of collectors drive the suite hooks:

- entering a suite triggers `beforeTestSuite` and runs its `before` hooks;
- leaving it runs its `after` hooks and triggers `afterTestSuite`;
- each test triggers `beforeEachTest`, runs the `before_each` hooks of
  its enclosing suites, the body and then the `after_each` hooks.

Failing hooks trigger `testHookFailure`; failing test bodies trigger
`testFailure`.
"""

from asyncio import timeout as deadline_after
from typing import TYPE_CHECKING

import pytest

from pytest_ftr.core import Phase, invoke
from pytest_ftr.suites import HookKind

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path
    from typing import Any

if TYPE_CHECKING:
    from pytest_ftr.runtime import Runtime
    from pytest_ftr.suites import Hook, Suite, Test


def run_hook(runtime: 'Runtime', hook: 'Hook') -> None:
    """Run a suite hook, reporting failures to the lifecycle.

    Args:
        runtime: Runtime of the run.
        hook: Hook to run.

    Raises:
        Exception: The hook failure, after `testHookFailure` handlers ran.
    """
    try:
        runtime.call(hook.fn)

    except Exception as error:
        runtime.trigger(Phase.TEST_HOOK_FAILURE, error, hook)
        raise


class SuiteNode(pytest.Collector):
    """Pytest collector for one suite."""

    __test__ = False

    def __init__(self, *, suite: 'Suite', runtime: 'Runtime', **kwargs: 'Any') -> None:
        """Initialize a suite collector.

        Args:
            suite: Suite to execute.
            runtime: Runtime of the run.
            **kwargs: Keyword pytest.Collector arguments.
        """
        super().__init__(**kwargs)

        self.suite = suite
        self.runtime = runtime

    def collect(self) -> 'Iterable[TestItem | SuiteNode]':
        """Collect tests of the suite first, then nested suites."""
        for test in self.suite.tests:
            item = TestItem.from_parent(
                self,
                name=test.title,
                test=test,
                runtime=self.runtime,
            )
            if test.skipped:
                item.add_marker(pytest.mark.skip(reason='skipped in suite declaration'))
            yield item

        for suite in self.suite.suites:
            yield SuiteNode.from_parent(
                self,
                name=suite.title,
                path=suite.file or self.path,
                suite=suite,
                runtime=self.runtime,
            )

    def setup(self) -> None:
        """Enter the suite."""
        self.runtime.trigger(Phase.BEFORE_TEST_SUITE, self.suite)

        for hook in self.suite.hooks(HookKind.BEFORE):
            run_hook(self.runtime, hook)

    def teardown(self) -> None:
        """Leave the suite.

        Runs even when entering the suite failed.
        """
        try:
            for hook in self.suite.hooks(HookKind.AFTER):
                run_hook(self.runtime, hook)
        finally:
            self.runtime.trigger(Phase.AFTER_TEST_SUITE, self.suite)

    def reportinfo(self) -> tuple['Path', None, str]:
        """Report the declaring file and the full suite title."""
        return self.path, None, self.suite.full_title


class TestItem(pytest.Item):
    """Pytest item executing one test."""

    __test__ = False

    def __init__(self, *, test: 'Test', runtime: 'Runtime', **kwargs: 'Any') -> None:
        """Initialize a test item.

        Args:
            test: Test to execute.
            runtime: Runtime of the run.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.test = test
        self.runtime = runtime

    def runtest(self) -> None:
        """Execute the test with its `before_each` and `after_each` hooks."""
        runtime = self.runtime
        runtime.trigger(Phase.BEFORE_EACH_TEST, self.test)

        try:
            for hook in self.test.hooks(HookKind.BEFORE_EACH):
                run_hook(runtime, hook)

            try:
                runtime.call(self.run_body)
            except Exception as error:
                runtime.trigger(Phase.TEST_FAILURE, error, self.test)
                raise

        finally:
            for hook in self.test.hooks(HookKind.AFTER_EACH):
                run_hook(runtime, hook)

    async def run_body(self) -> None:
        """Run the test body within the test timeout.

        Synchronous bodies block the loop and are not interrupted.

        Raises:
            TimeoutError: If an async body exceeds the timeout.
        """
        limit = self.runtime.config.get('timeouts.test')

        try:
            async with deadline_after(limit / 1000) as deadline:
                await invoke(self.test.fn)

        except TimeoutError as error:
            if deadline.expired():
                raise TimeoutError(f'Test exceeded the {limit}ms timeout') from error
            raise

    def reportinfo(self) -> tuple['Path', None, str]:
        """Report the declaring file and the full test title."""
        return self.path, None, self.test.full_title
