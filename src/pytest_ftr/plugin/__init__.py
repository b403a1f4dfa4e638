"""Pytest engine executing suite trees.

This module runs the suite tree assembled by the loader with pytest by:
- replacing file collection with collection of the suite tree;
- deselecting tests by title pattern and suite tags;
- mapping the bail option to pytest's `--exitfirst`;
- counting test outcomes from pytest reports.
"""

from re import compile as regexp
from typing import TYPE_CHECKING

import pytest

from pytest_ftr.engine import RunStats

from .nodes import SuiteNode, TestItem

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

if TYPE_CHECKING:
    from _pytest.main import Session
    from _pytest.reports import CollectReport, TestReport

if TYPE_CHECKING:
    from pytest_ftr.runtime import Runtime
    from pytest_ftr.suites import Suite

__all__ = (
    'PytestEngine',
    'SuiteNode',
    'SuitesPlugin',
    'TestItem',
)


class SuitesPlugin:
    """Pytest plugin object collecting one suite tree."""

    def __init__(self, root: 'Suite', runtime: 'Runtime') -> None:
        """Initialize the plugin.

        Args:
            root: Root suite of the run.
            runtime: Runtime of the run.
        """
        self.root = root
        self.runtime = runtime

        self.passed = 0
        self.failed = 0
        self.skipped = 0
        self.errors = 0

    @pytest.hookimpl(tryfirst=True)
    def pytest_collection(self, session: 'Session') -> bool:
        """Collect the suite tree instead of files.

        Args:
            session: Pytest session.

        Returns:
            True to stop other collection implementations.
        """
        config = session.config

        items: list[pytest.Item] = []
        for suite in self.root.suites:
            node = SuiteNode.from_parent(
                session,
                name=suite.title,
                path=suite.file or config.rootpath,
                nodeid=f'{self.get_relpath(suite.file, config.rootpath)}::{suite.title}',
                suite=suite,
                runtime=self.runtime,
            )
            items.extend(session.genitems(node))

        selected, deselected = self.select(items)
        if deselected:
            config.hook.pytest_deselected(items=deselected)

        session.items = selected
        config.hook.pytest_collection_modifyitems(
            session=session,
            config=config,
            items=session.items,
        )
        config.hook.pytest_collection_finish(session=session)

        session.testscollected = len(session.items)

        return True

    def pytest_collectreport(self, report: 'CollectReport') -> None:
        """Count suites that failed to collect."""
        if report.failed:
            self.errors += 1

    def pytest_runtest_logreport(self, report: 'TestReport') -> None:
        """Count test outcomes."""
        if report.when == 'call':
            if report.passed:
                self.passed += 1
            elif report.failed:
                self.failed += 1
            elif report.skipped:
                self.skipped += 1

        elif report.when == 'setup' and report.skipped:
            self.skipped += 1

        elif report.failed:
            self.errors += 1

    def select(self, items: 'Sequence[pytest.Item]') -> tuple[list[pytest.Item], list[pytest.Item]]:
        """Split items by the title pattern and tag filters of the run.

        Returns:
            Selected and deselected items.
        """
        settings = self.runtime.config.settings.engine

        pattern = regexp(settings.grep) if settings.grep else None
        include = frozenset(settings.include_tags)
        exclude = frozenset(settings.exclude_tags)

        selected: list[pytest.Item] = []
        deselected: list[pytest.Item] = []

        for item in items:
            test = item.test if isinstance(item, TestItem) else None
            if test is None:
                selected.append(item)
                continue

            keep = True
            if pattern is not None:
                keep = bool(pattern.search(test.full_title)) != settings.invert
            if include and not include & test.tags:
                keep = False
            if exclude & test.tags:
                keep = False

            (selected if keep else deselected).append(item)

        return selected, deselected

    def stats(self, exit_code: int) -> RunStats:
        """Build run stats from the counted outcomes."""
        if exit_code == pytest.ExitCode.NO_TESTS_COLLECTED:
            exit_code = pytest.ExitCode.OK

        return RunStats(
            passed=self.passed,
            failed=self.failed,
            skipped=self.skipped,
            errors=self.errors,
            exit_code=int(exit_code),
        )

    @staticmethod
    def get_relpath(path: 'Path | None', rootpath: 'Path') -> str:
        """Return a node id prefix for a test file."""
        if path is None:
            return '.'

        if path.is_relative_to(rootpath):
            return path.relative_to(rootpath).as_posix()

        return path.as_posix()


class PytestEngine:
    """Engine running suite trees with pytest.

    Attributes:
        args: Extra pytest command-line arguments.
    """

    def __init__(self, args: 'Iterable[str]' = ()) -> None:
        """Initialize the engine.

        Args:
            args: Extra pytest command-line arguments, such as `-v`.
        """
        self.args = tuple(args)

    def run(self, root: 'Suite', runtime: 'Runtime') -> RunStats:
        """Execute every selected test of the tree.

        Args:
            root: Root suite of the run.
            runtime: Runtime of the run.

        Returns:
            Outcome counts.
        """
        plugin = SuitesPlugin(root, runtime)

        args = ['-p', 'no:cacheprovider', *self.args]
        if runtime.config.get('engine.bail'):
            args.append('--exitfirst')

        exit_code = pytest.main(args, plugins=[plugin])

        return plugin.stats(exit_code)
