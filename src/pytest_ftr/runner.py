"""Functional test run driver.

A run goes through a fixed sequence of states:

    idle -> config_resolving -> services_warming -> suites_loading
         -> executing -> cleanup -> reporting -> terminal

`services_warming` happens only when the config enables
`preload_services`. A failure before or during execution skips the
remaining work and goes straight to `cleanup`, which runs exactly once
per run, and the registry is cleared afterwards.
"""

from asyncio import Runner
from contextlib import contextmanager
from enum import StrEnum
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pytest_ftr.config import ConfigResolver
from pytest_ftr.core import Lifecycle, Phase
from pytest_ftr.engine import RunStats
from pytest_ftr.errors import ErrorFormatter
from pytest_ftr.logs import VERBOSE
from pytest_ftr.plugin import PytestEngine
from pytest_ftr.runtime import Runtime

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from logging import Logger

if TYPE_CHECKING:
    from pytest_ftr.config import ConfigTree
    from pytest_ftr.engine import Engine
    from pytest_ftr.suites import Suite

logger = getLogger(__name__)


class RunnerState(StrEnum):
    """States of a run."""

    IDLE = 'idle'
    CONFIG_RESOLVING = 'config_resolving'
    SERVICES_WARMING = 'services_warming'
    SUITES_LOADING = 'suites_loading'
    EXECUTING = 'executing'
    CLEANUP = 'cleanup'
    REPORTING = 'reporting'
    TERMINAL = 'terminal'


class RunResult:
    """Outcome of a run.

    Attributes:
        stats: Counts reported by the engine, empty when the run did not
            reach execution.
        errors: Failures that stopped the run or happened during cleanup.
        failed_state: State the first failure happened in.
    """

    def __init__(self, stats: RunStats | None = None,
                 errors: 'list[BaseException] | None' = None,
                 failed_state: RunnerState | None = None) -> None:
        """Initialize a run result."""
        self.stats = stats or RunStats()
        self.errors = errors or []
        self.failed_state = failed_state

    def __repr__(self) -> str:
        """String represenatation."""
        return f'RunResult(exit_code={self.exit_code}, stats={self.stats!r}, errors={self.errors!r})'

    @property
    def exit_code(self) -> int:
        """Process exit status: 0 when every selected test passed."""
        if self.errors or not self.stats.ok:
            return 1

        return 0


class FunctionalTestRunner:
    """Driver of one functional test run.

    Attributes:
        state: Current state of the run.
        config: Resolved config, once resolved.
        runtime: Runtime of the run, once the config is resolved.
        root: Root suite, once test files are loaded.
    """

    def __init__(self, config_path: str | Path, *,
                 overrides: 'Mapping[str, Any] | None' = None,
                 engine: 'Engine | None' = None,
                 lifecycle: Lifecycle | None = None,
                 log: 'Logger | None' = None) -> None:
        """Initialize a run driver.

        Args:
            config_path: Primary config file.
            overrides: Raw settings merged on top of the primary config.
            engine: Test execution engine, pytest when omitted.
            lifecycle: Phase dispatcher, a new one when omitted.
            log: Run logger.
        """
        self.config_path = Path(config_path)
        self.overrides = dict(overrides or {})
        self.engine = engine or PytestEngine()
        self.lifecycle = lifecycle or Lifecycle()
        self.log = log or getLogger('pytest_ftr')

        self.state = RunnerState.IDLE
        self.config: ConfigTree | None = None
        self.runtime: Runtime | None = None
        self.root: Suite | None = None

    def run(self) -> RunResult:
        """Execute the run on a dedicated event loop.

        Returns:
            Outcome of the run; failures are reported, not raised.
        """
        result = RunResult()

        with Runner() as runner:
            try:
                self.execute(runner, result)

            except Exception as error:
                self.fail(result, error)

            finally:
                self.cleanup(runner, result)

        self.report(result)
        self.transition(RunnerState.TERMINAL)

        return result

    def execute(self, runner: Runner, result: RunResult) -> None:
        """Resolve config, load test files and run the engine."""
        self.transition(RunnerState.CONFIG_RESOLVING)
        resolver = ConfigResolver(self.log)
        self.config = runner.run(resolver.resolve(self.config_path, self.overrides))

        self.runtime = Runtime(
            self.config,
            runner=runner,
            lifecycle=self.lifecycle,
            log=self.log,
        )

        if self.config.get('preload_services'):
            self.transition(RunnerState.SERVICES_WARMING)
            runner.run(self.runtime.registry.load_all())

        self.transition(RunnerState.SUITES_LOADING)
        loader = self.runtime.create_loader()
        self.root = loader.root

        self.runtime.trigger(Phase.BEFORE_LOAD_TESTS, self.root)
        with self.bracket(runner, 'load tests'):
            loader.load_test_files(self.config.get('test_files'))
        logger.info('Loaded %d test(s) from %d file(s)',
                    self.root.count_tests(), len(self.config.get('test_files')))

        self.transition(RunnerState.EXECUTING)
        self.runtime.trigger(Phase.BEFORE_TESTS, self.root)

        with self.bracket(runner, 'run tests'):
            result.stats = self.engine.run(self.root, self.runtime)

    @contextmanager
    def bracket(self, runner: Runner, name: str) -> 'Iterator[None]':
        """Bracket a group of work with `phaseStart` and `phaseEnd`."""
        runner.run(self.lifecycle.trigger(Phase.PHASE_START, name))
        try:
            yield
        finally:
            runner.run(self.lifecycle.trigger(Phase.PHASE_END, name))

    def cleanup(self, runner: Runner, result: RunResult) -> None:
        """Trigger `cleanup` once and release cached instances."""
        self.transition(RunnerState.CLEANUP)

        try:
            runner.run(self.lifecycle.trigger(Phase.CLEANUP))
        except Exception as error:
            self.fail(result, error)

        if self.runtime is not None:
            self.runtime.registry.clear()

    def report(self, result: RunResult) -> None:
        """Log the summary and every failure of the run."""
        self.transition(RunnerState.REPORTING)

        for error in result.errors:
            logger.error('%s', ErrorFormatter.format_chain(error))

        stats = result.stats
        if stats.exit_code:
            logger.error('Test engine stopped with exit code %d', stats.exit_code)

        logger.info(
            '%d passed, %d failed, %d skipped, %d error(s)',
            stats.passed, stats.failed, stats.skipped, stats.errors + len(result.errors),
        )

    def fail(self, result: RunResult, error: BaseException) -> None:
        """Record a run failure."""
        if result.failed_state is None:
            result.failed_state = self.state

        logger.debug('Run failed in state %s', self.state, exc_info=error)
        result.errors.append(error)

    def transition(self, state: RunnerState) -> None:
        """Move the run to another state."""
        logger.log(VERBOSE, 'Run state %s -> %s', self.state, state)
        self.state = state
