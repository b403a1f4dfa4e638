"""Tests for the functional test run driver."""

from typing import TYPE_CHECKING

import pytest

from pytest_ftr.core import EntryStatus, Lifecycle
from pytest_ftr.engine import RunStats
from pytest_ftr.errors import ConfigNotFoundError, LifecyclePhaseError, NoTopLevelSuiteError
from pytest_ftr.runner import FunctionalTestRunner, RunnerState

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_ftr.runtime import Runtime
    from pytest_ftr.suites import Suite


class StubEngine:
    """Engine recording what it was asked to run."""

    def __init__(self, events: list[str], stats: RunStats | None = None) -> None:
        self.events = events
        self.stats = stats or RunStats(passed=2)
        self.root: Suite | None = None
        self.statuses: dict[str, EntryStatus | None] = {}

    def run(self, root: 'Suite', runtime: 'Runtime') -> RunStats:
        self.events.append('engine')
        self.root = root
        self.statuses = {
            name: runtime.registry.status(name, 'service')
            for name in ('browser', 'retry')
        }
        return self.stats


@pytest.fixture
def events() -> list[str]:
    """Provide the list of recorded run events."""
    return []


@pytest.fixture
def lifecycle(events: list[str]) -> Lifecycle:
    """Provide a dispatcher recording run-level phases."""
    lifecycle = Lifecycle()
    lifecycle.on('beforeLoadTests', lambda root: events.append('beforeLoadTests'))
    lifecycle.on('beforeTests', lambda root: events.append('beforeTests'))
    lifecycle.on('phaseStart', lambda name: events.append(f'phaseStart {name}'))
    lifecycle.on('phaseEnd', lambda name: events.append(f'phaseEnd {name}'))
    lifecycle.on('cleanup', lambda: events.append('cleanup'))
    return lifecycle


def test_run(examples: 'Path', events: list[str], lifecycle: Lifecycle) -> None:
    """Go through every phase of a successful run."""
    engine = StubEngine(events)
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py', engine=engine, lifecycle=lifecycle)

    result = runner.run()

    assert events == [
        'beforeLoadTests',
        'phaseStart load tests',
        'phaseEnd load tests',
        'beforeTests',
        'phaseStart run tests',
        'engine',
        'phaseEnd run tests',
        'cleanup',
    ]
    assert result.exit_code == 0
    assert result.errors == []
    assert result.stats.passed == 2
    assert runner.state is RunnerState.TERMINAL
    assert engine.root is runner.root
    assert [suite.title for suite in runner.root.suites] == ['home page']
    assert engine.statuses == {'browser': EntryStatus.RESOLVED, 'retry': None}


def test_registry_cleared(examples: 'Path', events: list[str]) -> None:
    """Release every cached instance after cleanup."""
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py', engine=StubEngine(events))

    runner.run()

    assert runner.runtime is not None
    assert runner.runtime.registry.status('browser', 'service') is None


def test_preload_services(examples: 'Path', events: list[str]) -> None:
    """Construct every service before loading tests when enabled."""
    engine = StubEngine(events)
    runner = FunctionalTestRunner(
        examples / 'configs' / 'base.py',
        overrides={'preload_services': True},
        engine=engine,
    )

    result = runner.run()

    assert result.exit_code == 0
    assert engine.statuses == {'browser': EntryStatus.RESOLVED, 'retry': EntryStatus.RESOLVED}


def test_missing_config(tmp_path: 'Path', events: list[str], lifecycle: Lifecycle) -> None:
    """Fail the run and still clean up when the config is missing."""
    runner = FunctionalTestRunner(tmp_path / 'missing.py', engine=StubEngine(events), lifecycle=lifecycle)

    result = runner.run()

    assert events == ['cleanup']
    assert result.exit_code == 1
    assert result.failed_state is RunnerState.CONFIG_RESOLVING
    assert isinstance(result.errors[0], ConfigNotFoundError)
    assert runner.runtime is None


def test_load_failure(examples: 'Path', events: list[str], lifecycle: Lifecycle) -> None:
    """Close the load bracket and skip execution when loading fails."""
    runner = FunctionalTestRunner(examples / 'configs' / 'failing_run.py', engine=StubEngine(events), lifecycle=lifecycle)

    result = runner.run()

    assert events == ['beforeLoadTests', 'phaseStart load tests', 'phaseEnd load tests', 'cleanup']
    assert result.failed_state is RunnerState.SUITES_LOADING
    assert isinstance(result.errors[0], NoTopLevelSuiteError)
    assert result.exit_code == 1


def test_before_tests_failure(examples: 'Path', events: list[str], lifecycle: Lifecycle) -> None:
    """Skip execution and still clean up when setup handlers fail."""
    def fail(root: 'Suite') -> None:
        raise RuntimeError('server not ready')

    lifecycle.on('beforeTests', fail)
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py', engine=StubEngine(events), lifecycle=lifecycle)

    result = runner.run()

    assert 'engine' not in events
    assert events[-1] == 'cleanup'
    assert result.failed_state is RunnerState.EXECUTING
    (error,) = result.errors
    assert isinstance(error, LifecyclePhaseError)
    assert error.phase == 'beforeTests'
    assert result.exit_code == 1


def test_cleanup_failure(examples: 'Path', events: list[str], lifecycle: Lifecycle) -> None:
    """Report cleanup failures after running every cleanup handler."""
    def fail() -> None:
        raise RuntimeError('browser already closed')

    lifecycle.on('cleanup', fail)
    lifecycle.on('cleanup', lambda: events.append('cleanup after failure'))
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py', engine=StubEngine(events), lifecycle=lifecycle)

    result = runner.run()

    assert events[-2:] == ['cleanup', 'cleanup after failure']
    assert result.failed_state is RunnerState.CLEANUP
    assert result.stats.passed == 2
    assert result.exit_code == 1


def test_failed_tests(examples: 'Path', events: list[str]) -> None:
    """Exit with failure when the engine reports failed tests."""
    engine = StubEngine(events, RunStats(passed=1, failed=1, exit_code=1))
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py', engine=engine)

    result = runner.run()

    assert result.errors == []
    assert result.exit_code == 1


@pytest.mark.parametrize('exit_code', (
    pytest.param(pytest.ExitCode.INTERRUPTED, id='interrupted'),
    pytest.param(pytest.ExitCode.INTERNAL_ERROR, id='internal error'),
    pytest.param(pytest.ExitCode.USAGE_ERROR, id='usage error'),
))
def test_engine_stopped(examples: 'Path', events: list[str], caplog: pytest.LogCaptureFixture,
                        exit_code: pytest.ExitCode) -> None:
    """Exit with failure when the engine stops without failed tests."""
    caplog.set_level('INFO', logger='pytest_ftr')
    engine = StubEngine(events, RunStats(passed=3, exit_code=int(exit_code)))
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py', engine=engine)

    result = runner.run()

    assert result.errors == []
    assert not result.stats.ok
    assert result.exit_code == 1
    assert f'Test engine stopped with exit code {int(exit_code)}' in caplog.messages


def test_report(examples: 'Path', events: list[str], caplog: pytest.LogCaptureFixture) -> None:
    """Log the summary and the cause chain of failures."""
    caplog.set_level('INFO', logger='pytest_ftr')
    runner = FunctionalTestRunner(examples / 'configs' / 'failing.py', engine=StubEngine(events))

    runner.run()

    messages = [record.getMessage() for record in caplog.records]
    assert any('ConfigParseError' in message and 'caused by RuntimeError' in message for message in messages)
    assert '0 passed, 0 failed, 0 skipped, 1 error(s)' in messages


def test_end_to_end(pytester: pytest.Pytester, examples: 'Path') -> None:
    """Run example suites with the pytest engine."""
    runner = FunctionalTestRunner(examples / 'configs' / 'base.py')

    result = runner.run()

    assert result.errors == []
    assert result.stats.passed == 2
    assert result.exit_code == 0


def test_end_to_end_empty(pytester: pytest.Pytester, examples: 'Path') -> None:
    """Succeed when the config declares no test files."""
    runner = FunctionalTestRunner(examples / 'configs' / 'empty_run.py')

    result = runner.run()

    assert result.errors == []
    assert result.exit_code == 0
