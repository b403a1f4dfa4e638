"""Test execution engine interface.

The runner hands the assembled suite tree to an engine, which executes
tests and hooks, fires the per-suite and per-test lifecycle phases and
reports counts back. The bundled engine runs suites with pytest.
"""

from typing import TYPE_CHECKING, Protocol

from pydantic import Field, NonNegativeInt

from pytest_ftr.models import SchemaModel

if TYPE_CHECKING:
    from pytest_ftr.runtime import Runtime
    from pytest_ftr.suites import Suite


class RunStats(SchemaModel):
    """Outcome counts reported by an engine."""

    passed: NonNegativeInt = Field(
        default=0,
        title='Passed tests',
    )

    failed: NonNegativeInt = Field(
        default=0,
        title='Failed tests',
        description='Tests whose body or hooks failed.',
    )

    skipped: NonNegativeInt = Field(
        default=0,
        title='Skipped tests',
    )

    errors: NonNegativeInt = Field(
        default=0,
        title='Errors',
        description='Failures outside test bodies, such as suite hooks.',
    )

    exit_code: int = Field(
        default=0,
        title='Engine exit code',
        description='Zero when the engine finished the run, nonzero when it was interrupted or crashed.',
    )

    @property
    def ok(self) -> bool:
        """Whether the engine finished and nothing failed."""
        return not self.exit_code and not self.failed and not self.errors


class Engine(Protocol):
    """Executes a suite tree."""

    def run(self, root: 'Suite', runtime: 'Runtime') -> RunStats:
        """Execute every selected test of the tree.

        Args:
            root: Root suite of the run.
            runtime: Runtime providing the event loop and lifecycle.

        Returns:
            Outcome counts.
        """
        ...
