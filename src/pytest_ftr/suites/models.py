"""Suite tree built by test modules.

Test modules declare suites, tests and hooks with the declaration
functions; the loader collects them into one tree under an untitled root
suite, which is handed to the engine. Within a suite, tests run before
nested suites, each group in declaration order.
"""

from enum import StrEnum
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path
    from typing import Self

Body: TypeAlias = Callable[[], Any]


class HookKind(StrEnum):
    """Kinds of suite hooks."""

    BEFORE = 'before'
    AFTER = 'after'
    BEFORE_EACH = 'beforeEach'
    AFTER_EACH = 'afterEach'


class Hook:
    """Hook attached to a suite."""

    __slots__ = ('fn', 'kind', 'suite')

    def __init__(self, kind: HookKind, fn: Body, suite: 'Suite') -> None:
        """Initialize a hook.

        Args:
            kind: When the hook runs.
            fn: Zero-argument sync or async callable.
            suite: Suite declaring the hook.
        """
        self.kind = kind
        self.fn = fn
        self.suite = suite

    def __repr__(self) -> str:
        """String represenatation."""
        return f'Hook({self.kind} in {self.suite.full_title!r})'

    @property
    def title(self) -> str:
        """Human-readable hook description."""
        name = getattr(self.fn, '__name__', None) or f'{self.fn!r}'
        return f'"{self.kind}" hook {name} in {self.suite.full_title!r}'


class Test:
    """Test declared in a suite."""

    __test__ = False

    def __init__(self, title: str, fn: Body, *, parent: 'Suite', skip: bool = False) -> None:
        """Initialize a test.

        Args:
            title: Test title.
            fn: Zero-argument sync or async callable.
            parent: Suite declaring the test.
            skip: Whether the test is skipped.
        """
        self.title = title
        self.fn = fn
        self.parent = parent
        self.skip = skip

    def __repr__(self) -> str:
        """String represenatation."""
        return f'Test({self.full_title!r})'

    @property
    def file(self) -> 'Path | None':
        """Test file declaring the test."""
        return self.parent.file

    @property
    def full_title(self) -> str:
        """Titles of every enclosing suite and the test, space separated."""
        return ' '.join(filter(None, (self.parent.full_title, self.title)))

    @property
    def tags(self) -> frozenset[str]:
        """Tags of every enclosing suite."""
        return self.parent.all_tags

    @property
    def skipped(self) -> bool:
        """Whether the test or an enclosing suite is skipped."""
        return self.skip or self.parent.skipped

    def hooks(self, kind: HookKind) -> tuple[Hook, ...]:
        """Return hooks of enclosing suites wrapping each run of the test.

        `before_each` hooks are ordered from the outermost suite inward,
        `after_each` hooks from the innermost suite outward.
        """
        suites: 'Iterable[Suite]' = self.parent.lineage
        if kind is HookKind.AFTER_EACH:
            suites = reversed(self.parent.lineage)

        return tuple(
            hook
            for suite in suites
            for hook in suite.hooks(kind)
        )


class Suite:
    """Suite of tests, hooks and nested suites."""

    def __init__(self, title: str, *,
                 parent: 'Suite | None' = None,
                 file: 'Path | None' = None,
                 tags: 'Iterable[str]' = (),
                 skip: bool = False) -> None:
        """Initialize a suite.

        Args:
            title: Suite title; the root suite is untitled.
            parent: Enclosing suite.
            file: Test file declaring the suite.
            tags: Tags used to select suites for a run.
            skip: Whether every test of the suite is skipped.
        """
        self.title = title
        self.parent = parent
        self.file = file
        self.tags = frozenset(tags)
        self.skip = skip

        self.suites: list[Suite] = []
        self.tests: list[Test] = []
        self._hooks: list[Hook] = []

    def __repr__(self) -> str:
        """String represenatation."""
        return f'Suite({self.full_title!r})'

    @classmethod
    def root(cls) -> 'Self':
        """Create an untitled root suite."""
        return cls('')

    @property
    def is_root(self) -> bool:
        """Whether the suite has no parent."""
        return self.parent is None

    @property
    def lineage(self) -> tuple['Suite', ...]:
        """Enclosing suites from the root down to this suite, inclusive."""
        lineage: list[Suite] = []

        suite: Suite | None = self
        while suite is not None:
            lineage.append(suite)
            suite = suite.parent

        return tuple(reversed(lineage))

    @property
    def full_title(self) -> str:
        """Titles from the outermost suite to this one, space separated."""
        return ' '.join(suite.title for suite in self.lineage if suite.title)

    @property
    def all_tags(self) -> frozenset[str]:
        """Tags of this suite and every enclosing suite."""
        return frozenset().union(*(suite.tags for suite in self.lineage))

    @property
    def skipped(self) -> bool:
        """Whether this suite or an enclosing one is skipped."""
        return any(suite.skip for suite in self.lineage)

    def add_suite(self, suite: 'Suite') -> 'Suite':
        """Attach a nested suite."""
        suite.parent = self
        self.suites.append(suite)
        return suite

    def add_test(self, test: Test) -> Test:
        """Attach a test."""
        self.tests.append(test)
        return test

    def add_hook(self, kind: HookKind, fn: Body) -> Hook:
        """Attach a hook."""
        hook = Hook(kind, fn, self)
        self._hooks.append(hook)
        return hook

    def hooks(self, kind: HookKind) -> tuple[Hook, ...]:
        """Return this suite's hooks of a kind in declaration order."""
        return tuple(hook for hook in self._hooks if hook.kind is kind)

    def iter_tests(self) -> 'Iterator[Test]':
        """Iterate tests of the suite and nested suites in run order."""
        yield from self.tests
        for suite in self.suites:
            yield from suite.iter_tests()

    def count_tests(self) -> int:
        """Count tests of the suite and nested suites."""
        return sum(1 for _ in self.iter_tests())
