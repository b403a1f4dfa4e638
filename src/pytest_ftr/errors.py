"""Core exception hierarchy.

This module defines the error types raised by the runner layers: config
resolution, provider resolution, test loading and lifecycle coordination.
Every error carries an optional context describing where it happened and
knows how to render itself, including its chain of causes, for the
terminal report.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump
from yaml.error import MarkedYAMLError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails, ValidationError

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_FILENAME = '<unknown file>'
FORMAT_INDENT = 4

SCALARS = (str, bytes, int, float, bool)


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Name of the config or test file where the error occurred.
    filename: str | None

    #: Line number in the source file.
    line_num: int | None
    #: Column number in the source file.
    column_num: int | None

    #: Name of the provider being resolved.
    provider: str | None
    #: Name of the lifecycle phase being triggered.
    phase: str | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Data fragment associated with the error.
    element: Any


class ErrorFormatter:
    """Utility class for formatting runner errors.

    This formatter produces human-readable messages with optional source
    location, a YAML snippet of the failing fragment, and the chain of
    underlying causes.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        if location := cls.get_location_string(context, indent=FORMAT_INDENT):
            message += linesep + location
        if snippet := cls.get_snippet_string(context, indent=FORMAT_INDENT * 2):
            message += linesep + snippet

        return message

    @classmethod
    def format_chain(cls, error: BaseException) -> str:
        """Render an error together with all of its causes.

        Args:
            error: The outermost exception.

        Returns:
            Multi-line text, one block per exception in the chain.
        """
        lines = [f'{type(error).__name__}: {error}']

        seen = {id(error)}
        cause = error.__cause__ or error.__context__
        while cause is not None and id(cause) not in seen:
            seen.add(id(cause))
            lines.append(f'  caused by {type(cause).__name__}: {cause}')
            cause = cause.__cause__ or cause.__context__

        return linesep.join(lines)

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format source and resolution location information.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string, or an empty string when the
            context holds no location.
        """
        indent = cls._ensure_indent(indent)
        lines = []

        if (filename := context.get('filename')) or context.get('line_num') is not None:
            message = f'{indent}in "{filename or FORMAT_FILENAME}"'
            if (line_num := context.get('line_num')) is not None:
                message += f', line {line_num + 1}'
                if (column_num := context.get('column_num')) is not None:
                    message += f', column {column_num + 1}'
            lines.append(message)

        if provider := context.get('provider'):
            lines.append(f'{indent}while resolving provider {provider!r}')

        if phase := context.get('phase'):
            lines.append(f'{indent}during lifecycle phase {phase!r}')

        return linesep.join(lines)

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing data or a YAML error.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        if (error := context.get('error')) and isinstance(error, MarkedYAMLError):
            if error.problem_mark is None:
                return ''
            snippet = error.problem_mark.get_snippet(indent=0) or ''
            return cls._make_indent(snippet, indent)

        if (element := context.get('element')) is not None:
            return f'{indent}{SNIPPET_ELLIPSIS}{cls._make_yaml(element, indent)}'

        return ''

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Non-scalar and non-container objects, such as provider callables,
        are replaced with a placeholder.

        Args:
            value: Arbitrary value to sanitize.

        Returns:
            A YAML-safe representation of the value.
        """
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, dict):
            return {
                key: cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, (list, tuple)):
            return [cls._filter_unsafe(item) for item in value]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a value to a YAML-formatted string.

        Args:
            value: Arbitrary value to serialize.
            indent: Optional indentation prefix.

        Returns:
            A YAML-formatted string representation of the value.
        """
        data = dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string.

        Empty or whitespace-only lines are omitted.

        Args:
            value: Original multi-line string.
            indent: Indentation prefix.

        Returns:
            Indented string.
        """
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation input.

        Args:
            indent: Indentation as string or number of spaces.

        Returns:
            A string consisting of spaces or the provided string.
        """
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class FTRError(Exception, ErrorFormatter):
    """Base exception for all pytest-ftr errors.

    All custom exceptions raised by the library inherit from this class
    to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional location values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String represenatation."""
        return self.format(self.message, self.context)


class ConfigError(FTRError):
    """Base error for configuration resolution failures."""


class ConfigNotFoundError(ConfigError):
    """Error raised when a config file does not exist."""


class ConfigParseError(ConfigError):
    """Error raised when a config file can not be evaluated.

    This covers modules that fail to import, do not export a callable
    `provider`, or produce something other than a mapping, and YAML
    documents that are malformed.
    """

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError) -> 'Self':
        """Create a parse error from a YAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.

        Returns:
            ConfigParseError keeping the YAML position.
        """
        mark = error.problem_mark

        error_context = ErrorContext(
            filename=mark.name if mark else None,
            line_num=mark.line if mark else None,
            column_num=mark.column if mark else None,
            error=error,
        )

        message = 'Invalid YAML'
        if error.problem:
            message += f'{linesep}{" " * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)


class ConfigSchemaError(ConfigError):
    """Error raised when resolved config values fail validation."""

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None) -> 'Self':
        """Create a schema error from a Pydantic validation failure.

        The first validation issue that can be located in the raw data
        is reported with its dotted path and the offending fragment.

        Args:
            error: ValidationError raised by Pydantic.
            data: Raw merged config data.
            filename: Config file being resolved.

        Returns:
            ConfigSchemaError representing the validation failure.
        """
        error_context = ErrorContext(filename=filename, error=error)

        if not isinstance(data, dict):
            return cls('Config must be a mapping', context=error_context)

        for item in error.errors(include_url=False, include_input=False):
            if located := cls._locate_pydantic_context(data, item):
                message, value = located
                return cls(message, context=ErrorContext({**error_context, 'element': value}))

        return cls('Config validation error', context=error_context)

    @classmethod
    def _locate_pydantic_context(cls, value: Any,  # noqa: ANN401
                                 error: 'ErrorDetails') -> tuple[str, Any] | None:
        """Locate the most specific failing fragment in config data.

        Args:
            value: Root data structure being validated.
            error: Pydantic error details including location path.

        Returns:
            A tuple of (error message, extracted fragment) if a relevant
            context can be located, otherwise None.
        """
        container = last_item = value
        last_key: int | str | None = None
        path: list[str] = []

        for key in error['loc']:
            if isinstance(last_item, (list, tuple)):
                if isinstance(key, int) and 0 <= key < len(last_item):
                    container, last_item, last_key = last_item, last_item[key], key
            elif isinstance(last_item, dict):
                if key in last_item:
                    container, last_item, last_key = last_item, last_item[key], key
            else:
                break
            path.append(f'{key}')

        message = (error.get('msg') or '').strip()
        if not message or last_key is None:
            return None

        message = f'{".".join(path)}: {message}'
        if isinstance(container, (list, tuple)):
            return message, [last_item]

        return message, {last_key: last_item}


class ConfigCycleError(ConfigError):
    """Error raised when config files extend each other in a loop."""

    def __init__(self, chain: 'Sequence[str]') -> None:
        """Initialize a config cycle error.

        Args:
            chain: Config paths forming the cycle, first path repeated last.
        """
        self.chain = tuple(chain)

        super().__init__(f'Circular config dependency: {" -> ".join(self.chain)}')


class ProviderError(FTRError):
    """Base error for provider registration and resolution failures."""


class UnknownProviderError(ProviderError):
    """Error raised when requesting a name that was never registered."""

    def __init__(self, name: str, kind: str) -> None:
        """Initialize an unknown provider error.

        Args:
            name: Requested provider name.
            kind: Requested provider kind.
        """
        self.name = name
        self.kind = kind

        super().__init__(f'Unknown {kind} {name!r}')


class CircularDependencyError(ProviderError):
    """Error raised when a provider requests itself while being built."""

    def __init__(self, cycle: 'Iterable[str]') -> None:
        """Initialize a circular dependency error.

        Args:
            cycle: Provider names forming the cycle in request order.
        """
        self.cycle = list(cycle)

        path = ' -> '.join((*self.cycle, self.cycle[0]))
        super().__init__(f'Circular dependency between providers: {path}')


class ProviderConstructionError(ProviderError):
    """Error raised when a provider factory fails.

    The original failure is available as `__cause__`.
    """

    def __init__(self, name: str, kind: str, error: BaseException) -> None:
        """Initialize a construction error.

        Args:
            name: Name of the provider that failed.
            kind: Kind of the provider that failed.
            error: Exception raised by the factory.
        """
        self.name = name
        self.kind = kind
        self.error = error

        reason = error.message if isinstance(error, FTRError) else error
        super().__init__(
            f'Failed to construct {kind} {name!r}: {reason}',
            context=ErrorContext(provider=name),
        )


class LoaderError(FTRError):
    """Base error for test file loading failures."""


class TestFileError(LoaderError):
    """Error raised when a test file can not be loaded."""

    __test__ = False


class SuiteDefinitionError(LoaderError):
    """Error raised when a suite, test or hook is declared incorrectly."""


class MultipleTopLevelSuitesError(LoaderError):
    """Error raised when a test file declares a second top-level suite."""


class NoTopLevelSuiteError(LoaderError):
    """Error raised when a test file declares no suite at all."""


class LifecycleError(FTRError):
    """Base error for lifecycle coordination failures."""


class UnknownPhaseError(LifecycleError):
    """Error raised for a phase name outside the recognized set."""


class LifecyclePhaseError(LifecycleError):
    """Error raised when lifecycle handlers of a phase fail.

    For regular phases `errors` holds the single failure that stopped the
    phase; for `cleanup` it holds every failure collected.
    """

    def __init__(self, phase: str, errors: 'Sequence[BaseException]') -> None:
        """Initialize a phase error.

        Args:
            phase: Name of the failed phase.
            errors: Failures raised by handlers, in handler order.
        """
        self.phase = phase
        self.errors = tuple(errors)

        details = '; '.join(f'{error!r}' for error in self.errors)
        super().__init__(
            f'{len(self.errors)} handler(s) failed: {details}',
            context=ErrorContext(phase=phase),
        )
