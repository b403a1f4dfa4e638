"""Recognized configuration schema.

Defines immutable Pydantic models that describe every setting a config
file may contain. Resolved configs are validated against `ConfigSchema`
after all base configs have been merged, and unknown keys are rejected.
"""

from collections.abc import Callable
from pathlib import Path  # noqa: TC003
from re import compile as regexp
from re import error as RegexError  # noqa: N812
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, Field, ImportString, PositiveInt, TypeAdapter, field_validator

from pytest_ftr.models import SchemaModel
from pytest_ftr.names import Identifier  # noqa: TC001

_IMPORT_STRING = TypeAdapter(ImportString)


def _import_provider(value: Any) -> Any:  # noqa: ANN401
    """Import a provider referenced by an import string.

    YAML config files can not hold Python callables, so they reference
    providers as `package.module:attribute` strings.

    Args:
        value: Callable or import string.

    Returns:
        The imported object, or the value itself when it is not a string.
    """
    if isinstance(value, str):
        return _IMPORT_STRING.validate_python(value)

    return value


#: Provider factory: a callable receiving a capability object and
#: returning the instance, optionally through an awaitable.
ProviderFactory = Annotated[
    Callable[..., Any],
    BeforeValidator(_import_provider),
]


class ServerSettings(SchemaModel):
    """Connection parameters of a server the tests talk to."""

    protocol: Literal['http', 'https'] = Field(
        default='http',
        title='Protocol',
    )

    hostname: str = Field(
        default='localhost',
        title='Hostname',
    )

    port: PositiveInt | None = Field(
        default=None,
        title='Port',
        description='Port number; the protocol default is used when omitted.',
    )

    username: str | None = Field(
        default=None,
        title='Username',
    )

    password: str | None = Field(
        default=None,
        title='Password',
    )


class ServersSettings(SchemaModel):
    """Servers involved in a run."""

    app: ServerSettings = Field(
        default_factory=ServerSettings,
        title='Application under test',
    )

    data: ServerSettings = Field(
        default_factory=ServerSettings,
        title='Backing data service',
    )


class AppSettings(SchemaModel):
    """Location of one application inside the application under test."""

    pathname: str = Field(
        default='/',
        title='Path name',
    )

    hash: str | None = Field(
        default=None,
        title='URL fragment',
    )


class TimeoutSettings(SchemaModel):
    """Timeouts in milliseconds."""

    test: PositiveInt = Field(
        default=360_000,
        title='Test timeout',
        description='Maximum duration of a single test body.',
    )

    try_: PositiveInt = Field(
        default=120_000,
        alias='try',
        title='Retry timeout',
        description='Default time budget of the `retry` service.',
    )

    find: PositiveInt = Field(
        default=10_000,
        title='Find timeout',
    )

    wait_for: PositiveInt = Field(
        default=20_000,
        title='Wait timeout',
    )

    wait_for_exists: PositiveInt = Field(
        default=2_500,
        title='Wait for exists timeout',
    )


class EngineSettings(SchemaModel):
    """Options passed to the test execution engine."""

    bail: bool = Field(
        default=False,
        title='Bail',
        description='Stop executing tests after the first failure.',
    )

    grep: str | None = Field(
        default=None,
        title='Test filter',
        description='Regular expression searched in full test titles.',
    )

    invert: bool = Field(
        default=False,
        title='Invert filter',
        description='Run only tests whose titles do not match `grep`.',
    )

    include_tags: list[str] = Field(
        default_factory=list,
        title='Included tags',
        description='When not empty, only suites with one of these tags run.',
    )

    exclude_tags: list[str] = Field(
        default_factory=list,
        title='Excluded tags',
        description='Suites with one of these tags do not run.',
    )

    @field_validator('grep')
    @classmethod
    def validate_grep(cls, value: str | None) -> str | None:
        """Ensure the test filter is a valid regular expression."""
        if value is not None:
            try:
                regexp(value)
            except RegexError as error:
                raise ValueError(f'Invalid pattern {value!r}: {error}') from error

        return value


class ScreenshotSettings(SchemaModel):
    """Screenshot storage used by browser services."""

    directory: Path | None = Field(
        default=None,
        title='Screenshots directory',
    )


class ConfigSchema(SchemaModel):
    """Root configuration model."""

    test_files: list[Path] = Field(
        default_factory=list,
        title='Test files',
        description=(
            'Test modules loaded for the run, in order. '
            'Relative paths are resolved against the declaring config file.'
        ),
    )

    services: dict[Identifier, ProviderFactory] = Field(
        default_factory=dict,
        title='Services',
        description='Service providers keyed by service name.',
    )

    page_objects: dict[Identifier, ProviderFactory] = Field(
        default_factory=dict,
        title='Page objects',
        description='Page object providers keyed by page object name.',
    )

    apps: dict[Identifier, AppSettings] = Field(
        default_factory=dict,
        title='Apps',
    )

    servers: ServersSettings = Field(
        default_factory=ServersSettings,
        title='Servers',
    )

    timeouts: TimeoutSettings = Field(
        default_factory=TimeoutSettings,
        title='Timeouts',
    )

    engine: EngineSettings = Field(
        default_factory=EngineSettings,
        title='Engine options',
    )

    screenshots: ScreenshotSettings = Field(
        default_factory=ScreenshotSettings,
        title='Screenshots',
    )

    preload_services: bool = Field(
        default=False,
        title='Preload services',
        description='Construct every registered service before loading tests.',
    )
