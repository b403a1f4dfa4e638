"""Environment overrides for server connection parameters.

In custom-target mode the application under test and the backing data
service are located through environment variables rather than config
files. Every parameter is independently optional:

- `TEST_APP_PROTOCOL`, `TEST_APP_HOSTNAME`, `TEST_APP_PORT`,
  `TEST_APP_USERNAME`, `TEST_APP_PASSWORD`;
- `TEST_DATA_PROTOCOL`, `TEST_DATA_HOSTNAME`, `TEST_DATA_PORT`,
  `TEST_DATA_USERNAME`, `TEST_DATA_PASSWORD`.
"""

from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict

from pytest_ftr.errors import ConfigSchemaError
from pytest_ftr.models import SettingsModel
from pytest_ftr.values import RawConfig  # noqa: TC001


class ServerEnvironment(SettingsModel):
    """Server parameters read from environment variables."""

    protocol: str | None = None
    hostname: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None


class AppEnvironment(ServerEnvironment):
    """Application under test parameters."""

    model_config = SettingsConfigDict(env_prefix='TEST_APP_')


class DataEnvironment(ServerEnvironment):
    """Backing data service parameters."""

    model_config = SettingsConfigDict(env_prefix='TEST_DATA_')


def _read_server(model: type[ServerEnvironment]) -> RawConfig:
    """Read the variables of one server that are set.

    Raises:
        ConfigSchemaError: If a variable holds an invalid value.
    """
    try:
        return model().model_dump(exclude_none=True)

    except ValidationError as base:
        prefix = model.model_config.get('env_prefix') or ''
        error = base.errors()[0]
        variable = f'{prefix}{error["loc"][0]}'.upper()
        raise ConfigSchemaError(f'{variable}: {error["msg"]}') from base


def environment_overrides() -> RawConfig:
    """Collect server overrides present in the environment.

    Returns:
        A raw config fragment holding only the variables that are set.

    Raises:
        ConfigSchemaError: If a variable holds an invalid value.
    """
    servers = {
        name: values
        for name, values in (
            ('app', _read_server(AppEnvironment)),
            ('data', _read_server(DataEnvironment)),
        )
        if values
    }

    if not servers:
        return {}

    return {'servers': servers}
