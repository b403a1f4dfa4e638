"""Configuration resolution for functional test runs.

This package turns a config file and the chain of config files it
extends into one validated, immutable `ConfigTree`.

It provides:
- the recognized settings schema built on Pydantic models;
- Python and YAML config file evaluation with nested base configs;
- deep merging with list concatenation and explicit replacement;
- server overrides taken from `TEST_APP_*` and `TEST_DATA_*` variables.
"""

from pytest_ftr.values import replace

from .resolver import ConfigProviderApi, ConfigResolver
from .schema import ConfigSchema
from .tree import ConfigTree

__all__ = (
    'ConfigProviderApi',
    'ConfigResolver',
    'ConfigSchema',
    'ConfigTree',
    'replace',
)
