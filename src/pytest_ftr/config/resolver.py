"""Config file resolution.

A config file is either a Python module exporting a `provider` function or
a YAML document. Python providers receive a `ConfigProviderApi` and may
read other config files through it. YAML documents name their bases with
a top-level `extends` key.

Every config a module reads becomes a base of it unless read with
`as_base=False`. Config modules return only their own settings: bases are
merged first, in the order they were read, and the returned mapping is
merged on top of them, so re-spreading a base into the result would
duplicate list values.
"""

from inspect import isawaitable
from logging import Logger, getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeAlias

from pydantic import ValidationError
from yaml import SafeLoader, YAMLError, add_constructor, load
from yaml.error import MarkedYAMLError
from yaml.nodes import MappingNode, SequenceNode

from pytest_ftr.errors import (
    ConfigCycleError,
    ConfigError,
    ConfigNotFoundError,
    ConfigParseError,
    ConfigSchemaError,
    ErrorContext,
)
from pytest_ftr.modules import PROVIDER_ATTRIBUTE, load_module
from pytest_ftr.values import RawConfig, Replace, merge, merge_all

from .environment import environment_overrides
from .schema import ConfigSchema
from .tree import ConfigTree

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from yaml.nodes import Node

logger = getLogger(__name__)

#: Top-level YAML key naming base config files.
EXTENDS_KEY = 'extends'
#: Suffixes of config files parsed as YAML.
YAML_SUFFIXES = frozenset({'.yml', '.yaml'})

Stack: TypeAlias = tuple[Path, ...]


class ConfigLoader(SafeLoader):
    """YAML loader for config files with the `!replace` tag."""


def _construct_replace(loader: SafeLoader, node: 'Node') -> Replace:
    """Build a `Replace` marker from a tagged YAML node."""
    if isinstance(node, SequenceNode):
        return Replace(loader.construct_sequence(node, deep=True))

    if isinstance(node, MappingNode):
        return Replace(loader.construct_mapping(node, deep=True))

    return Replace(loader.construct_scalar(node))  # type: ignore[arg-type]


add_constructor('!replace', _construct_replace, Loader=ConfigLoader)


class ConfigProviderApi:
    """Capability object handed to config module providers.

    Attributes:
        log: Logger of the run.
        bases: Configs read through this object, in read order.
    """

    def __init__(self, resolver: 'ConfigResolver', path: Path, stack: Stack) -> None:
        """Initialize a config provider capability object.

        Args:
            resolver: Resolver evaluating the config module.
            path: Path of the config module.
            stack: Config paths being resolved, outermost first.
        """
        self.log = resolver.log
        self.bases: list[ConfigTree] = []

        self._resolver = resolver
        self._path = path
        self._stack = stack

    async def read_config_file(self, path: str | Path,
                               overrides: 'Mapping[str, Any] | None' = None, *,
                               as_base: bool = True) -> ConfigTree:
        """Resolve another config file, by default as a base.

        A base is merged underneath the settings the provider returns. A
        provider that only picks values out of another config reads it
        with `as_base=False`, and may then spread `get_all()` of it into
        its result without duplicating lists.

        Args:
            path: Config path, relative to the current config file.
            overrides: Raw settings merged on top of the read config.
            as_base: Whether to merge the read config into this one.

        Returns:
            The resolved config.
        """
        tree = await self._resolver.resolve_nested(
            self._path.parent / path,
            overrides=overrides,
            stack=self._stack,
        )
        if as_base:
            self.bases.append(tree)

        return tree


class ConfigResolver:
    """Resolver producing `ConfigTree` instances from config files."""

    def __init__(self, log: Logger | None = None) -> None:
        """Initialize a config resolver.

        Args:
            log: Logger handed to config modules.
        """
        self.log = log or getLogger('pytest_ftr')

    async def resolve(self, path: str | Path,
                      overrides: 'Mapping[str, Any] | None' = None) -> ConfigTree:
        """Resolve the primary config of a run.

        Environment overrides are applied to the primary config only.

        Args:
            path: Config file path.
            overrides: Raw settings merged on top of the config, such as
                command-line options.

        Returns:
            Validated immutable config.

        Raises:
            ConfigNotFoundError: If a config file does not exist.
            ConfigParseError: If a config file can not be evaluated.
            ConfigSchemaError: If merged settings are invalid.
            ConfigCycleError: If config files extend each other in a loop.
        """
        return await self._resolve(Path(path), overrides, stack=(), primary=True)

    async def resolve_nested(self, path: str | Path, *,
                             overrides: 'Mapping[str, Any] | None' = None,
                             stack: Stack = ()) -> ConfigTree:
        """Resolve a base config read from another config."""
        return await self._resolve(Path(path), overrides, stack=stack, primary=False)

    async def _resolve(self, path: Path, overrides: 'Mapping[str, Any] | None', *,
                       stack: Stack, primary: bool) -> ConfigTree:
        """Resolve a config file with cycle checking."""
        path = path.absolute().resolve()
        if path in stack:
            raise ConfigCycleError([f'{item}' for item in (*stack, path)])

        if not path.is_file():
            raise ConfigNotFoundError(
                'Config file not found',
                context=ErrorContext(filename=f'{path}'),
            )

        logger.debug('Loading config file %s', path)
        stack = (*stack, path)

        if path.suffix in YAML_SUFFIXES:
            bases, raw = await self._load_yaml(path, stack)
        else:
            bases, raw = await self._load_module(path, stack)

        data = merge_all(
            *(base.get_all() for base in bases),
            self._resolve_test_files(raw, path.parent),
            dict(overrides or {}),
        )

        try:
            if primary:
                data = merge(data, environment_overrides())
            settings = ConfigSchema.model_validate(data)

        except ValidationError as base:
            raise ConfigSchemaError.from_pydantic_error(
                base,
                data=data,
                filename=f'{path}',
            ) from base

        return ConfigTree(settings, path=path)

    async def _load_module(self, path: Path, stack: Stack) -> tuple[list[ConfigTree], RawConfig]:
        """Evaluate a Python config module.

        Returns:
            Bases read by the provider and the provider's own settings.
        """
        context = ErrorContext(filename=f'{path}')

        try:
            module = load_module(path, 'pytest_ftr.configs')

        except Exception as base:
            raise ConfigParseError('Failed to import config module', context=context) from base

        provider = getattr(module, PROVIDER_ATTRIBUTE, None)
        if not callable(provider):
            raise ConfigParseError(
                f'Config module must export a callable {PROVIDER_ATTRIBUTE!r}',
                context=context,
            )

        api = ConfigProviderApi(self, path, stack)

        try:
            result = provider(api)
            if isawaitable(result):
                result = await result

        except ConfigError:
            raise

        except Exception as base:
            raise ConfigParseError('Config provider failed', context=context) from base

        if isinstance(result, ConfigTree):
            if result not in api.bases:
                api.bases.append(result)
            return api.bases, {}

        if result is None:
            return api.bases, {}

        if not isinstance(result, dict):
            raise ConfigParseError(
                f'Config provider must return a mapping, got {type(result).__name__}',
                context=context,
            )

        return api.bases, result

    async def _load_yaml(self, path: Path, stack: Stack) -> tuple[list[ConfigTree], RawConfig]:
        """Parse a YAML config document and resolve its bases.

        Returns:
            Resolved bases and the document's own settings.
        """
        context = ErrorContext(filename=f'{path}')

        try:
            with path.open('rt', encoding='utf-8') as content:
                raw = load(content, Loader=ConfigLoader)  # noqa: S506

        except MarkedYAMLError as base:
            raise ConfigParseError.from_yaml_error(base) from base

        except YAMLError as base:
            raise ConfigParseError('Invalid YAML', context=context) from base

        if raw is None:
            raw = {}

        if not isinstance(raw, dict):
            raise ConfigParseError('Config document must be a mapping', context=context)

        extends = raw.pop(EXTENDS_KEY, None)
        if extends is None:
            extends = []
        elif isinstance(extends, str):
            extends = [extends]
        elif not isinstance(extends, list) or not all(isinstance(item, str) for item in extends):
            raise ConfigParseError(
                f'{EXTENDS_KEY!r} must be a path or a list of paths',
                context=context,
            )

        bases = [
            await self.resolve_nested(path.parent / item, stack=stack)
            for item in extends
        ]

        return bases, raw

    @staticmethod
    def _resolve_test_files(raw: RawConfig, directory: Path) -> RawConfig:
        """Resolve relative test file paths against a config directory."""
        value = raw.get('test_files')

        wrapper = None
        if isinstance(value, Replace):
            wrapper, value = Replace, value.value

        if not isinstance(value, (list, tuple)):
            return raw

        files = [
            directory / item if isinstance(item, (str, Path)) else item
            for item in value
        ]

        return {
            **raw,
            'test_files': wrapper(files) if wrapper else files,
        }
