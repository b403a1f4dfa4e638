"""Config value utilities.

This module defines how raw config values from different files are merged
into one tree and how the resulting tree is frozen against modification.

Merge rules:
- mappings merge deeply, keys of the more specific config win;
- lists concatenate, the base entries first;
- scalars and any other objects are replaced;
- a value wrapped with `replace` is never merged, it replaces the base.
"""

from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any, TypeAlias

#: Mapping types walked by merge and freeze operations.
MAPPINGS = (dict, MappingProxyType)
#: Sequence types concatenated by merge operations.
SEQUENCES = (list, tuple)

RawConfig: TypeAlias = dict[str, Any]


class Replace:
    """Marker wrapping a value that must replace the base value.

    Without the marker list values from a base config and from the config
    extending it are concatenated.
    """

    __slots__ = ('value',)

    def __init__(self, value: Any) -> None:  # noqa: ANN401
        """Wrap a value.

        Args:
            value: The replacing value.
        """
        self.value = value

    def __repr__(self) -> str:
        """String represenatation."""
        return f'replace({self.value!r})'

    def __eq__(self, other: object) -> bool:
        """Compare wrapped values."""
        if not isinstance(other, Replace):
            return NotImplemented
        return self.value == other.value

    __hash__ = None  # type: ignore[assignment]


def replace(value: Any) -> Replace:  # noqa: ANN401
    """Mark a config value as replacing the base value.

    Args:
        value: The replacing value.

    Returns:
        The wrapped value.
    """
    return Replace(value)


def unwrap(value: Any) -> Any:  # noqa: ANN401
    """Recursively drop `Replace` markers from a value.

    Args:
        value: Raw config value.

    Returns:
        The same structure without markers.
    """
    if isinstance(value, Replace):
        return unwrap(value.value)

    if isinstance(value, MAPPINGS):
        return {key: unwrap(item) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [unwrap(item) for item in value]

    return value


def merge(base: Any, override: Any) -> Any:  # noqa: ANN401
    """Merge an overriding config value into a base value.

    Args:
        base: Value from the less specific config.
        override: Value from the more specific config.

    Returns:
        A new merged value; inputs are never mutated.
    """
    if isinstance(override, Replace):
        return unwrap(override.value)

    if isinstance(base, MAPPINGS) and isinstance(override, MAPPINGS):
        result = {key: unwrap(item) for key, item in base.items()}
        for key, item in override.items():
            result[key] = merge(result[key], item) if key in result else unwrap(item)
        return result

    if isinstance(base, SEQUENCES) and isinstance(override, SEQUENCES):
        return [*unwrap(base), *unwrap(override)]

    return unwrap(override)


def merge_all(*values: RawConfig) -> RawConfig:
    """Merge config mappings from the least to the most specific.

    Args:
        *values: Config mappings in increasing specificity.

    Returns:
        Merged config mapping.
    """
    result: RawConfig = {}
    for value in values:
        result = merge(result, value)

    return result


def freeze(value: Any) -> Any:  # noqa: ANN401
    """Recursively convert a config value into a read-only structure.

    Mappings become read-only proxies and lists become tuples.

    Args:
        value: Plain config value.

    Returns:
        Frozen config value.
    """
    if isinstance(value, MAPPINGS):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})

    if isinstance(value, SEQUENCES):
        return tuple(freeze(item) for item in value)

    return value


def thaw(value: Any) -> Any:  # noqa: ANN401
    """Recursively convert a frozen config value into plain containers.

    Args:
        value: Frozen config value.

    Returns:
        A deep copy made of dicts and lists.
    """
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [thaw(item) for item in value]

    return value
