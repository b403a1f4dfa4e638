"""Immutable resolved configuration."""

from typing import TYPE_CHECKING, Any

from pytest_ftr.names import CONFIG_PATH_PATTERN
from pytest_ftr.values import freeze, thaw

if TYPE_CHECKING:
    from pathlib import Path

    from .schema import ConfigSchema

_MISSING: Any = object()


class ConfigTree:
    """Read-only view over a validated configuration.

    Values are addressed with dotted paths such as `timeouts.try` or
    `servers.app.port`. Nested mappings are returned as read-only proxies
    and lists as tuples; `get_all` returns a mutable deep copy.
    """

    def __init__(self, settings: 'ConfigSchema', *, path: 'Path | None' = None) -> None:
        """Initialize a configuration tree.

        Args:
            settings: Validated configuration model.
            path: Config file the tree was resolved from.
        """
        self.path = path
        self.settings = settings

        self._values = freeze(settings.model_dump(by_alias=True))

    def __repr__(self) -> str:
        """String represenatation."""
        return f'ConfigTree(path={self.path!r})'

    def get(self, key: str, default: Any = _MISSING) -> Any:  # noqa: ANN401
        """Return the value stored under a dotted path.

        Args:
            key: Dotted path of the setting.
            default: Value returned when the path does not exist.

        Returns:
            The frozen value.

        Raises:
            KeyError: If the path does not exist and no default is given.
            ValueError: If the key is not a dotted path.
        """
        if not CONFIG_PATH_PATTERN.match(key):
            raise ValueError(f'Invalid config key {key!r}')

        value = self._values
        for part in key.split('.'):
            try:
                value = value[part]
            except (KeyError, TypeError):
                if default is _MISSING:
                    raise KeyError(f'Unknown config key {key!r}') from None
                return default

        return value

    def has(self, key: str) -> bool:
        """Check whether a dotted path exists."""
        try:
            self.get(key)
        except KeyError:
            return False

        return True

    def get_all(self) -> dict[str, Any]:
        """Return a mutable deep copy of every setting."""
        return thaw(self._values)
