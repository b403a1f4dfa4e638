"""Loading of config and test modules from file paths.

Config and test modules are plain Python files located anywhere on disk.
They are evaluated in isolation for every run and are never registered in
`sys.modules`, so two runners in one process do not share module state.
"""

from hashlib import sha1
from importlib.util import module_from_spec, spec_from_file_location
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path
    from types import ModuleType

#: Name of the callable every config and test module must export.
PROVIDER_ATTRIBUTE = 'provider'


def load_module(path: 'Path', namespace: str) -> 'ModuleType':
    """Evaluate a Python file as a fresh module.

    Args:
        path: Absolute path to the file.
        namespace: Dotted prefix for the generated module name.

    Returns:
        The evaluated module.

    Raises:
        ImportError: If no loader is available for the file.
        Any exception raised while executing the module body.
    """
    digest = sha1(f'{path}'.encode(), usedforsecurity=False).hexdigest()[:8]
    name = f'{namespace}.{path.stem}_{digest}'

    spec = spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f'Can not load {path}', path=f'{path}')

    module = module_from_spec(spec)
    spec.loader.exec_module(module)

    return module
