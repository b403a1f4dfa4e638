"""Identifier primitive types and validation rules.

This module defines the name patterns used to register services and page
objects, and the strongly-typed aliases the config schema validates them
with. The rules form part of the public config contract.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for provider identifiers.
#: Identifiers must start with a letter and may contain letters, digits, or underscores
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for provider identifiers.
PROVIDER_PATTERN = regexp(
    rf'^(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Compiled pattern for dotted config paths ("timeouts.try", "servers.app.port").
CONFIG_PATH_PATTERN = regexp(
    rf'^{_NAME_PATTERN}(\.{_NAME_PATTERN})*$',
    flags=ASCII,
)


Identifier = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Identifier',
        description=(
            'Logical name under which a service, page object or app is '
            'registered and referenced. '
            'Names must start with a letter and may contain letters, '
            'digits, or underscores. '
            'Names are restricted to ASCII characters.'
        ),
        examples=[
            'retry',
            'testSubjects',
            'common',
        ],
    ),
]
