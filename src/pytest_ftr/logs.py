"""Run logger configuration.

Every module logs through `logging.getLogger(__name__)`, so all records of
the package propagate to the `pytest_ftr` logger. The command line
configures a single stream handler on it according to the requested
verbosity.
"""

from logging import DEBUG, ERROR, INFO, Formatter, Logger, StreamHandler, addLevelName, getLogger
from typing import TYPE_CHECKING, Literal, TypeAlias

if TYPE_CHECKING:
    from typing import TextIO

#: Name of the run logger.
LOGGER_NAME = 'pytest_ftr'

#: Level below DEBUG for provider and lifecycle tracing.
VERBOSE = 5

addLevelName(VERBOSE, 'VERBOSE')

Verbosity: TypeAlias = Literal['quiet', 'info', 'debug', 'verbose']

LEVELS: dict[str, int] = {
    'quiet': ERROR,
    'info': INFO,
    'debug': DEBUG,
    'verbose': VERBOSE,
}

LOG_FORMAT = '%(levelname)8s %(name)s: %(message)s'


def configure_logging(verbosity: Verbosity = 'info', stream: 'TextIO | None' = None) -> Logger:
    """Configure the run logger.

    Handlers installed by a previous call are replaced, so the function
    can be called once per run.

    Args:
        verbosity: One of `quiet`, `info`, `debug` or `verbose`.
        stream: Output stream, standard error when omitted.

    Returns:
        The configured run logger.
    """
    logger = getLogger(LOGGER_NAME)
    logger.setLevel(LEVELS[verbosity])

    for handler in list(logger.handlers):
        if getattr(handler, 'ftr_handler', False):
            logger.removeHandler(handler)

    handler = StreamHandler(stream)
    handler.setFormatter(Formatter(LOG_FORMAT))
    handler.ftr_handler = True  # type: ignore[attr-defined]

    logger.addHandler(handler)
    logger.propagate = False

    return logger
