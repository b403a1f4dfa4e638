"""Command-line entry point running functional test suites.

The options override the `engine` section of the primary config; tag
options replace the configured tag lists instead of extending them.
"""

from pathlib import Path
from typing import TYPE_CHECKING

from click import UsageError, command, option, pass_context
from click import Path as PathParam

from pytest_ftr.logs import configure_logging
from pytest_ftr.plugin import PytestEngine
from pytest_ftr.runner import FunctionalTestRunner
from pytest_ftr.values import RawConfig, replace  # noqa: TC001

if TYPE_CHECKING:
    from click import Context

    from pytest_ftr.logs import Verbosity

DEFAULT_CONFIG = './ftr.config.py'

ConfigFilepath = PathParam(
    dir_okay=False,
    path_type=Path,
)

#: Extra pytest arguments per verbosity.
ENGINE_ARGS: dict[str, tuple[str, ...]] = {
    'quiet': ('-q',),
    'info': (),
    'debug': ('-v',),
    'verbose': ('-vv',),
}


def get_verbosity(*, quiet: bool, debug: bool, verbose: bool) -> 'Verbosity':
    """Select the log verbosity from mutually exclusive flags.

    Raises:
        UsageError: If more than one flag is set.
    """
    flags: dict[Verbosity, bool] = {
        'quiet': quiet,
        'debug': debug,
        'verbose': verbose,
    }

    selected = [name for name, enabled in flags.items() if enabled]
    if len(selected) > 1:
        raise UsageError('--quiet, --debug and --verbose are mutually exclusive')

    return selected[0] if selected else 'info'


def make_overrides(*, bail: bool, grep: str | None, invert: bool,
                   include_tags: tuple[str, ...],
                   exclude_tags: tuple[str, ...]) -> RawConfig:
    """Build config overrides from command-line options.

    Only options given on the command line are included.

    Returns:
        Raw config fragment merged on top of the primary config.
    """
    engine: RawConfig = {}

    if bail:
        engine['bail'] = True
    if grep is not None:
        engine['grep'] = grep
    if invert:
        engine['invert'] = True
    if include_tags:
        engine['include_tags'] = replace(list(include_tags))
    if exclude_tags:
        engine['exclude_tags'] = replace(list(exclude_tags))

    if not engine:
        return {}

    return {'engine': engine}


@command(
    name='ftr',
    help='Run functional test suites described by a config file.',
)
@option(
    '--config', 'config_path',
    type=ConfigFilepath,
    default=DEFAULT_CONFIG,
    show_default=True,
    help='Primary config file, a Python module or a YAML document.',
)
@option(
    '--bail',
    is_flag=True,
    help='Stop running tests after the first failure.',
)
@option(
    '--grep',
    metavar='PATTERN',
    help='Run only tests whose full title matches the regular expression.',
)
@option(
    '--invert',
    is_flag=True,
    help='Run only tests whose full title does not match --grep.',
)
@option(
    '--include-tag', 'include_tags',
    multiple=True,
    metavar='TAG',
    help='Run only suites with this tag. Repeatable.',
)
@option(
    '--exclude-tag', 'exclude_tags',
    multiple=True,
    metavar='TAG',
    help='Skip suites with this tag. Repeatable.',
)
@option('--quiet', is_flag=True, help='Log errors only.')
@option('--debug', is_flag=True, help='Log debug messages.')
@option('--verbose', is_flag=True, help='Log everything, including provider tracing.')
@pass_context
def cli(ctx: 'Context', config_path: Path, *,  # noqa: PLR0913
        bail: bool,
        grep: str | None,
        invert: bool,
        include_tags: tuple[str, ...],
        exclude_tags: tuple[str, ...],
        quiet: bool,
        debug: bool,
        verbose: bool) -> None:
    """Run functional test suites and exit with the run status."""
    verbosity = get_verbosity(quiet=quiet, debug=debug, verbose=verbose)
    log = configure_logging(verbosity)

    overrides = make_overrides(
        bail=bail,
        grep=grep,
        invert=invert,
        include_tags=include_tags,
        exclude_tags=exclude_tags,
    )

    runner = FunctionalTestRunner(
        config_path,
        overrides=overrides,
        engine=PytestEngine(ENGINE_ARGS[verbosity]),
        log=log,
    )

    result = runner.run()
    ctx.exit(result.exit_code)


if __name__ == '__main__':
    cli()
