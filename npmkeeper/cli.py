"""
npmkeeper command-line entry point.

``npmkeeper`` is a Click group. Its global options are applied once,
before any subcommand runs: logging is set up from ``-v``, the console is
rebuilt for ``--color/--no-color``, and the configuration file is loaded
and validated into the :class:`~npmkeeper.context.NpmKeeperContext` that
subcommands receive.

:func:`main` is the console script. It runs the group outside Click's
standalone mode and maps the outcome to an exit status.
"""

from __future__ import annotations

import os
import sys
import logging
from pathlib import Path
from typing import Optional, Sequence

import click
from rich.markup import escape

from npmkeeper.config import load_config
from npmkeeper.__version__ import __version__
from npmkeeper.commands.check import check
from npmkeeper.context import NpmKeeperContext
from npmkeeper.exceptions import ConfigError, NpmKeeperError
from npmkeeper.utils.console import print_error, print_warning, reconfigure_console
from npmkeeper.utils.logger import get_logger, level_for_verbosity, setup_logging

logger = get_logger("cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="NPMKEEPER_CONFIG",
    help="Configuration file (npmkeeper.toml or pyproject.toml).",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Log progress to stderr; repeat (-vv) for debug output.",
)
@click.option(
    "--color/--no-color",
    default=True,
    envvar="NPMKEEPER_COLOR",
    help="Colorize terminal output.",
)
@click.version_option(
    version=__version__,
    prog_name="npmkeeper",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    color: bool,
) -> None:
    """npmkeeper: see which npm dependencies a fresh install would move.

    \b
    Examples:
      npmkeeper check
      npmkeeper check --package react
      npmkeeper -v check path/to/package.json --format json

    Run ``npmkeeper COMMAND --help`` for the options of a command.
    """
    _configure_logging(verbose)
    _apply_color(color)

    try:
        loaded = load_config(config)
    except ConfigError as exc:
        print_error(escape(str(exc)))
        ctx.exit(EXIT_FAILURE)

    ctx.obj = NpmKeeperContext(
        config=loaded,
        config_path=config or loaded.source_path,
        verbose=verbose,
        color=color,
    )
    logger.debug(
        "npmkeeper v%s, config=%s, color=%s",
        __version__,
        ctx.obj.config_path or "<defaults>",
        color,
    )


cli.add_command(check)


def _configure_logging(verbose: int) -> None:
    level = level_for_verbosity(verbose)
    setup_logging(level=level, verbose=verbose >= 2)
    logger.debug("Logging initialized at %s level", logging.getLevelName(level))


def _apply_color(color: bool) -> None:
    """Export the color choice as ``NO_COLOR`` and rebuild the console."""
    if color:
        os.environ.pop("NO_COLOR", None)
    else:
        os.environ["NO_COLOR"] = "1"
    reconfigure_console()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return its exit status.

    Returns:
        ``0`` on success, ``1`` for npmkeeper or unexpected errors, Click's
        own code (``2``) for usage errors and ``130`` when interrupted.
    """
    try:
        result = cli(args=argv, prog_name="npmkeeper", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except (click.exceptions.Abort, KeyboardInterrupt):
        print_warning("\nOperation cancelled by user")
        return EXIT_INTERRUPTED
    except NpmKeeperError as exc:
        print_error(escape(str(exc)))
        logger.debug("Error details: %s", exc.details or "<none>", exc_info=True)
        return EXIT_FAILURE
    except Exception as exc:
        print_error(f"Unexpected error: {escape(str(exc))}")
        logger.exception("Unhandled exception in CLI")
        return EXIT_FAILURE

    return result if isinstance(result, int) else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
