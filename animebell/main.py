"""animebell command line entry point.

The CLI runs the daemon and inspects the state it persists: the job ledger,
the digest groups and the release history.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from animebell import __app_name__, __version__
from animebell.cli import config, digest, jobs, releases, run
from animebell.cli.exit_codes import ExitCode
from animebell.config import quiet_library_loggers

app = typer.Typer(
    name=__app_name__,
    help="animebell - Episode reminders, daily airing digests and new season alerts.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(run.app, name="run")
app.add_typer(jobs.app, name="jobs")
app.add_typer(digest.app, name="digest")
app.add_typer(releases.app, name="releases")
app.add_typer(config.app, name="config")

_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DEBUG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def _setup_logging(
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """Configure logging for one-off CLI commands.

    Commands such as ``jobs list`` or ``releases check`` are short lived, so
    the console only shows warnings unless asked for more. The daemon sets
    up its own logging from the ``[logging]`` config section.

    Args:
        verbose: Show INFO records, e.g. each release alert sent
        debug: Show DEBUG records with source locations
        quiet: Only show errors
        log_file: Also write everything at DEBUG to this file
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    handlers: list[logging.Handler] = []

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_DEBUG_FORMAT if debug else _FILE_FORMAT))
        handlers.append(file_handler)

    if not quiet:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        stderr_handler.setFormatter(logging.Formatter(_DEBUG_FORMAT if debug else _CONSOLE_FORMAT))
        handlers.append(stderr_handler)
    elif not log_file:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        handlers=handlers,
        force=True,
    )
    quiet_library_loggers(debug=debug)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file to use instead of ~/.config/animebell/config.toml.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Log what each command does (INFO level).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log scheduler and database internals (DEBUG level).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also write a DEBUG level log to this file.",
    ),
) -> None:
    """animebell - Episode reminders, daily airing digests and new season alerts.

    [bold]Commands:[/bold]

    • [cyan]run[/cyan] - Start the daemon that fires reminders and digests
    • [cyan]jobs[/cyan] - Inspect or delete stored reminders
    • [cyan]digest[/cyan] - See what a group's daily summary would list
    • [cyan]releases[/cyan] - Look for new seasons of tracked titles
    • [cyan]config[/cyan] - Create, show and validate the config file

    [bold]Examples:[/bold]

        animebell run --daemon
        animebell jobs list --owner 42
        animebell digest preview -- -100123456 friday
        animebell releases check --dry-run
    """
    if quiet and (verbose or debug):
        console.print("[red]Error:[/red] --quiet cannot be combined with --verbose or --debug")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    _setup_logging(verbose=verbose, debug=debug, quiet=quiet, log_file=log_file)

    if config_file is not None:
        from animebell.config import load_config, set_config

        set_config(load_config(config_file))
        logging.getLogger(__name__).debug(f"Using config file {config_file}")


__all__ = ["app"]


if __name__ == "__main__":
    app()
