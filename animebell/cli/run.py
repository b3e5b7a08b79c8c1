"""animebell run command - Start the scheduler daemon."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from animebell.cli.error_handler import ConfigurationError, DaemonError, handle_errors
from animebell.cli.exit_codes import ExitCode

app = typer.Typer(help="Start the animebell daemon (reminders, daily digest, release alerts).")
console = Console()

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
)


def _setup_daemon_logging(level_name: str, format_str: str, verbose: bool, log_file: Optional[Path]) -> None:
    """Configure logging for the long-running process."""
    from animebell.config import quiet_library_loggers

    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=format_str, handlers=handlers, force=True)
    quiet_library_loggers(debug=verbose)


@app.callback(invoke_without_command=True)
@handle_errors
def run(
    ctx: typer.Context,
    config_file: Optional[Path] = ConfigOption,
    daemon: bool = typer.Option(
        False,
        "--daemon",
        "-d",
        help="Run in background as daemon.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Start the animebell daemon.

    The daemon re-arms every reminder stored in the job ledger, registers
    the daily summary and new season check, and fires jobs until stopped.

    Example:
        animebell run
        animebell run --daemon
        animebell run --config ./config.toml --verbose
    """
    if ctx.invoked_subcommand is not None:
        return

    from animebell.config import ensure_directories, get_config, load_config, set_config
    from animebell.daemon.pid import PIDFile
    from animebell.daemon.service import daemonize, run_daemon

    config = load_config(config_file) if config_file else get_config()
    set_config(config)
    ensure_directories(config)

    if not config.telegram.bot_token:
        raise ConfigurationError(
            "Telegram bot token not set",
            details={"hint": "set ANIMEBELL_BOT_TOKEN or run 'animebell config init --bot-token ...'"},
        )

    pid_file = PIDFile(config.pid_file)
    running_pid = pid_file.get_pid()
    if running_pid is not None:
        raise DaemonError("Daemon is already running", details={"pid": running_pid})

    console.print("[bold green]Starting animebell daemon...[/bold green]")
    if verbose:
        console.print(f"Config: {config_file or 'default'}")
        console.print(f"Data directory: {config.data_dir}")
        console.print(f"Time zone: {config.scheduler.timezone}")

    log_file = config.logging.file
    if daemon and log_file is None:
        log_file = config.data_dir / "daemon.log"
    _setup_daemon_logging(config.logging.level, config.logging.format, verbose, log_file)

    if daemon:
        console.print("[dim]Forking to background...[/dim]")
        daemonize(log_file)

    try:
        asyncio.run(run_daemon(config, pid_file))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")


@app.command()
def status(config_file: Optional[Path] = ConfigOption) -> None:
    """Check daemon status.

    Example:
        animebell run status
    """
    from animebell.config import get_config, load_config
    from animebell.daemon.pid import PIDFile

    config = load_config(config_file) if config_file else get_config()
    pid_file = PIDFile(config.pid_file)

    pid = pid_file.get_pid()
    if pid is not None:
        console.print(f"[green]● Daemon is running[/green] (PID: {pid})")
        console.print(f"  Data directory: {config.data_dir}")
        console.print(f"  Database: {config.database_url}")
        console.print(f"  Time zone: {config.scheduler.timezone}")
    else:
        console.print("[yellow]○ Daemon is not running[/yellow]")
        if pid_file.read() is not None:
            console.print("[dim]  (stale PID file)[/dim]")


@app.command()
def stop(
    config_file: Optional[Path] = ConfigOption,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force kill the daemon (SIGKILL).",
    ),
) -> None:
    """Stop the daemon.

    Sends SIGTERM for a graceful shutdown, or SIGKILL with --force.
    Armed jobs are not lost: they are rebuilt from the job ledger on the
    next start.

    Example:
        animebell run stop
        animebell run stop --force
    """
    from animebell.config import get_config, load_config
    from animebell.daemon.pid import PIDFile

    config = load_config(config_file) if config_file else get_config()
    pid_file = PIDFile(config.pid_file)

    pid = pid_file.get_pid()
    if pid is None:
        console.print("[yellow]Daemon is not running[/yellow]")
        raise typer.Exit()

    sig = signal.SIGKILL if force else signal.SIGTERM
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        console.print("[yellow]Daemon process not found (already stopped)[/yellow]")
        return
    except PermissionError:
        console.print(f"[red]Permission denied: cannot signal process {pid}[/red]")
        raise typer.Exit(code=ExitCode.PERMISSION_DENIED)

    if force:
        pid_file.path.unlink(missing_ok=True)
        console.print(f"[red]Force killed daemon (PID: {pid})[/red]")
    else:
        console.print(f"[green]Shutdown signal sent to daemon (PID: {pid})[/green]")
