"""CLI command modules for animebell.

Each module holds one Typer command group; error handling and exit codes
are shared across them.
"""

from animebell.cli import config, digest, jobs, releases, run
from animebell.cli.exit_codes import ExitCode
from animebell.cli.error_handler import (
    CLIError,
    ConfigurationError,
    DaemonError,
    NotFoundError,
    ValidationError,
    exit_code_for,
    handle_errors,
)

__all__ = [
    # Command modules
    "config",
    "digest",
    "jobs",
    "releases",
    "run",
    # Exit codes
    "ExitCode",
    # Error handling
    "CLIError",
    "ConfigurationError",
    "DaemonError",
    "NotFoundError",
    "ValidationError",
    "exit_code_for",
    "handle_errors",
]
