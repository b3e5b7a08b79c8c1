"""Error handling for animebell CLI commands.

CLI errors carry their own exit code. Core exceptions raised from the
scheduler, sweeps and gateways are mapped to exit codes by type.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, TypeVar

import typer
from rich.console import Console

from animebell.cli.exit_codes import ExitCode
from animebell.daemon.pid import DaemonAlreadyRunningError
from animebell.exceptions import (
    AnimeBellError,
    CheckRateLimitedError,
    DataIntegrityError,
    DeliveryError,
    ExternalServiceError,
    GroupNotFoundError,
    NotOwnerError,
)

# Console for error output (stderr)
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class CLIError(Exception):
    """Base exception for CLI-level failures.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional additional error details
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(CLIError):
    """Missing or invalid configuration."""

    exit_code = ExitCode.CONFIGURATION_ERROR


class ValidationError(CLIError):
    """Invalid user input, such as a malformed cron expression."""

    exit_code = ExitCode.INVALID_ARGUMENT


class NotFoundError(CLIError):
    """A job, group or other resource does not exist."""

    exit_code = ExitCode.NOT_FOUND


class DaemonError(CLIError):
    """The daemon is in the wrong state for the command."""

    exit_code = ExitCode.DAEMON_ERROR


# Most specific first
_CORE_EXIT_CODES: list[tuple[type[AnimeBellError], int]] = [
    (DaemonAlreadyRunningError, ExitCode.DAEMON_ERROR),
    (GroupNotFoundError, ExitCode.NOT_FOUND),
    (DataIntegrityError, ExitCode.INVALID_ARGUMENT),
    (NotOwnerError, ExitCode.PERMISSION_DENIED),
    (CheckRateLimitedError, ExitCode.RATE_LIMITED),
    (ExternalServiceError, ExitCode.NETWORK_ERROR),
    (DeliveryError, ExitCode.DELIVERY_ERROR),
]


def exit_code_for(error: AnimeBellError) -> int:
    """Map a core exception to a CLI exit code."""
    for error_type, code in _CORE_EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return ExitCode.GENERAL_ERROR


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across CLI commands.

    - CLIError: message and details, with the error's exit code
    - AnimeBellError: message, with the mapped exit code
    - KeyboardInterrupt: exit code 130
    - anything else: logged with traceback, exit code 1

    Example:
        @app.command()
        @handle_errors
        def my_command():
            raise ConfigurationError("Invalid config")
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CLIError as e:
            logger.error(f"CLIError: {e.message}", extra={"exit_code": e.exit_code})
            console.print(f"[red]Error:[/red] {e.message}")
            for key, value in e.details.items():
                console.print(f"  [dim]{key}:[/dim] {value}")
            raise typer.Exit(code=e.exit_code)

        except AnimeBellError as e:
            code = exit_code_for(e)
            logger.error(f"{type(e).__name__}: {e}")
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --debug for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
