"""animebell config command - Configuration management."""

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from animebell.cli.error_handler import ConfigurationError, ValidationError, handle_errors

app = typer.Typer(help="Manage animebell configuration.")
console = Console()

_FORMATS = ("table", "yaml", "json")


def _config_path() -> Path:
    from animebell.config import DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILE, ENV_PREFIX

    config_dir = Path(os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", DEFAULT_CONFIG_DIR))
    return config_dir / DEFAULT_CONFIG_FILE


@app.command("show")
@handle_errors
def show_config(
    section: Optional[str] = typer.Argument(
        None,
        help="Configuration section to show (e.g., telegram, scheduler).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
    unmask: bool = typer.Option(
        False,
        "--unmask",
        help="Show unmasked secrets (use with caution).",
    ),
) -> None:
    """Show current configuration.

    Example:
        animebell config show
        animebell config show scheduler
        animebell config show --format yaml
    """
    from animebell.config import _config_to_dict, export_config_json, export_config_yaml, get_config

    if format not in _FORMATS:
        raise ValidationError(f"Unknown format '{format}'", details={"choices": ", ".join(_FORMATS)})

    config = get_config()

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config, mask_secrets=not unmask), "yaml", theme="monokai"))
        return
    if format == "json":
        console.print(Syntax(export_config_json(config, mask_secrets=not unmask), "json", theme="monokai"))
        return

    data = _config_to_dict(config, mask_secrets=not unmask)
    paths = {key: data.pop(key) for key in ("config_dir", "data_dir", "database_url")}
    sections = {**data, "paths": paths}

    if section and section not in sections:
        raise ValidationError(f"Unknown section: {section}", details={"choices": ", ".join(sections)})

    console.print("[bold]animebell Configuration[/bold]")
    console.print()

    for name in [section] if section else sections:
        table = Table(title=name.capitalize())
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value in sections[name].items():
            table.add_row(key, "" if value is None else str(value))
        console.print(table)
        console.print()


@app.command("init")
@handle_errors
def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
    bot_token: Optional[str] = typer.Option(
        None,
        "--bot-token",
        help="Telegram bot token to store.",
    ),
    timezone: str = typer.Option(
        "UTC",
        "--timezone",
        help="Reference time zone for cron jobs and the daily digest.",
    ),
) -> None:
    """Write a default configuration file.

    Example:
        animebell config init
        animebell config init --timezone Europe/Berlin --force
    """
    from animebell.config import (
        DEFAULT_DATA_DIR,
        ENV_PREFIX,
        AnimeBellConfig,
        ensure_directories,
        save_config,
        validate_config,
    )

    config_path = _config_path()
    if config_path.exists() and not force:
        raise ConfigurationError(
            f"Configuration already exists at {config_path}",
            details={"hint": "use --force to overwrite"},
        )

    data_dir = Path(os.environ.get(f"{ENV_PREFIX}DATA_DIR", DEFAULT_DATA_DIR))
    config = AnimeBellConfig(config_dir=config_path.parent, data_dir=data_dir)
    config.telegram.bot_token = bot_token
    config.scheduler.timezone = timezone

    errors = [e for e in validate_config(config) if e.severity == "error" and e.field == "scheduler.timezone"]
    if errors:
        raise ValidationError(errors[0].message)

    ensure_directories(config)
    path = save_config(config, config_path)

    console.print(f"[green]✓[/green] Configuration written to {path}")
    console.print(f"  Data directory: {config.data_dir}")
    if not bot_token:
        console.print("[yellow]![/yellow] No bot token stored; set ANIMEBELL_BOT_TOKEN before starting the daemon")


@app.command("path")
def config_path() -> None:
    """Show configuration file path.

    Example:
        animebell config path
    """
    path = _config_path()
    console.print(f"[bold]Config directory:[/bold] {path.parent}")
    console.print(f"[bold]Config file:[/bold] {path}")
    console.print(f"[bold]Exists:[/bold] {path.exists()}")


@app.command("validate")
@handle_errors
def validate() -> None:
    """Validate current configuration.

    Example:
        animebell config validate
    """
    from animebell.config import get_config, validate_config

    config = get_config()
    path = _config_path()

    console.print("[bold]Validating configuration...[/bold]")
    console.print()

    if path.exists():
        console.print(f"  [green]✓[/green] Config file exists [dim]({path})[/dim]")
    else:
        console.print(f"  [yellow]![/yellow] No config file, using defaults [dim]({path})[/dim]")

    errors = validate_config(config)
    has_errors = any(e.severity == "error" for e in errors)

    if errors:
        console.print()
        console.print("[bold yellow]Validation Results:[/bold yellow]")
        for error in errors:
            status = "[red]✗[/red]" if error.severity == "error" else "[yellow]![/yellow]"
            console.print(f"  {status} \\[{error.severity.upper()}] {error.field}: {error.message}")

    console.print()
    if has_errors:
        raise ConfigurationError("Configuration has errors")
    console.print("[green]Configuration is valid[/green]")


@app.command("env")
def show_env_vars() -> None:
    """Show supported environment variables.

    Example:
        animebell config env
    """
    console.print("[bold]Supported Environment Variables[/bold]")
    console.print()

    env_vars = [
        ("ANIMEBELL_BOT_TOKEN", "Telegram bot token (BOT_TOKEN also accepted)", "123456:ABC..."),
        ("ANIMEBELL_TELEGRAM_API_BASE", "Bot API base URL", "https://api.telegram.org"),
        ("ANIMEBELL_METADATA_ENDPOINT", "AniList GraphQL endpoint", "https://graphql.anilist.co"),
        ("ANIMEBELL_TIMEZONE", "Reference time zone", "Europe/Berlin"),
        ("ANIMEBELL_DAILY_SUMMARY_CRON", "Daily summary schedule", "0 9 * * *"),
        ("ANIMEBELL_RELEASE_CHECK_CRON", "New season check schedule", "0 8 * * *"),
        ("ANIMEBELL_MAX_CONCURRENCY", "Parallel sends and lookups per sweep", "4"),
        ("ANIMEBELL_LOG_LEVEL", "Logging level", "DEBUG/INFO/WARNING/ERROR"),
        ("ANIMEBELL_CONFIG_DIR", "Configuration directory path", "~/.config/animebell"),
        ("ANIMEBELL_DATA_DIR", "Data directory path", "~/.local/share/animebell"),
        ("ANIMEBELL_DATABASE_URL", "Database connection URL", "sqlite:///..."),
    ]

    table = Table()
    table.add_column("Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example Value", style="green")
    for var, desc, example in env_vars:
        table.add_row(var, desc, example)

    console.print(table)
