"""animebell releases command - Run the new release check."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from animebell.cli.error_handler import ConfigurationError, handle_errors

app = typer.Typer(help="Check tracked titles for new seasons and novels.")
console = Console()


async def _run_check(config, owner: Optional[str], dry_run: bool):
    from animebell.gateways.delivery import TelegramDeliveryGateway
    from animebell.gateways.metadata import AniListGateway
    from animebell.notifications.releases import ReleaseDetector

    async with AniListGateway.from_config(config.metadata) as metadata:
        if dry_run:
            detector = ReleaseDetector(None, metadata, config.scheduler, config.notifications)
            return await detector.run(owner_id=owner, dry_run=True)

        async with TelegramDeliveryGateway.from_config(config.telegram) as delivery:
            detector = ReleaseDetector(delivery, metadata, config.scheduler, config.notifications)
            return await detector.run(owner_id=owner)


@app.command("check")
@handle_errors
def check(
    owner: Optional[str] = typer.Option(
        None,
        "--owner",
        "-o",
        help="Only check titles tracked by this user id.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Report alerts without sending or recording them.",
    ),
) -> None:
    """Check for new releases now.

    Example:
        animebell releases check
        animebell releases check --owner 42 --dry-run
    """
    from animebell.config import get_config
    from animebell.database.connection import create_tables

    config = get_config()
    if not dry_run and not config.telegram.bot_token:
        raise ConfigurationError(
            "Telegram bot token not set. Set ANIMEBELL_BOT_TOKEN or use --dry-run."
        )
    create_tables(config)

    result = asyncio.run(_run_check(config, owner, dry_run))

    table = Table(title="Release Check" + (" (dry run)" if dry_run else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Titles checked", str(result.checked))
    table.add_row("Matching releases", str(result.candidates))
    table.add_row("Would notify" if dry_run else "Notified", str(len(result.alerts) if dry_run else result.notified))
    table.add_row("Already notified", str(result.already_notified))
    table.add_row("Failures", f"[red]{result.failed}[/red]" if result.failed else "0")
    console.print(table)

    if result.alerts:
        console.print("\n[bold]Alerts:[/bold]")
        for recipient, content_id in result.alerts:
            console.print(f"  user {recipient} -> content {content_id}")
