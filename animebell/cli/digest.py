"""animebell digest command - Preview daily summaries."""

from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from animebell.cli.error_handler import ValidationError, handle_errors

app = typer.Typer(help="Preview the daily anime summaries sent to groups.")
console = Console()


def _generator():
    from animebell.config import get_config
    from animebell.database.connection import create_tables
    from animebell.notifications.digest import DigestGenerator

    config = get_config()
    create_tables(config)
    return DigestGenerator(None, config.scheduler)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


@app.command("today")
@handle_errors
def today(
    owner: Optional[str] = typer.Option(
        None,
        "--owner",
        "-o",
        help="Only show what this user has airing.",
    ),
    on: Optional[str] = typer.Option(
        None,
        "--date",
        help="Day to show instead of today (YYYY-MM-DD).",
    ),
) -> None:
    """Show what the daily summary would list today.

    Without --owner every notification group is shown with the union of its
    members' episodes. Nothing is sent.

    Example:
        animebell digest today
        animebell digest today --owner 42
        animebell digest today --date 2024-03-08
    """
    from animebell.database.connection import get_db_session
    from animebell.database.repositories import RepositoryFactory

    generator = _generator()
    day = _parse_date(on)

    if owner:
        items = generator.airing_on(owner, day)
        if not items:
            console.print(f"[yellow]Nothing airing for user {owner}[/yellow]")
            return
        for item in items:
            console.print(f"  - {escape(item)}")
        return

    with get_db_session() as session:
        groups = [(g.chat_id, list(g.member_ids)) for g in RepositoryFactory(session).groups.get_all()]

    if not groups:
        console.print("[yellow]No groups subscribed to daily notifications[/yellow]")
        return

    for chat_id, members in groups:
        if not members:
            body = "[dim]No opted-in users[/dim]"
        else:
            items = generator.collect(members, day)
            body = "\n".join(f"- {escape(item)}" for item in items) if items else "[dim]Nothing airing[/dim]"
        console.print(Panel(body, title=f"Group {chat_id}", subtitle=f"{len(members)} member(s)"))


@app.command("preview")
@handle_errors
def preview(
    chat_id: str = typer.Argument(..., help="Group chat id."),
    weekday: str = typer.Argument(..., help="Day name (Sunday..Saturday) or number 0-6, Sunday first."),
) -> None:
    """Render the summary a group would receive on the next given weekday.

    Example:
        animebell digest preview -- -100123456 friday
    """
    from animebell.notifications.digest import resolve_weekday

    try:
        resolve_weekday(weekday)
    except ValueError as e:
        raise ValidationError(str(e)) from None

    console.print(_generator().preview(chat_id, weekday), markup=False)
