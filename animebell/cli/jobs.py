"""animebell jobs command - Inspect the job ledger."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from animebell.cli.error_handler import DaemonError, NotFoundError, handle_errors

app = typer.Typer(help="Inspect and manage stored reminder jobs.")
console = Console()


def _open_ledger():
    """Load config and make sure the tables exist."""
    from animebell.config import get_config
    from animebell.database.connection import create_tables

    config = get_config()
    create_tables(config)
    return config


@app.command("list")
@handle_errors
def list_jobs(
    owner: Optional[str] = typer.Option(
        None,
        "--owner",
        "-o",
        help="Only show reminders owned by this user id.",
    ),
) -> None:
    """List stored reminder jobs.

    Example:
        animebell jobs list
        animebell jobs list --owner 42
    """
    from animebell.database.connection import get_db_session
    from animebell.database.repositories import RepositoryFactory
    from animebell.exceptions import DataIntegrityError
    from animebell.scheduler.job_keys import JobKey
    from animebell.scheduler.triggers import format_datetime, next_fire_time

    config = _open_ledger()
    tz = config.scheduler.timezone

    with get_db_session() as session:
        jobs = RepositoryFactory(session)
        rows = jobs.jobs.for_owner(owner) if owner else jobs.jobs.get_all()
        rows = [(job.id, job.trigger, job.text) for job in rows]

    if not rows:
        console.print("[yellow]No jobs stored[/yellow]")
        return

    table = Table(title="Stored Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Owner")
    table.add_column("Trigger", style="green")
    table.add_column("Next Run")
    table.add_column("Text")

    for job_id, trigger, text in rows:
        try:
            key = JobKey.parse(job_id)
            kind = key.kind.value
        except DataIntegrityError:
            key = None
            kind = "[red]invalid[/red]"

        try:
            next_run = next_fire_time(trigger, tz)
            next_run_str = format_datetime(next_run, tz) if next_run else "N/A"
        except DataIntegrityError:
            next_run_str = "[red]unparseable[/red]"

        table.add_row(
            job_id,
            kind,
            key.owner_id if key and key.owner_id else "-",
            trigger,
            next_run_str,
            text[:40] + ("..." if len(text) > 40 else ""),
        )

    console.print(table)
    console.print(f"\n[dim]{len(rows)} job(s)[/dim]")


@app.command("show")
@handle_errors
def show_job(
    job_id: str = typer.Argument(..., help="Job id to show."),
) -> None:
    """Show details of one stored job.

    Example:
        animebell jobs show 'custom:0 9 * * 1:42'
    """
    from animebell.database.connection import get_db_session
    from animebell.database.repositories import RepositoryFactory
    from animebell.exceptions import DataIntegrityError
    from animebell.scheduler.job_keys import JobKey
    from animebell.scheduler.triggers import describe_schedule

    config = _open_ledger()

    with get_db_session() as session:
        job = RepositoryFactory(session).jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        data = job.to_dict()

    console.print(f"[bold]Job:[/bold] {data['id']}")
    try:
        key = JobKey.parse(job_id)
        console.print(f"  Kind: {key.kind.value}")
        if key.owner_id:
            console.print(f"  Owner: {key.owner_id}")
        if key.subject_id is not None:
            console.print(f"  Tracked item: {key.subject_id}")
    except DataIntegrityError as e:
        console.print(f"  [red]Invalid id:[/red] {e}")

    console.print(f"  Trigger: {data['trigger']}")
    try:
        console.print(f"  {describe_schedule(data['trigger'], config.scheduler.timezone)}")
    except DataIntegrityError as e:
        console.print(f"  [red]{e}[/red]")
    console.print(f"  Text: {data['text'] or '-'}")
    console.print(f"  Created: {data['created_at']}")
    console.print(f"  Updated: {data['updated_at']}")


@app.command("cancel")
@handle_errors
def cancel_job(
    job_id: str = typer.Argument(..., help="Job id to cancel."),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation.",
    ),
) -> None:
    """Delete a stored job.

    Only allowed while the daemon is stopped; a running daemon keeps its
    armed copy and would still fire it.

    Example:
        animebell jobs cancel 'custom:1700000000000:42'
    """
    from animebell.daemon.pid import PIDFile
    from animebell.database.connection import get_db_session
    from animebell.database.repositories import RepositoryFactory

    config = _open_ledger()

    pid = PIDFile(config.pid_file).get_pid()
    if pid is not None:
        raise DaemonError(
            "Cannot cancel jobs while the daemon is running. Stop it first with 'animebell run stop'.",
            details={"pid": pid},
        )

    if not force and not typer.confirm(f"Delete job {job_id}?"):
        console.print("Cancelled.")
        raise typer.Exit()

    with get_db_session() as session:
        deleted = RepositoryFactory(session).jobs.delete(job_id)

    if not deleted:
        raise NotFoundError(f"Job not found: {job_id}")
    console.print(f"[green]✓[/green] Deleted job {job_id}")
