"""Event Jobs CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .client.endpoints import EventJobsClient, EventJobsError
from .commands import config, events, jobs
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

app = typer.Typer(
    name="eventjobs",
    help="📬 Event Jobs - event bus and job queue operator CLI",
    rich_markup_mode="rich",
)

app.add_typer(jobs.app, name="jobs")
app.add_typer(events.app, name="events")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API, queue and backlog health"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with EventJobsClient(base_url) as client:
            health = client.health_check()
    except EventJobsError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Event Jobs API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]eventjobs config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    queue = health.get("queue") or {}
    events_health = health.get("events") or {}
    worker = "[green]running[/green]" if queue.get("worker_running") else "[red]stopped[/red]"

    console.print(Panel(
        f"🚀 [green]Connected[/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Worker: {worker}\n"
        f"• Pending Jobs: [yellow]{queue.get('pending', 0)}[/yellow] "
        f"([green]{queue.get('due_now', 0)}[/green] due now)\n"
        f"• Stuck Jobs: [red]{queue.get('stuck_jobs_count', 0)}[/red]\n"
        f"• Event Backlog: [cyan]{events_health.get('backlog_size', 0)}[/cyan]\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green"
    ))


@app.command()
def version():
    """📎 Show CLI version information"""
    console.print(Panel(
        f"📬 [bold cyan]Event Jobs CLI[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]",
        title="Version Info",
        border_style="cyan"
    ))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    show_version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit"
    ),
):
    """
    📬 Event Jobs CLI

    Inspect and operate the job queue and the event store: list and retry
    jobs, browse events and replay the unprocessed backlog.
    """
    if show_version:
        console.print(f"Event Jobs CLI v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
