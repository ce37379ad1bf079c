"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _short_time(value: str | None) -> str:
    # ISO timestamps: drop sub-second precision for table display
    if not value:
        return "—"
    return value.replace("T", " ")[:19]


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a jobs list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Priority", justify="right", style="yellow")
    table.add_column("Attempts", justify="center")
    table.add_column("Scheduled For", justify="left", style="white")
    table.add_column("Last Error", justify="left", style="dim")

    for job in jobs:
        last_error = job.get("last_error") or "—"
        table.add_row(
            str(job.get("id", ""))[:8],  # Short ID
            job.get("type", ""),
            _status(job.get("status", "")),
            str(job.get("priority", 0)),
            f"{job.get('retry_count', 0)}/{job.get('max_retries', 0)}",
            _short_time(job.get("scheduled_for")),
            last_error[:40] + "..." if len(last_error) > 40 else last_error,
        )

    return table


def create_events_table(events: list[dict[str, Any]]) -> Table:
    """Create a formatted table for stored events"""
    table = Table(title="Events", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Processed", justify="center")
    table.add_column("Created", justify="left", style="white")
    table.add_column("Payload", justify="left", style="dim")

    for event in events:
        payload = json.dumps(event.get("payload", {}), default=str)
        table.add_row(
            str(event.get("id", ""))[:8],
            event.get("type", ""),
            "[green]yes[/green]" if event.get("processed") else "[yellow]no[/yellow]",
            _short_time(event.get("created_at")),
            payload[:50] + "..." if len(payload) > 50 else payload,
        )

    return table


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for queue statistics"""
    by_status = stats.get("by_status", {})
    by_type = stats.get("by_type", {})

    status_lines = "\n".join(
        f"• {_status(status)}: {count}" for status, count in sorted(by_status.items())
    ) or "• [dim]none[/dim]"
    type_lines = "\n".join(
        f"• [magenta]{job_type}[/magenta]: {count}"
        for job_type, count in sorted(by_type.items())
    ) or "• [dim]none[/dim]"

    content = f"""
📊 [bold blue]Queue Statistics[/bold blue]

• Total Jobs: [cyan]{stats.get("total_jobs", 0)}[/cyan]
• Queue Depth: [yellow]{stats.get("queue_depth", 0)}[/yellow]
• Due Now: [green]{stats.get("due_now", 0)}[/green]
• Failed (last hour): [red]{stats.get("failed_last_hour", 0)}[/red]

[bold]By Status:[/bold]
{status_lines}

[bold]By Type:[/bold]
{type_lines}
"""

    return Panel(content.strip(), title="Job Stats", border_style="green")


def display_job(job: dict[str, Any], show_payload: bool = True):
    """Display a single job with its payload and result"""
    content = f"""
🆔 [bold]ID:[/bold] [cyan]{job.get('id', 'unknown')}[/cyan]
📝 [bold]Type:[/bold] [magenta]{job.get('type', 'unknown')}[/magenta]
✅ [bold]Status:[/bold] {_status(job.get('status', 'unknown'))}
⭐ [bold]Priority:[/bold] [yellow]{job.get('priority', 0)}[/yellow]
🔁 [bold]Attempts:[/bold] {job.get('retry_count', 0)}/{job.get('max_retries', 0)}
📅 [bold]Scheduled For:[/bold] [blue]{job.get('scheduled_for', '—')}[/blue]
🏁 [bold]Completed At:[/bold] [blue]{job.get('completed_at') or '—'}[/blue]
🔑 [bold]Dedupe Key:[/bold] {job.get('dedupe_key') or '—'}
"""

    console.print(Panel(content.strip(), title="Job", border_style="blue"))

    if job.get("last_error"):
        console.print(Panel(job["last_error"], title="Last Error", border_style="red"))

    if show_payload:
        console.print(
            Panel(_pretty(job.get("payload", {})), title="Payload", border_style="cyan")
        )
        if job.get("result"):
            console.print(
                Panel(_pretty(job["result"]), title="Result", border_style="green")
            )


def display_event(event: dict[str, Any]):
    """Display a single stored event"""
    processed = event.get("processed")
    content = f"""
🆔 [bold]ID:[/bold] [cyan]{event.get('id', 'unknown')}[/cyan]
📣 [bold]Type:[/bold] [magenta]{event.get('type', 'unknown')}[/magenta]
✅ [bold]Processed:[/bold] {'[green]yes[/green]' if processed else '[yellow]no[/yellow]'}
👤 [bold]User:[/bold] {event.get('user_id') or '—'}
🏠 [bold]Landlord:[/bold] {event.get('landlord_id') or '—'}
📅 [bold]Created:[/bold] [blue]{event.get('created_at', '—')}[/blue]
"""

    console.print(Panel(content.strip(), title="Event", border_style="blue"))
    console.print(
        Panel(_pretty(event.get("payload", {})), title="Payload", border_style="cyan")
    )


def _pretty(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True, default=str)
