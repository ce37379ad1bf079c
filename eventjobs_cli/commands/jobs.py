"""Job Commands - inspect and operate the deferred job queue"""

from datetime import UTC, datetime, timedelta

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import EventJobsClient, EventJobsError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_jobs_table,
    create_stats_panel,
    display_job,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Job queue monitoring and operations")

REMINDER_KINDS = [
    "rent",
    "appointment",
    "verification",
    "invoice",
    "lease_signing",
    "property_showing",
    "open_house",
]


@app.command("list")
def list_jobs(
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs in the queue"""
    base_url = config.get("api.base_url")
    limit = limit or int(config.get("display.jobs_per_page", 20))

    try:
        with EventJobsClient(base_url) as client:
            data = client.list_jobs(status=status, type=type, limit=limit, offset=offset)

        jobs = data.get("jobs", [])
        total = data.get("total", len(jobs))

        if not jobs:
            console.print(Panel(
                "📭 [yellow]No jobs found![/yellow]\n\n"
                f"Filters applied:\n"
                f"• Status: {', '.join(status) if status else 'any'}\n"
                f"• Type: {type or 'any'}",
                title="Empty Results",
                border_style="yellow"
            ))
            return

        console.print(create_jobs_table(jobs))
        console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")

        if offset + limit < total:
            console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")

    except EventJobsError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID to show"),
):
    """🔍 Show a job with its payload, result and last error"""
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            job = client.get_job(job_id)

        display_job(job)

    except EventJobsError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None


@app.command("stats")
def show_stats():
    """📊 Show queue statistics"""
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            stats = client.get_job_stats()

        console.print(create_stats_panel(stats))

        failed_recent = stats.get("failed_last_hour", 0)
        if failed_recent:
            print_warning(
                f"{failed_recent} job(s) failed in the last hour. "
                "Inspect with: eventjobs jobs list --status failed"
            )

    except EventJobsError as e:
        print_error(f"Failed to get job stats: {e}")
        raise typer.Exit(1) from None


@app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="Failed job ID to retry"),
):
    """🔁 Move a failed job back to pending"""
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            client.retry_job(job_id)

        print_success(f"Job {job_id} queued for retry")

    except EventJobsError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None


@app.command("cancel")
def cancel_job(
    job_id: str = typer.Argument(..., help="Pending job ID to cancel"),
):
    """🛑 Cancel a pending job"""
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            client.cancel_job(job_id)

        print_success(f"Job {job_id} canceled")

    except EventJobsError as e:
        print_error(f"Failed to cancel job: {e}")
        raise typer.Exit(1) from None


@app.command("remind")
def schedule_reminder(
    kind: str = typer.Argument(..., help=f"Reminder kind ({', '.join(REMINDER_KINDS)})"),
    recipient_id: str = typer.Option(..., "--to", help="Recipient user ID"),
    in_minutes: int = typer.Option(
        0, "--in", help="Minutes from now to send the reminder"
    ),
    message: str | None = typer.Option(None, "--message", "-m", help="Custom message"),
    priority: int = typer.Option(0, "--priority", "-p", help="Higher runs first"),
):
    """⏰ Schedule a reminder"""
    if kind not in REMINDER_KINDS:
        print_error(f"Unknown reminder kind '{kind}'")
        raise typer.Exit(1)

    scheduled_for = datetime.now(UTC) + timedelta(minutes=in_minutes)
    data = {"message": message} if message else {}
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            result = client.schedule_reminder(
                kind,
                scheduled_for.isoformat(),
                recipient_id=recipient_id,
                data=data,
                priority=priority,
            )

        if result.get("deduplicated"):
            print_info(f"An active reminder already exists: {result.get('job_id')}")
        else:
            print_success(
                f"Reminder scheduled for {scheduled_for:%Y-%m-%d %H:%M} UTC "
                f"(job {result.get('job_id')})"
            )

    except EventJobsError as e:
        print_error(f"Failed to schedule reminder: {e}")
        raise typer.Exit(1) from None
