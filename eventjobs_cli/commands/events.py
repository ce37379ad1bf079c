"""Event Commands - browse, emit and replay events"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import EventJobsClient, EventJobsError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_events_table,
    display_event,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="events", help="Event store browsing and replay")


@app.command("list")
def list_events(
    type: str | None = typer.Option(None, "--type", "-t", help="Filter by event type"),
    unprocessed: bool = typer.Option(
        False, "--unprocessed", "-u", help="Only events not yet delivered"
    ),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Number of events to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N events"),
):
    """📋 List stored events, newest first"""
    base_url = config.get("api.base_url")
    limit = limit or int(config.get("display.events_per_page", 20))

    try:
        with EventJobsClient(base_url) as client:
            data = client.list_events(
                type=type,
                processed=False if unprocessed else None,
                limit=limit,
                offset=offset,
            )

        events = data.get("events", [])
        total = data.get("total", len(events))

        if not events:
            console.print(Panel(
                "📭 [yellow]No events found![/yellow]",
                title="Empty Results",
                border_style="yellow"
            ))
            return

        console.print(create_events_table(events))
        console.print(f"\n📊 Showing [cyan]{len(events)}[/cyan] of [yellow]{total}[/yellow] events")

    except EventJobsError as e:
        print_error(f"Failed to list events: {e}")
        raise typer.Exit(1) from None


@app.command("show")
def show_event(
    event_id: str = typer.Argument(..., help="Event ID to show"),
):
    """🔍 Show a stored event"""
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            event = client.get_event(event_id)

        display_event(event)

    except EventJobsError as e:
        print_error(f"Failed to get event: {e}")
        raise typer.Exit(1) from None


@app.command("emit")
def emit_event(
    type: str = typer.Argument(..., help="Event type (e.g. 'document.expired')"),
    payload: str = typer.Option(
        "{}", "--payload", "-p", help="Event payload as a JSON object"
    ),
):
    """📣 Emit an event through the bus"""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    if not isinstance(data, dict):
        print_error("Payload must be a JSON object")
        raise typer.Exit(1)

    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            result = client.emit_event(type, data)

        if result.get("delivered"):
            print_success(
                f"Emitted {type} to {result.get('listener_count', 0)} listener(s)"
            )
        else:
            print_warning(f"Emitted {type} but no listener is registered for it")

    except EventJobsError as e:
        print_error(f"Failed to emit event: {e}")
        raise typer.Exit(1) from None


@app.command("replay")
def replay_backlog(
    limit: int | None = typer.Option(
        None, "--limit", "-l", help="Maximum events to redeliver"
    ),
):
    """🔄 Redeliver events that were stored but never processed"""
    base_url = config.get("api.base_url")

    try:
        with EventJobsClient(base_url) as client:
            result = client.process_backlog(limit)

        print_success(f"Redelivered {result.get('delivered', 0)} event(s)")
        remaining = result.get("remaining", 0)
        if remaining:
            print_info(f"{remaining} event(s) still unprocessed")

    except EventJobsError as e:
        print_error(f"Failed to replay backlog: {e}")
        raise typer.Exit(1) from None
