#!/usr/bin/env python3
"""
Demo script walking an event through listeners, the job queue and the worker.
Run with: python scripts/demo_event_flow.py
"""

import asyncio
import tempfile
from pathlib import Path

from eventjobs.config.settings import Settings
from eventjobs.v1.core.context import build_context
from eventjobs.v1.infra.events.schemas import EventType
from eventjobs.v1.infra.jobs.handlers import JobCollaborators


class PrintingLateFees:
    """Late fee service that only reports what it would charge."""

    async def apply_late_fee(self, invoice_id: str):
        print(f"   💸 Late fee applied to {invoice_id}")
        return {"fee": "25.00"}


async def demo(database_path: Path):
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{database_path}",
        environment="demo",
        job_worker_enabled=False,
    )
    context = build_context(
        settings, collaborators=JobCollaborators(late_fees=PrintingLateFees())
    )
    await context.database.create_all()

    print("📣 EMIT")
    print("=" * 50)
    delivered = await context.event_bus.emit(
        EventType.INVOICE_OVERDUE,
        {"invoiceId": "inv-1001", "customerId": "cust-42"},
    )
    print(f"✅ invoice.overdue delivered: {delivered}")

    jobs, total = await context.job_service.list_jobs()
    print(f"✅ Jobs scheduled: {total}")
    for job in jobs:
        print(f"   • {job.type} (priority {job.priority})")
    print()

    print("⚙️  WORKER")
    print("=" * 50)
    processed = await context.worker.process_due_jobs()
    print(f"✅ Jobs processed this cycle: {processed}")

    stats = await context.job_service.get_job_stats()
    print(f"✅ By status: {stats.by_status}")

    for notification in await context.notifications.list_for_user("cust-42"):
        print(f"   🔔 {notification.title}: {notification.message}")
    print()

    await context.database.close()


def main():
    print("📬 EVENT JOBS DEMO")
    print("=" * 50)
    print()

    with tempfile.TemporaryDirectory() as tmp:
        asyncio.run(demo(Path(tmp) / "demo.db"))

    print("🎉 Demo complete")


if __name__ == "__main__":
    main()
