"""API Endpoint Wrappers - typed calls for events and jobs"""

from typing import Any

from .base import APIClient, EventJobsError
from ..utils.config_manager import config

__all__ = ["EventJobsClient", "EventJobsError"]


class EventJobsClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=final_headers
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Job Endpoints
    def list_jobs(
        self,
        status: list[str] | None = None,
        type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if type:
            params["type"] = type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get specific job by ID"""
        return self.api.get(f"/jobs/{job_id}")

    def get_job_stats(self) -> dict[str, Any]:
        """Get job queue statistics"""
        return self.api.get("/jobs/stats/overview")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        """Retry a failed job"""
        return self.api.post(f"/jobs/{job_id}/retry")

    def cancel_job(self, job_id: str) -> dict[str, Any]:
        """Cancel a pending job"""
        return self.api.post(f"/jobs/{job_id}/cancel")

    def schedule_reminder(
        self,
        kind: str,
        scheduled_for: str,
        recipient_id: str | None = None,
        data: dict[str, Any] | None = None,
        priority: int = 0,
    ) -> dict[str, Any]:
        """Schedule a send_reminder job"""
        body = {
            "kind": kind,
            "scheduled_for": scheduled_for,
            "recipient_id": recipient_id,
            "data": data or {},
            "priority": priority,
        }
        return self.api.post("/jobs/reminders", body)

    # Event Endpoints
    def list_events(
        self,
        type: str | None = None,
        processed: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List stored events"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if type:
            params["type"] = type
        if processed is not None:
            params["processed"] = str(processed).lower()
        return self.api.get("/events", params)

    def get_event(self, event_id: str) -> dict[str, Any]:
        """Get stored event by ID"""
        return self.api.get(f"/events/{event_id}")

    def emit_event(self, type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Emit an event"""
        return self.api.post("/events", {"type": type, "payload": payload})

    def process_backlog(self, limit: int | None = None) -> dict[str, Any]:
        """Redeliver unprocessed events"""
        params = {"limit": limit} if limit else None
        return self.api.post("/events/backlog/process", params=params)
