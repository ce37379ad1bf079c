"""
Deferred job queue.

Jobs are rows in ``scheduled_jobs``. The worker claims due rows with a
conditional update, runs the handler registered for the job type and either
completes the job, reschedules it with exponential backoff, or fails it once
``max_retries`` attempts are used up. Unknown types and invalid payloads fail
immediately.
"""
