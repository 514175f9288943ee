"""
Celery configuration for the silver extraction workers.

Loaded by `celery_app.config_from_object("celeryconfig")` in silver/tasks/__init__.py.
All broker/result-backend URLs come from environment variables,
defaulting to localhost for local dev.
"""

import os

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# ═══════════════════════════════════════════════════════════
#  Serialization — JSON only
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone
# ═══════════════════════════════════════════════════════════

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge tasks AFTER they complete (a crashed worker re-queues the batch)
task_acks_late = True
task_reject_on_worker_lost = True

# One batch at a time per worker process; each batch runs its own worker pool
worker_prefetch_multiplier = 1

# A batch of a few thousand pages on a slow share can take a while
task_soft_time_limit = 3600   # 60 min: raises SoftTimeLimitExceeded
task_time_limit = 3660        # 61 min: hard kill

# ═══════════════════════════════════════════════════════════
#  Retry Policy
# ═══════════════════════════════════════════════════════════

task_default_retry_delay = 60
task_max_retries = 3

# ═══════════════════════════════════════════════════════════
#  Result Expiry — auto-clean after 24h
# ═══════════════════════════════════════════════════════════

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Worker Settings
# ═══════════════════════════════════════════════════════════

# Breaker state is per process, so keep processes around for a while
worker_max_tasks_per_child = 200

worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes — separate queues for workload isolation
# ═══════════════════════════════════════════════════════════
# Run dedicated workers per queue:
#   celery -A silver.tasks worker -Q extraction    (heavy: parsing + validation)
#   celery -A silver.tasks worker -Q maintenance   (dedup passes, reports)

task_routes = {
    "silver.tasks.extraction_tasks.extract_batch": {"queue": "extraction"},
    "silver.tasks.extraction_tasks.deduplicate": {"queue": "maintenance"},
    "silver.tasks.extraction_tasks.integrity_report": {"queue": "maintenance"},
}

task_default_queue = "extraction"

# ═══════════════════════════════════════════════════════════
#  Beat Schedule (periodic tasks)
# ═══════════════════════════════════════════════════════════
# Example:
#   beat_schedule = {
#       "nightly-dedup-dry-run": {
#           "task": "silver.tasks.extraction_tasks.deduplicate",
#           "schedule": 86400.0,
#           "kwargs": {"dry_run": True},
#       },
#   }
beat_schedule = {}
