"""
Celery settings for the volumetria workers.

Read by `celery_app.config_from_object("celeryconfig")` in
volumetria/tasks/__init__.py. Broker and backend URLs come from the
environment and default to a local Redis.
"""

import os

from celery.schedules import crontab

# ═══════════════════════════════════════════════════════════
#  Broker / backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
result_expires = 24 * 3600

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Delivery
# ═══════════════════════════════════════════════════════════

# At-least-once: the message is acked only once process_staged_batch
# returns, and goes back to the queue if the worker dies mid-batch.
# Re-delivery is safe because only pending staged rows are claimed.
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1

# One task drains a whole batch, chunk by chunk
task_soft_time_limit = 60 * 60
task_time_limit = 60 * 60 + 60

task_default_retry_delay = 60
task_max_retries = 3

# openpyxl workbooks are memory hungry; recycle children regularly
worker_max_tasks_per_child = 50

# Turn on with `celery -A volumetria.tasks worker -E` when debugging
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Queues
# ═══════════════════════════════════════════════════════════
#   celery -A volumetria.tasks worker -Q pipeline
#   celery -A volumetria.tasks worker -Q default
#   celery -A volumetria.tasks beat

task_default_queue = "default"
task_routes = {
    "volumetria.tasks.processing_tasks.*": {"queue": "pipeline"},
    "volumetria.tasks.maintenance_tasks.*": {"queue": "default"},
}

beat_schedule = {
    "upload-watchdog": {
        "task": "volumetria.tasks.maintenance_tasks.watchdog",
        "schedule": 5 * 60.0,
    },
    "rejected-records-retention": {
        "task": "volumetria.tasks.maintenance_tasks.cleanup_rejected",
        "schedule": crontab(hour=3, minute=30),
    },
}
