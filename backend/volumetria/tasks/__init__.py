"""
Celery application factory.
"""

from celery import Celery
from celery.signals import worker_process_init

from volumetria.core.config import settings
from volumetria.core.logging import setup_logging

celery_app = Celery("volumetria")
celery_app.config_from_object("celeryconfig")

# Auto-discover tasks in these modules
celery_app.autodiscover_tasks([
    "volumetria.tasks.processing_tasks",
    "volumetria.tasks.maintenance_tasks",
], related_name=None)


@worker_process_init.connect
def _configure_worker_logging(**_kwargs) -> None:
    setup_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)
