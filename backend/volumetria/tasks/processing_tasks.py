"""
Celery tasks — background phase of an upload.

The request that staged the file enqueues process_staged_batch; the
watchdog enqueues it again for batches left in `staging_completed`.
Running it twice for the same batch is harmless: only pending staged
rows are claimed.
"""

import asyncio
import uuid

import structlog

from volumetria.db.session import make_session_factory
from volumetria.services.orchestrator import run_background
from volumetria.tasks import celery_app

logger = structlog.get_logger("tasks.processing")


async def _process(upload_id: uuid.UUID) -> dict:
    # Fresh engine: asyncio.run() gives every task its own event loop
    factory, engine = make_session_factory()
    try:
        return await run_background(upload_id, session_factory=factory)
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="volumetria.tasks.processing_tasks.process_staged_batch")
def process_staged_batch(self, upload_id: str):
    """Run every pending chunk of a staged batch through the background flow."""
    task_log = logger.bind(task_id=self.request.id, upload_id=upload_id)
    task_log.info("Background task started")

    try:
        result = asyncio.run(_process(uuid.UUID(upload_id)))
    except Exception as exc:
        # Chunk failures are recorded on the batch by run_background;
        # anything reaching here is infrastructure (DB down, bad id)
        task_log.exception("Background task crashed", error=str(exc))
        raise

    task_log.info(
        "Background task finished",
        status=result.get("status"),
        chunks=result.get("chunks"),
        inserted=result.get("inserted"),
    )
    return result
