"""
Celery tasks — periodic maintenance (scheduled by celery beat).
"""

import asyncio

import structlog

from volumetria.db.session import make_session_factory
from volumetria.services.watchdog import cleanup_rejected_records, run_watchdog
from volumetria.tasks import celery_app

logger = structlog.get_logger("tasks.maintenance")


async def _watchdog_pass() -> dict:
    factory, engine = make_session_factory()
    try:
        async with factory() as db:
            summary = await run_watchdog(db)
            await db.commit()
            return summary
    finally:
        await engine.dispose()


async def _cleanup_pass(retention_days: int | None) -> int:
    factory, engine = make_session_factory()
    try:
        async with factory() as db:
            deleted = await cleanup_rejected_records(db, retention_days=retention_days)
            await db.commit()
            return deleted
    finally:
        await engine.dispose()


@celery_app.task(name="volumetria.tasks.maintenance_tasks.watchdog")
def watchdog():
    """Reconcile stuck uploads."""
    summary = asyncio.run(_watchdog_pass())
    logger.info("Watchdog task finished", **{k: len(v) for k, v in summary.items()})
    return summary


@celery_app.task(name="volumetria.tasks.maintenance_tasks.cleanup_rejected")
def cleanup_rejected(retention_days: int | None = None):
    """Delete rejected records past the retention window."""
    deleted = asyncio.run(_cleanup_pass(retention_days))
    return {"deleted": deleted}
