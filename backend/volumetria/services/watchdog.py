"""
Watchdog — reconciles uploads that stopped making progress.

Reads the UploadBatch heartbeat (`updated_at`) and the Raw Record Store:

    processing, heartbeat > hard limit
        → completed   when nothing is pending and records were inserted
        → cancelled   otherwise (zero inserted is always cancelled)
    processing, heartbeat > soft limit, work actually finished
        → completed
    staging_completed > soft limit   → background phase re-enqueued
    staging_completed > hard limit   → cancelled
    error, canonical count == records_inserted > 0, nothing pending
        → completed

Promoted canonical records are never deleted here.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.core.config import Settings, settings as default_settings
from volumetria.core.constants import UploadStatus
from volumetria.core.logging import get_logger
from volumetria.db.models.base import as_utc
from volumetria.db.models.upload_batch import UploadBatch
from volumetria.repositories import audit as audit_repo
from volumetria.repositories import exams as exams_repo
from volumetria.repositories import rejections as rejections_repo
from volumetria.repositories import staging as staging_repo
from volumetria.repositories import uploads as uploads_repo

logger = get_logger(__name__)

WATCHED_STATUSES = [
    UploadStatus.PROCESSING.value,
    UploadStatus.STAGING_COMPLETED.value,
    UploadStatus.ERROR.value,
]


def _default_dispatch(upload_id) -> str:
    from volumetria.services.orchestrator import dispatch_background

    return dispatch_background(upload_id)


async def _reconcile(
    db: AsyncSession,
    batch: UploadBatch,
    target: UploadStatus,
    reason: str,
    now: datetime,
) -> None:
    previous = batch.status
    fields: dict[str, Any] = {"current_stage": "watchdog"}
    if target == UploadStatus.COMPLETED:
        fields["completed_at"] = now
    else:
        fields["error_detail"] = {"stage": "watchdog", "message": reason, "chunk": None, "at": now.isoformat()}
        fields["error_message"] = reason

    await uploads_repo.set_status(db, batch, target, **fields)
    await audit_repo.write_audit(
        db,
        table_name="upload_batches",
        operation=f"WATCHDOG_{target.value.upper()}",
        record_id=str(batch.id),
        data={
            "previous_status": previous,
            "reason": reason,
            "records_inserted": batch.records_inserted,
        },
        severity="warning" if target == UploadStatus.CANCELLED else "info",
    )
    logger.info(
        "Watchdog reconciled upload",
        upload_id=str(batch.id),
        previous_status=previous,
        status=target.value,
        reason=reason,
    )


async def run_watchdog(
    db: AsyncSession,
    *,
    config: Settings | None = None,
    now: datetime | None = None,
    dispatch: Callable[[Any], Any] | None = None,
) -> dict[str, list[str]]:
    """One watchdog pass. Returns the upload ids touched, by action."""
    config = config or default_settings
    now = now or datetime.now(timezone.utc)
    dispatch = dispatch or _default_dispatch
    soft = timedelta(minutes=config.WATCHDOG_SOFT_STUCK_MINUTES)
    hard = timedelta(minutes=config.WATCHDOG_HARD_STUCK_MINUTES)

    summary: dict[str, list[str]] = {"completed": [], "cancelled": [], "redispatched": []}

    for batch in await uploads_repo.list_by_status(db, WATCHED_STATUSES):
        upload_id = str(batch.id)
        idle = now - as_utc(batch.updated_at)
        pending = await staging_repo.count_pending(db, batch.id)
        inserted = batch.records_inserted or 0

        if batch.status == UploadStatus.PROCESSING:
            if idle > hard:
                if pending == 0 and inserted > 0:
                    await _reconcile(db, batch, UploadStatus.COMPLETED, "stuck processing, work finished", now)
                    summary["completed"].append(upload_id)
                else:
                    await _reconcile(
                        db,
                        batch,
                        UploadStatus.CANCELLED,
                        f"no progress for {int(idle.total_seconds() // 60)} min "
                        f"(pending={pending}, inserted={inserted})",
                        now,
                    )
                    summary["cancelled"].append(upload_id)
            elif idle > soft and pending == 0 and inserted > 0:
                await _reconcile(db, batch, UploadStatus.COMPLETED, "finished without final status", now)
                summary["completed"].append(upload_id)

        elif batch.status == UploadStatus.STAGING_COMPLETED:
            waiting = now - as_utc(batch.staging_completed_at or batch.updated_at)
            if waiting > hard:
                await _reconcile(db, batch, UploadStatus.CANCELLED, "background phase never started", now)
                summary["cancelled"].append(upload_id)
            elif waiting > soft:
                try:
                    dispatch(batch.id)
                    summary["redispatched"].append(upload_id)
                    logger.info("Watchdog re-enqueued background phase", upload_id=upload_id)
                except Exception as exc:
                    logger.warning("Watchdog re-dispatch failed", upload_id=upload_id, error=str(exc))

        elif batch.status == UploadStatus.ERROR and inserted > 0 and pending == 0:
            committed = await exams_repo.count_for_upload(db, batch.id)
            if committed == inserted:
                await _reconcile(db, batch, UploadStatus.COMPLETED, "error status with all records committed", now)
                summary["completed"].append(upload_id)

    if any(summary.values()):
        logger.info("Watchdog pass finished", **{k: len(v) for k, v in summary.items()})
    return summary


async def cleanup_rejected_records(
    db: AsyncSession,
    *,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> int:
    """Retention: bulk delete RejectedRecords older than the window."""
    days = retention_days if retention_days is not None else default_settings.REJECTED_RETENTION_DAYS
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    deleted = await rejections_repo.delete_older_than(db, cutoff)
    if deleted:
        await audit_repo.write_audit(
            db,
            table_name="rejected_records",
            operation="RETENTION_CLEANUP",
            data={"deleted": deleted, "cutoff": cutoff.isoformat(), "retention_days": days},
        )
    logger.info("Rejected records cleanup", deleted=deleted, retention_days=days)
    return deleted
