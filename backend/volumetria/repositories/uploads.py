"""
UploadBatch repository — all data access for the upload_batches table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
- Status changes go through set_status() so the state machine is
  enforced in one place
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volumetria.core.constants import UploadStatus
from volumetria.db.models.upload_batch import UploadBatch
from volumetria.pipeline.errors import UploadNotFoundError
from volumetria.pipeline.transitions import ensure_transition

COUNTER_FIELDS = (
    "records_staged",
    "records_processed",
    "records_inserted",
    "records_updated",
    "records_rejected",
    "records_excluded",
)


async def create_upload_batch(
    db: AsyncSession,
    *,
    file_name: str,
    source_type: str,
    period_reference: str | None = None,
    file_path: str | None = None,
    upload_id: uuid.UUID | None = None,
) -> UploadBatch:
    """Register a new upload in `pending`."""
    batch = UploadBatch(
        id=upload_id or uuid.uuid4(),
        file_name=file_name,
        file_path=file_path,
        source_type=source_type,
        period_reference=period_reference,
        status=UploadStatus.PENDING.value,
    )
    db.add(batch)
    await db.flush()
    return batch


async def get_upload_batch(db: AsyncSession, upload_id: uuid.UUID) -> UploadBatch | None:
    """Fetch a batch by primary key."""
    return await db.get(UploadBatch, upload_id)


async def get_upload_batch_or_raise(db: AsyncSession, upload_id: uuid.UUID) -> UploadBatch:
    batch = await get_upload_batch(db, upload_id)
    if batch is None:
        raise UploadNotFoundError(f"Upload {upload_id} not found", details={"upload_id": str(upload_id)})
    return batch


async def lock_upload_batch(db: AsyncSession, upload_id: uuid.UUID) -> UploadBatch:
    """Fetch a batch with a row lock held until the caller's transaction ends."""
    stmt = (
        select(UploadBatch)
        .where(UploadBatch.id == upload_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    batch = (await db.execute(stmt)).scalar_one_or_none()
    if batch is None:
        raise UploadNotFoundError(f"Upload {upload_id} not found", details={"upload_id": str(upload_id)})
    return batch


async def get_upload_with_logs(db: AsyncSession, upload_id: uuid.UUID) -> UploadBatch | None:
    """Fetch a batch with its step logs eagerly loaded."""
    stmt = (
        select(UploadBatch)
        .options(selectinload(UploadBatch.step_logs))
        .where(UploadBatch.id == upload_id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_upload_batches(
    db: AsyncSession,
    *,
    status: str | None = None,
    source_type: str | None = None,
    period_reference: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[UploadBatch], int]:
    """List batches (newest first) with optional filters, plus total count."""
    filters = []
    if status is not None:
        filters.append(UploadBatch.status == status)
    if source_type is not None:
        filters.append(UploadBatch.source_type == source_type)
    if period_reference is not None:
        filters.append(UploadBatch.period_reference == period_reference)

    total = (
        await db.execute(select(func.count()).select_from(UploadBatch).where(*filters))
    ).scalar_one()

    stmt = (
        select(UploadBatch)
        .where(*filters)
        .order_by(UploadBatch.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def list_by_status(db: AsyncSession, statuses: list[str]) -> list[UploadBatch]:
    """Every batch currently in one of `statuses` (watchdog scan)."""
    stmt = select(UploadBatch).where(UploadBatch.status.in_(statuses)).order_by(UploadBatch.updated_at)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def set_status(
    db: AsyncSession,
    batch: UploadBatch,
    target: UploadStatus,
    **fields: object,
) -> UploadBatch:
    """Move a batch to `target` (validated) and set any extra columns."""
    ensure_transition(batch.status, target)
    batch.status = target.value
    for key, value in fields.items():
        setattr(batch, key, value)
    batch.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return batch


async def complete_if_processing(db: AsyncSession, upload_id: uuid.UUID, **fields: object) -> bool:
    """
    Compare-and-set `processing` → `completed`.

    Returns False when the batch had already left `processing`.
    """
    stmt = (
        update(UploadBatch)
        .where(UploadBatch.id == upload_id, UploadBatch.status == UploadStatus.PROCESSING.value)
        .values(
            status=UploadStatus.COMPLETED.value,
            updated_at=datetime.now(timezone.utc),
            **fields,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount == 1


async def increment_counters(db: AsyncSession, upload_id: uuid.UUID, **deltas: int) -> None:
    """Atomically add to counter columns and bump the heartbeat."""
    values: dict[str, object] = {
        name: getattr(UploadBatch, name) + delta
        for name, delta in deltas.items()
        if name in COUNTER_FIELDS and delta
    }
    values["updated_at"] = datetime.now(timezone.utc)
    stmt = (
        update(UploadBatch)
        .where(UploadBatch.id == upload_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)
    await db.flush()


async def reset_counters(db: AsyncSession, batch: UploadBatch) -> None:
    for name in COUNTER_FIELDS:
        setattr(batch, name, 0)
    batch.error_detail = None
    batch.error_message = None
    batch.started_at = None
    batch.staging_completed_at = None
    batch.completed_at = None
    batch.current_stage = None
    await db.flush()
