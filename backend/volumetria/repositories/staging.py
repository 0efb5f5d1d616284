"""
Raw Record Store repository — staged_exam_records.

Staged rows are claimed in row order, `pending` only, so a resumed
background run never sees a row that an earlier chunk committed.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.core.constants import StagedRecordStatus
from volumetria.db.models.staged_exam_record import StagedExamRecord


async def bulk_insert_staged(
    db: AsyncSession,
    upload_id: uuid.UUID,
    rows: Iterable[tuple[int, dict[str, Any]]],
    batch_size: int = 1000,
) -> int:
    """Insert (row_number, payload) pairs as pending rows. Returns count."""
    buffer: list[dict[str, Any]] = []
    total = 0
    for row_number, payload in rows:
        buffer.append({
            "id": uuid.uuid4(),
            "upload_batch_id": upload_id,
            "row_number": row_number,
            "raw_payload": payload,
            "processing_status": StagedRecordStatus.PENDING.value,
            "created_at": datetime.now(timezone.utc),
        })
        if len(buffer) >= batch_size:
            await db.execute(insert(StagedExamRecord), buffer)
            total += len(buffer)
            buffer = []
    if buffer:
        await db.execute(insert(StagedExamRecord), buffer)
        total += len(buffer)
    await db.flush()
    return total


async def count_by_status(db: AsyncSession, upload_id: uuid.UUID) -> dict[str, int]:
    """{status: count} for one batch."""
    stmt = (
        select(StagedExamRecord.processing_status, func.count())
        .where(StagedExamRecord.upload_batch_id == upload_id)
        .group_by(StagedExamRecord.processing_status)
    )
    result = await db.execute(stmt)
    return {status: count for status, count in result.all()}


async def count_staged(db: AsyncSession, upload_id: uuid.UUID) -> int:
    return sum((await count_by_status(db, upload_id)).values())


async def count_pending(db: AsyncSession, upload_id: uuid.UUID) -> int:
    counts = await count_by_status(db, upload_id)
    return counts.get(StagedRecordStatus.PENDING.value, 0) + counts.get(
        StagedRecordStatus.PROCESSING.value, 0
    )


async def claim_pending_chunk(
    db: AsyncSession,
    upload_id: uuid.UUID,
    limit: int,
) -> list[StagedExamRecord]:
    """
    Lock and return the next `limit` pending rows, marked `processing`.

    The mark is part of the caller's transaction: if the chunk rolls
    back, the rows go back to `pending`.
    """
    stmt = (
        select(StagedExamRecord)
        .where(
            StagedExamRecord.upload_batch_id == upload_id,
            StagedExamRecord.processing_status == StagedRecordStatus.PENDING.value,
        )
        .order_by(StagedExamRecord.row_number)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    rows = list((await db.execute(stmt)).scalars().all())
    for row in rows:
        row.processing_status = StagedRecordStatus.PROCESSING.value
    await db.flush()
    return rows


async def mark_staged(
    db: AsyncSession,
    staged_ids: list[uuid.UUID],
    status: StagedRecordStatus,
    exclusion_rule: str | None = None,
) -> int:
    """Set the final status of processed staged rows."""
    if not staged_ids:
        return 0
    stmt = (
        update(StagedExamRecord)
        .where(StagedExamRecord.id.in_(staged_ids))
        .values(
            processing_status=status.value,
            exclusion_rule=exclusion_rule,
            processed_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


# Rows whose outcome already reached the canonical or rejected store
SETTLED_STATUSES = (
    StagedRecordStatus.COMMITTED.value,
    StagedRecordStatus.REJECTED.value,
    StagedRecordStatus.EXCLUDED.value,
)


async def settled_row_numbers(db: AsyncSession, upload_id: uuid.UUID) -> set[int]:
    stmt = select(StagedExamRecord.row_number).where(
        StagedExamRecord.upload_batch_id == upload_id,
        StagedExamRecord.processing_status.in_(SETTLED_STATUSES),
    )
    return set((await db.execute(stmt)).scalars().all())


async def delete_staged(
    db: AsyncSession,
    upload_id: uuid.UUID,
    *,
    unsettled_only: bool = False,
) -> int:
    """Delete a batch's staged rows; optionally keep the settled ones."""
    stmt = delete(StagedExamRecord).where(StagedExamRecord.upload_batch_id == upload_id)
    if unsettled_only:
        stmt = stmt.where(StagedExamRecord.processing_status.notin_(SETTLED_STATUSES))
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.flush()
    return result.rowcount
