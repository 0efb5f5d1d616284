"""RejectedRecord repository. Rows are immutable: insert and bulk delete only."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.db.models.rejected_record import RejectedRecord
from volumetria.pipeline.record import RejectedItem


async def bulk_insert_rejections(
    db: AsyncSession,
    upload_id: uuid.UUID,
    items: list[RejectedItem],
) -> int:
    if not items:
        return 0
    now = datetime.now(timezone.utc)
    payload = [
        {
            "id": uuid.uuid4(),
            "upload_batch_id": upload_id,
            "staged_record_id": item.staged_record_id,
            "row_number": item.row_number,
            "rule_code": item.rejection.rule_code,
            "reason": item.rejection.reason.value,
            "message": item.rejection.message or None,
            "raw_payload": item.raw_payload,
            "created_at": now,
        }
        for item in items
    ]
    await db.execute(insert(RejectedRecord), payload)
    await db.flush()
    return len(payload)


async def count_for_upload(db: AsyncSession, upload_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(RejectedRecord).where(RejectedRecord.upload_batch_id == upload_id)
    return (await db.execute(stmt)).scalar_one()


async def delete_for_upload(
    db: AsyncSession,
    upload_id: uuid.UUID,
    *,
    rule_code: str | None = None,
) -> int:
    stmt = delete(RejectedRecord).where(RejectedRecord.upload_batch_id == upload_id)
    if rule_code is not None:
        stmt = stmt.where(RejectedRecord.rule_code == rule_code)
    stmt = stmt.execution_options(synchronize_session=False)
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


async def delete_older_than(db: AsyncSession, cutoff: datetime) -> int:
    """Retention: drop rejections created before `cutoff`."""
    stmt = (
        delete(RejectedRecord)
        .where(RejectedRecord.created_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount
