"""
Canonical record store repository — exam_records.

Every mutation is scoped by upload batch or by an explicit filter
predicate; there is no unscoped table-wide delete here.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from volumetria.core.constants import PriceStatus
from volumetria.db.models.exam_record import ExamRecord


def scope_filters(
    *,
    source_file: str | None = None,
    upload_id: uuid.UUID | None = None,
    period_reference: str | None = None,
) -> list[ColumnElement[bool]]:
    """WHERE clauses for an operator-supplied scope."""
    filters: list[ColumnElement[bool]] = []
    if source_file is not None:
        filters.append(ExamRecord.source_file == source_file)
    if upload_id is not None:
        filters.append(ExamRecord.upload_batch_id == upload_id)
    if period_reference is not None:
        filters.append(ExamRecord.period_reference == period_reference)
    return filters


async def bulk_insert_exam_records(db: AsyncSession, rows: list[dict[str, Any]]) -> int:
    """Insert canonical rows. Returns count."""
    if not rows:
        return 0
    payload = [{"id": uuid.uuid4(), **row} for row in rows]
    await db.execute(insert(ExamRecord), payload)
    await db.flush()
    return len(payload)


async def count_for_upload(db: AsyncSession, upload_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(ExamRecord).where(ExamRecord.upload_batch_id == upload_id)
    return (await db.execute(stmt)).scalar_one()


async def list_scoped(
    db: AsyncSession,
    filters: list[ColumnElement[bool]],
    *,
    offset: int = 0,
    limit: int | None = None,
) -> list[ExamRecord]:
    """Canonical rows matching `filters`, in stable id order."""
    stmt = select(ExamRecord).where(*filters).order_by(ExamRecord.created_at, ExamRecord.id).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def delete_by_ids(db: AsyncSession, record_ids: list[uuid.UUID]) -> int:
    if not record_ids:
        return 0
    stmt = delete(ExamRecord).where(ExamRecord.id.in_(record_ids)).execution_options(synchronize_session=False)
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


async def delete_matching(
    db: AsyncSession,
    predicate: ColumnElement[bool],
    filters: list[ColumnElement[bool]],
) -> int:
    """Delete rows matching predicate AND scope. Returns exact row count."""
    stmt = (
        delete(ExamRecord)
        .where(predicate, *filters)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


async def count_by_upload(
    db: AsyncSession,
    predicate: ColumnElement[bool],
    filters: list[ColumnElement[bool]],
) -> dict[uuid.UUID, int]:
    """{upload_batch_id: count} of rows matching predicate AND scope."""
    stmt = (
        select(ExamRecord.upload_batch_id, func.count())
        .where(predicate, *filters)
        .group_by(ExamRecord.upload_batch_id)
    )
    result = await db.execute(stmt)
    return {upload_id: count for upload_id, count in result.all()}


async def delete_for_upload(db: AsyncSession, upload_id: uuid.UUID) -> int:
    return await delete_matching(db, ExamRecord.upload_batch_id == upload_id, [])


async def unpriced_summary(
    db: AsyncSession,
    *,
    upload_id: uuid.UUID | None = None,
    period_reference: str | None = None,
) -> list[tuple[str, int]]:
    """(study_description, count) of records with no resolved price."""
    stmt = (
        select(ExamRecord.study_description, func.count())
        .where(
            ExamRecord.price_status == PriceStatus.UNRESOLVED.value,
            *scope_filters(upload_id=upload_id, period_reference=period_reference),
        )
        .group_by(ExamRecord.study_description)
        .order_by(func.count().desc(), ExamRecord.study_description)
    )
    result = await db.execute(stmt)
    return [(description, count) for description, count in result.all()]
