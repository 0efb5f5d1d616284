"""Reporting endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.api.deps import get_db
from volumetria.api.schemas.uploads import UnpricedExamResponse
from volumetria.pipeline.period import normalize_period_reference
from volumetria.repositories import exams as exams_repo

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/unpriced")
async def get_unpriced_report(
    upload_id: UUID | None = None,
    period_reference: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict[str, object]:
    """Canonical records without a resolved price, grouped by description."""
    rows = await exams_repo.unpriced_summary(
        db,
        upload_id=upload_id,
        period_reference=normalize_period_reference(period_reference) if period_reference else None,
    )
    data = [UnpricedExamResponse(study_description=desc, count=count) for desc, count in rows]
    return {"data": data, "total": sum(item.count for item in data)}
