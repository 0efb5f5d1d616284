"""
Upload endpoints — status views and administrative reset / rollback.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.api.deps import get_actor, get_db
from volumetria.api.schemas.uploads import (
    RollbackRequest,
    UploadBatchDetailResponse,
    UploadBatchListResponse,
)
from volumetria.pipeline.errors import UploadNotFoundError
from volumetria.pipeline.period import normalize_period_reference
from volumetria.repositories import uploads as uploads_repo
from volumetria.services import orchestrator

router = APIRouter(prefix="/uploads", tags=["Uploads"])


# ─── List ─────────────────────────────────────────────────
@router.get("", response_model=UploadBatchListResponse)
async def list_uploads(
    status: str | None = None,
    source_type: str | None = None,
    period_reference: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
):
    """List upload batches (newest first) with optional filters."""
    batches, total = await uploads_repo.list_upload_batches(
        db,
        status=status,
        source_type=source_type,
        period_reference=normalize_period_reference(period_reference) if period_reference else None,
        offset=offset,
        limit=min(limit, 200),
    )
    return {"data": batches, "total": total}


# ─── Detail ───────────────────────────────────────────────
@router.get("/{upload_id}", response_model=UploadBatchDetailResponse)
async def get_upload(upload_id: UUID, db: AsyncSession = Depends(get_db)):
    """Batch status, counters and per-chunk step logs."""
    batch = await uploads_repo.get_upload_with_logs(db, upload_id)
    if batch is None:
        raise UploadNotFoundError(f"Upload {upload_id} not found", details={"upload_id": str(upload_id)})
    return batch


# ─── Admin ────────────────────────────────────────────────
@router.post("/{upload_id}/reset")
async def reset_upload(
    upload_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
) -> dict[str, object]:
    """Clear staged and partial data so the batch can be re-ingested."""
    return await orchestrator.reset_upload(db, upload_id, actor=actor)


@router.post("/{upload_id}/rollback")
async def rollback_upload(
    upload_id: UUID,
    payload: RollbackRequest | None = None,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
) -> dict[str, object]:
    """Undo a batch's committed data. Repeat calls are a no-op unless forced."""
    force = payload.force if payload else False
    return await orchestrator.rollback_upload(db, upload_id, force=force, actor=actor)
