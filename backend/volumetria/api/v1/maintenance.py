"""Maintenance endpoints — on-demand runs of the periodic jobs."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.api.deps import get_db
from volumetria.services.watchdog import cleanup_rejected_records, run_watchdog

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.post("/watchdog")
async def trigger_watchdog(db: AsyncSession = Depends(get_db)) -> dict[str, object]:
    """Run one watchdog pass now instead of waiting for beat."""
    summary = await run_watchdog(db)
    return {"sucesso": True, **summary}


@router.post("/cleanup-rejected")
async def trigger_cleanup(
    retention_days: int | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict[str, object]:
    deleted = await cleanup_rejected_records(db, retention_days=retention_days)
    return {"sucesso": True, "deleted": deleted}
