"""
Ingestion endpoints — stage an uploaded extract and queue processing.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.api.deps import get_db
from volumetria.api.schemas.ingestion import IngestionTriggerRequest, IngestionTriggerResponse
from volumetria.services import orchestrator

router = APIRouter(prefix="/ingestion", tags=["Ingestion"])


@router.post("/trigger", response_model=IngestionTriggerResponse, response_model_exclude_none=True)
async def trigger_ingestion(
    payload: IngestionTriggerRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Phase A of an upload.

    1. Creates (or resumes) the UploadBatch
    2. Stages every row of the file
    3. Queues the background phase and returns without waiting for it

    A staging failure is reported in the body (`success: false`) with the
    batch left in `error`; it is not an HTTP error.
    """
    return await orchestrator.trigger_ingestion(
        db,
        file_path=payload.file_path,
        source_type=payload.source_type,
        period_reference=payload.period_reference,
        upload_id=payload.upload_id,
        file_name=payload.file_name,
        force_staging=payload.force_staging,
    )
