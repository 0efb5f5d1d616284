"""Ingestion trigger request/response schemas."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from volumetria.core.constants import SourceType


class IngestionTriggerRequest(BaseModel):
    """Payload sent once an extract has been uploaded to storage."""

    model_config = ConfigDict(populate_by_name=True)

    file_path: str = Field(..., alias="filePath", min_length=1)
    source_type: SourceType = Field(..., alias="sourceType")
    period_reference: str | None = Field(None, alias="periodReference")
    upload_id: UUID | None = Field(None, alias="uploadId")
    file_name: str | None = Field(None, alias="fileName")
    force_staging: bool = Field(False, alias="forceStaging")


class IngestionTriggerResponse(BaseModel):
    success: bool
    uploadId: str
    status: str | None = None
    stagingResult: dict[str, Any] | None = None
    backgroundStatus: str | None = None
    error: str | None = None
    stage: str | None = None
