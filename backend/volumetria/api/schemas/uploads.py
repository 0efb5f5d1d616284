"""UploadBatch status and report schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UploadBatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    file_name: str
    source_type: str
    period_reference: str | None
    status: str
    current_stage: str | None
    ruleset_version: str | None
    records_staged: int
    records_processed: int
    records_inserted: int
    records_updated: int
    records_rejected: int
    records_excluded: int
    error_detail: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    staging_completed_at: datetime | None
    completed_at: datetime | None


class StepLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    execution_id: str
    chunk_index: int
    step_index: int
    step_name: str
    status: str
    started_at: datetime | None
    completed_at: datetime | None
    duration_ms: int | None
    error_message: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")


class UploadBatchDetailResponse(UploadBatchResponse):
    step_logs: list[StepLogResponse] = Field(default_factory=list)


class UploadBatchListResponse(BaseModel):
    data: list[UploadBatchResponse]
    total: int


class RollbackRequest(BaseModel):
    force: bool = False


class UnpricedExamResponse(BaseModel):
    study_description: str
    count: int
