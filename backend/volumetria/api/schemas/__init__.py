"""API schema package."""

from volumetria.api.schemas.ingestion import IngestionTriggerRequest, IngestionTriggerResponse
from volumetria.api.schemas.rules import ApplyRuleRequest, ApplyRuleResponse, RuleDescription
from volumetria.api.schemas.uploads import (
    RollbackRequest,
    StepLogResponse,
    UnpricedExamResponse,
    UploadBatchDetailResponse,
    UploadBatchListResponse,
    UploadBatchResponse,
)

__all__ = [
    "IngestionTriggerRequest",
    "IngestionTriggerResponse",
    "ApplyRuleRequest",
    "ApplyRuleResponse",
    "RuleDescription",
    "RollbackRequest",
    "StepLogResponse",
    "UnpricedExamResponse",
    "UploadBatchDetailResponse",
    "UploadBatchListResponse",
    "UploadBatchResponse",
]
