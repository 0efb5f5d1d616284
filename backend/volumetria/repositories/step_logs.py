"""PipelineStepLog repository — one row per step per processed chunk."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.db.models.pipeline_step_log import PipelineStepLog


def _parse_dt(value: Any) -> datetime | None:
    """Convert ISO-format string to datetime, passthrough datetime/None."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None


async def persist_step_results(
    db: AsyncSession,
    *,
    upload_id: uuid.UUID,
    execution_id: str,
    chunk_index: int,
    step_results: list[dict[str, Any]],
) -> int:
    """Store serialised StepResults (PipelineResult.step_results)."""
    for index, result in enumerate(step_results):
        metadata = dict(result.get("metadata") or {})
        # Tracebacks stay in the logs, not the table
        metadata.pop("traceback", None)
        db.add(PipelineStepLog(
            upload_batch_id=upload_id,
            execution_id=execution_id,
            chunk_index=chunk_index,
            step_index=index,
            step_name=result["step_name"],
            status=result["status"],
            started_at=_parse_dt(result.get("started_at")),
            completed_at=_parse_dt(result.get("completed_at")),
            duration_ms=result.get("duration_ms"),
            error_message=result.get("error"),
            metadata_=metadata,
        ))
    await db.flush()
    return len(step_results)
