"""
StageRecordsStep — writes every readable row to the Raw Record Store.

Rows are staged verbatim (JSON-safe) and never transformed here.  Rows
without client or patient, and rows from `_local` clients, go straight
to RejectedRecord; fully blank rows are skipped.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from volumetria.core.config import settings
from volumetria.core.constants import RejectionReason
from volumetria.core.logging import get_logger
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.record import Rejection, RejectedItem, clean_text
from volumetria.pipeline.step import PipelineStep
from volumetria.repositories import rejections as rejections_repo
from volumetria.repositories import staging as staging_repo
from volumetria.repositories import uploads as uploads_repo

logger = get_logger(__name__)

STAGING_RULE_CODE = "staging"


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, float) and value != value:     # NaN
        return None
    return value


def to_payload(row: dict[str, Any]) -> dict[str, Any]:
    return {key: _json_safe(value) for key, value in row.items()}


def is_blank(row: dict[str, Any]) -> bool:
    return all(clean_text(value) == "" for value in row.values())


def staging_rejection(row: dict[str, Any]) -> Rejection | None:
    """Row-level checks applied before a row is staged."""
    client = clean_text(row.get("EMPRESA"))
    patient = clean_text(row.get("NOME_PACIENTE"))
    if not client or not patient:
        missing = "EMPRESA" if not client else "NOME_PACIENTE"
        return Rejection(
            RejectionReason.MISSING_REQUIRED_FIELD,
            rule_code=STAGING_RULE_CODE,
            message=f"{missing} is empty",
        )
    if "_local" in client.lower():
        return Rejection(
            RejectionReason.LOCAL_CLIENT,
            rule_code=STAGING_RULE_CODE,
            message=f"Local client {client!r} is not billed",
        )
    return None


class StageRecordsStep(PipelineStep):
    """Stage raw rows and record staging rejections."""

    name = "stage_records"
    description = "Write raw rows to the staging store"
    stage = "staging"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()
        db = self._session(ctx)

        removed_staged = removed_rejected = 0
        settled: set[int] = set()
        if ctx.force_staging:
            # Rows already promoted, rejected or excluded keep their outcome
            settled = await staging_repo.settled_row_numbers(db, ctx.upload_id)
            removed_staged = await staging_repo.delete_staged(db, ctx.upload_id, unsettled_only=True)
            removed_rejected = await rejections_repo.delete_for_upload(
                db, ctx.upload_id, rule_code=STAGING_RULE_CODE
            )
            logger.info(
                "Forced re-staging, unsettled rows removed",
                upload_id=str(ctx.upload_id),
                staged=removed_staged,
                kept=len(settled),
                rejected=removed_rejected,
            )

        to_stage: list[tuple[int, dict[str, Any]]] = []
        rejected: list[RejectedItem] = []
        skipped = 0

        for index, row in enumerate(ctx.raw_rows, start=1):
            if index in settled:
                continue
            if is_blank(row):
                skipped += 1
                continue
            payload = to_payload(row)
            rejection = staging_rejection(row)
            if rejection is not None:
                rejected.append(RejectedItem(
                    rejection=rejection,
                    staged_record_id=None,
                    row_number=index,
                    raw_payload=payload,
                ))
                continue
            to_stage.append((index, payload))

        staged = await staging_repo.bulk_insert_staged(
            db,
            ctx.upload_id,
            to_stage,
            batch_size=settings.STAGING_INSERT_BATCH_SIZE,
        )
        await rejections_repo.bulk_insert_rejections(db, ctx.upload_id, rejected)
        await uploads_repo.increment_counters(
            db,
            ctx.upload_id,
            records_staged=staged - removed_staged,
            records_rejected=len(rejected) - removed_rejected,
        )

        ctx.rejected.extend(rejected)
        ctx.staging_result = {"staged": staged, "rejected": len(rejected), "skipped": skipped}

        logger.info("Rows staged", upload_id=str(ctx.upload_id), **ctx.staging_result)
        return self._success(started_at, metadata=dict(ctx.staging_result))
