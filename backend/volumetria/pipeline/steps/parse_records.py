"""
ParseStagedRecordsStep — turns claimed staged rows into ExamRecords.

Malformed dates or quantities reject the row (MALFORMED_DATE /
MALFORMED_ROW); the rest of the chunk carries on.
"""

from __future__ import annotations

from volumetria.core.logging import get_logger
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.record import RejectedItem, Rejection, record_from_payload
from volumetria.pipeline.step import PipelineStep

logger = get_logger(__name__)


class ParseStagedRecordsStep(PipelineStep):
    name = "parse_records"
    description = "Parse staged payloads into exam records"
    stage = "parse"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()
        malformed = 0

        for row in ctx.staged_rows:
            parsed = record_from_payload(
                row.raw_payload or {},
                source_file=ctx.source_type,
                upload_batch_id=ctx.upload_id,
                period_reference=ctx.period_reference,
                staged_record_id=row.id,
                row_number=row.row_number,
            )
            if isinstance(parsed, Rejection):
                malformed += 1
                ctx.rejected.append(RejectedItem(
                    rejection=Rejection(parsed.reason, rule_code=parsed.rule_code or self.name, message=parsed.message),
                    staged_record_id=row.id,
                    row_number=row.row_number,
                    raw_payload=row.raw_payload or {},
                ))
                continue
            ctx.records.append(parsed)

        if malformed:
            logger.debug("Malformed staged rows rejected", upload_id=str(ctx.upload_id), count=malformed)

        return self._success(started_at, metadata={
            "parsed": len(ctx.records),
            "malformed": malformed,
        })
