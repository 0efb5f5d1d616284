"""
ApplyRulesStep — runs the versioned rule table over the chunk.

Tier order is fixed by the registry; a rule already listed in a
record's applied_rules is skipped unless ctx.force_rules is set.
Rejections are diverted to ctx.rejected and never stop the chunk.
"""

from __future__ import annotations

from volumetria.core.logging import get_logger
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.rules import apply_rules_to_batch
from volumetria.pipeline.step import PipelineStep

logger = get_logger(__name__)


class ApplyRulesStep(PipelineStep):
    name = "apply_rules"
    description = "Apply the normalization and validation rule table"
    stage = "rules"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()

        if ctx.reference is None:
            raise self._error(ctx, "Reference data not loaded")

        outcome = apply_rules_to_batch(ctx.records, ctx.reference, force=ctx.force_rules)

        for record, rejection in outcome.rejected:
            ctx.reject(record, rejection)
        ctx.records = outcome.accepted

        rejected_by_reason: dict[str, int] = {}
        for _, rejection in outcome.rejected:
            rejected_by_reason[rejection.reason.value] = rejected_by_reason.get(rejection.reason.value, 0) + 1

        logger.debug(
            "Rules applied",
            upload_id=str(ctx.upload_id),
            chunk_index=ctx.chunk_index,
            accepted=len(outcome.accepted),
            rejected=len(outcome.rejected),
        )
        return self._success(started_at, metadata={
            "accepted": len(outcome.accepted),
            "rejected": len(outcome.rejected),
            "changed": outcome.changed,
            "applied": outcome.applied_counts,
            "rejected_by_reason": rejected_by_reason,
        })

    async def rollback(self, ctx: PipelineContext) -> None:
        ctx.records = []
