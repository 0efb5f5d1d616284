"""
ResolvePricesStep — attaches a unit value to every record.

Unresolved prices are not failures: the record keeps
price_status="unresolved" and shows up in the unpriced report.
"""

from __future__ import annotations

from volumetria.core.logging import get_logger
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.pricing import resolve_prices
from volumetria.pipeline.step import PipelineStep

logger = get_logger(__name__)


class ResolvePricesStep(PipelineStep):
    name = "resolve_prices"
    description = "Resolve unit prices (direct, then split fallback)"
    stage = "pricing"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()

        if ctx.reference is None:
            raise self._error(ctx, "Reference data not loaded")

        outcome = resolve_prices(ctx.records, ctx.reference)
        ctx.records = outcome.records

        if outcome.unresolved:
            logger.info(
                "Records without price",
                upload_id=str(ctx.upload_id),
                chunk_index=ctx.chunk_index,
                count=outcome.unresolved,
            )

        return self._success(started_at, metadata={
            "resolved": outcome.resolved,
            "resolved_via_split": outcome.resolved_via_split,
            "unresolved": outcome.unresolved,
            "unresolved_descriptions": outcome.unresolved_descriptions,
        })
