"""
FilterExclusionsStep — drops records outside the declared period.

Runs only when the upload has a period reference and at least one
exclusion rule applies to its channel.  Excluded records move to
ctx.excluded; they are neither committed nor rejected.
"""

from __future__ import annotations

from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.exclusions import filter_records, is_retroactive_source
from volumetria.pipeline.step import PipelineStep


class FilterExclusionsStep(PipelineStep):
    name = "filter_exclusions"
    description = "Apply period exclusion rules (v002 / v003 / v031)"
    stage = "exclusions"

    async def should_skip(self, ctx: PipelineContext) -> bool:
        if ctx.window is None:
            return True
        if is_retroactive_source(ctx.source_type):
            return not (ctx.policy.realization_rule or ctx.policy.report_rule)
        return not ctx.policy.current_period_filter

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()

        outcome = filter_records(ctx.records, ctx.window, ctx.policy)
        ctx.records = outcome.kept
        ctx.excluded.extend(outcome.excluded)

        return self._success(started_at, metadata={
            "kept": len(outcome.kept),
            "excluded": outcome.counts(),
            "period_reference": ctx.window.period_reference,
        })
