"""SplitExamsStep — fans composite exams out into their billable children."""

from __future__ import annotations

from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.splitter import split_records
from volumetria.pipeline.step import PipelineStep


class SplitExamsStep(PipelineStep):
    name = "split_exams"
    description = "Split composite exam descriptions"
    stage = "split"

    async def should_skip(self, ctx: PipelineContext) -> bool:
        return ctx.reference is not None and not ctx.reference.split_rules

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()

        if ctx.reference is None:
            raise self._error(ctx, "Reference data not loaded")

        outcome = split_records(ctx.records, ctx.reference)
        ctx.records = outcome.records

        return self._success(started_at, metadata={
            "parents_split": outcome.parents_split,
            "children_created": outcome.children_created,
            "by_parent": outcome.by_parent,
        })
