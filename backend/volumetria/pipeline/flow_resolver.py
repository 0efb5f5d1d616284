"""
FlowResolver — maps a pipeline phase to an ordered step sequence.

An upload is processed in two phases:

    staging     Read the source extract and stage every row verbatim
                (runs inside the ingestion request).
    background  Run one chunk of staged rows through rules, splitting,
                pricing and exclusions, then commit (runs in Celery,
                once per chunk).

To add a phase or a source-specific variant:
    1. Write the steps in pipeline/steps/
    2. Register the flow builder in FLOW_REGISTRY below, keyed by
       "<phase>" or "<phase>:<source_type>"
    3. The engine picks it up automatically
"""

from __future__ import annotations

from typing import Callable

from volumetria.core.logging import get_logger
from volumetria.pipeline.errors import FlowResolutionError
from volumetria.pipeline.step import PipelineStep

# ─── Import all steps ─────────────────────────────────
from volumetria.pipeline.steps.read_source_file import ReadSourceFileStep
from volumetria.pipeline.steps.stage_records import StageRecordsStep
from volumetria.pipeline.steps.parse_records import ParseStagedRecordsStep
from volumetria.pipeline.steps.apply_rules import ApplyRulesStep
from volumetria.pipeline.steps.split_exams import SplitExamsStep
from volumetria.pipeline.steps.resolve_prices import ResolvePricesStep
from volumetria.pipeline.steps.filter_exclusions import FilterExclusionsStep
from volumetria.pipeline.steps.commit_records import CommitRecordsStep

logger = get_logger(__name__)


def _staging_flow() -> list[PipelineStep]:
    """Read file → stage rows."""
    return [
        ReadSourceFileStep(),
        StageRecordsStep(),
    ]


def _background_flow() -> list[PipelineStep]:
    """
    One chunk of staged rows:

    Parse → Rules (tier order) → Split → Price → Exclusions → Commit

    Exclusions run after splitting so children inherit the parent's
    dates and are judged on the same window.
    """
    return [
        ParseStagedRecordsStep(),
        ApplyRulesStep(),
        SplitExamsStep(),
        ResolvePricesStep(),
        FilterExclusionsStep(),
        CommitRecordsStep(),
    ]


# ═══════════════════════════════════════════════════════════
#  Flow Registry
# ═══════════════════════════════════════════════════════════

FLOW_REGISTRY: dict[str, Callable[[], list[PipelineStep]]] = {
    "staging": _staging_flow,
    "background": _background_flow,
}


class FlowResolver:
    """
    Resolves a phase (and optionally a source type) to pipeline steps.

    Lookup order:
        1. "<phase>:<source_type>" in FLOW_REGISTRY
        2. "<phase>"
    """

    def __init__(self, registry: dict[str, Callable[[], list[PipelineStep]]] | None = None) -> None:
        self.registry = registry or FLOW_REGISTRY

    def resolve(self, phase: str, source_type: str | None = None) -> list[PipelineStep]:
        """
        Return the ordered step list for `phase`.

        Raises:
            FlowResolutionError: If no flow is registered for the phase.
        """
        if source_type:
            specific = f"{phase}:{source_type}"
            if specific in self.registry:
                logger.debug("Flow resolved by source type", phase=phase, source_type=source_type)
                return self.registry[specific]()

        if phase in self.registry:
            return self.registry[phase]()

        raise FlowResolutionError(
            f"No flow registered for phase '{phase}'",
            step_name="flow_resolution",
        )

    def list_available_flows(self) -> list[str]:
        """Return all registered flow keys."""
        return list(self.registry.keys())
