"""
PipelineEngine — runs an ordered list of steps against one context.

The engine knows nothing about uploads or chunks beyond what the
context carries. One call processes one unit of work (the staging of a
file, or one chunk of staged rows):

    1. the FlowResolver picks the steps for the phase and source type
    2. steps run in order, each one timed and logged
    3. retryable steps get another attempt on StepExecutionError,
       waiting backoff_base ** attempt seconds in between
    4. the first failure ends the run after that step's rollback()

Persisting step logs and moving the upload batch to its next status is
left to the orchestrator, which owns the transaction.
"""

from __future__ import annotations

import asyncio
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from volumetria.core.constants import PipelineStatus, StepStatus
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.errors import FlowResolutionError, StepExecutionError
from volumetria.pipeline.step import PipelineStep


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineResult:
    """What one engine run produced, ready to be persisted."""

    execution_id: str
    status: str                     # PipelineStatus value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_duration_ms: int = 0
    steps_completed: int = 0
    total_steps: int = 0
    step_results: list[dict[str, Any]] = field(default_factory=list)
    context_summary: dict[str, Any] = field(default_factory=dict)
    failed_step: str | None = None
    failed_stage: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PipelineStatus.COMPLETED


class PipelineEngine:
    """
    Drives PipelineStep objects over a PipelineContext.

        engine = PipelineEngine(flow_resolver=FlowResolver())
        result = await engine.run(ctx, phase="background")

    Tests usually skip resolution and hand the steps over directly::

        result = await PipelineEngine().run_steps(ctx, [ApplyRulesStep(), SplitExamsStep()])
    """

    def __init__(self, flow_resolver=None, backoff_base: float = 2.0) -> None:
        self.flow_resolver = flow_resolver
        self.backoff_base = backoff_base
        self.logger = structlog.get_logger("pipeline.engine")

    async def run(self, ctx: PipelineContext, phase: str) -> PipelineResult:
        log = self.logger.bind(
            execution_id=ctx.execution_id,
            upload_id=str(ctx.upload_id),
            phase=phase,
            chunk_index=ctx.chunk_index,
        )

        if self.flow_resolver is None:
            log.error("Engine has no flow resolver")
            return self._aborted(ctx, "No flow resolver configured")

        try:
            steps = self.flow_resolver.resolve(phase, ctx.source_type)
        except FlowResolutionError as exc:
            log.error("Could not resolve flow", error=str(exc))
            return self._aborted(ctx, f"Flow resolution failed: {exc}")

        result = await self.run_steps(ctx, steps)
        log.info(
            "Flow run done",
            status=result.status,
            steps=f"{result.steps_completed}/{result.total_steps}",
            duration_ms=result.total_duration_ms,
        )
        return result

    async def run_steps(self, ctx: PipelineContext, steps: list[PipelineStep]) -> PipelineResult:
        """Run `steps` in order; stop at the first one that fails."""
        started_at = _utcnow()
        ctx.total_steps = len(steps)
        log = self.logger.bind(
            execution_id=ctx.execution_id,
            upload_id=str(ctx.upload_id),
            chunk_index=ctx.chunk_index,
        )

        done = 0
        failed: PipelineStep | None = None
        failure: str | None = None

        for position, step in enumerate(steps, start=1):
            ctx.current_step_index = position - 1
            step_log = log.bind(step_name=step.name, step_index=position)

            if await self._skipped(step, ctx, step_log):
                done += 1
                continue

            step_log.debug("Running step", description=step.description, of=len(steps))
            outcome = await self._attempt(step, ctx, step_log)
            ctx.step_results.append(outcome)

            if outcome.status == StepStatus.COMPLETED:
                done += 1
                step_log.debug("Step ok", duration_ms=outcome.duration_ms, metadata=outcome.metadata)
                continue

            failed, failure = step, outcome.error
            await self._abandon(step, ctx, outcome, step_log)
            break

        finished_at = _utcnow()
        return PipelineResult(
            execution_id=ctx.execution_id,
            status=PipelineStatus.FAILED if failed else PipelineStatus.COMPLETED,
            started_at=started_at,
            completed_at=finished_at,
            total_duration_ms=int((finished_at - started_at).total_seconds() * 1000),
            steps_completed=done,
            total_steps=len(steps),
            step_results=[r.to_dict() for r in ctx.step_results],
            context_summary=ctx.to_summary_dict(),
            failed_step=failed.name if failed else None,
            failed_stage=failed.stage_name if failed else None,
            error=failure,
        )

    async def _skipped(self, step: PipelineStep, ctx: PipelineContext, log) -> bool:
        """Record a SKIPPED result when the step opts out of this run."""
        try:
            skip = await step.should_skip(ctx)
        except Exception as exc:
            log.warning("should_skip raised; step will run", error=str(exc))
            return False
        if not skip:
            return False

        log.debug("Step skipped")
        now = _utcnow()
        ctx.step_results.append(
            StepResult(step_name=step.name, status=StepStatus.SKIPPED, started_at=now, completed_at=now)
        )
        return True

    async def _abandon(self, step: PipelineStep, ctx: PipelineContext, outcome: StepResult, log) -> None:
        log.error("Step failed; remaining steps dropped", error=outcome.error, duration_ms=outcome.duration_ms)
        ctx.add_error(f"Step '{step.name}' failed: {outcome.error}")
        try:
            await step.rollback(ctx)
        except Exception as exc:
            log.warning("Step rollback raised", error=str(exc))
        else:
            log.info("Step rolled back")

    async def _attempt(self, step: PipelineStep, ctx: PipelineContext, log) -> StepResult:
        """
        Execute `step`, retrying StepExecutionError while attempts remain.

        Any other exception is a bug in the step and fails immediately.
        """
        attempts = step.max_retries if step.retryable else 1
        attempt = 0

        while True:
            attempt += 1
            started_at = _utcnow()
            try:
                outcome = await step.execute(ctx)
            except StepExecutionError as exc:
                if attempt >= attempts:
                    return step._failure(started_at, str(exc), metadata={"attempts": attempt, **exc.details})
                delay = self.backoff_base ** attempt
                log.warning("Step attempt failed", attempt=attempt, of=attempts, retry_in_s=delay, error=str(exc))
                await asyncio.sleep(delay)
            except Exception as exc:
                log.exception("Step raised unexpectedly", error=str(exc))
                return step._failure(
                    started_at,
                    f"Unexpected: {exc}",
                    metadata={"traceback": traceback.format_exc()},
                )
            else:
                if attempt > 1:
                    outcome.metadata.setdefault("attempts", attempt)
                return outcome

    def _aborted(self, ctx: PipelineContext, error: str) -> PipelineResult:
        now = _utcnow()
        return PipelineResult(
            execution_id=ctx.execution_id,
            status=PipelineStatus.FAILED,
            started_at=now,
            completed_at=now,
            failed_stage="flow_resolution",
            error=error,
        )
