"""
PipelineStep — base class of the staging and background steps.

A step does one transformation of the context and returns a StepResult;
timing, retries and logging belong to the engine. Stage-level failures
are raised as StepExecutionError (use self._error). A record that fails
a check is not a step failure: it goes to ctx.rejected and the step
carries on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.core.constants import StepStatus
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.errors import StepExecutionError


class PipelineStep(ABC):
    """
    Override ``execute``; ``rollback`` and ``should_skip`` are optional.

    Class attributes:
        name         step identifier used in flows and step logs
        description  label for log lines
        stage        value of UploadBatch.error_detail["stage"] when the
                     step fails (falls back to ``name``)
        retryable    whether the engine may re-run it on StepExecutionError
        max_retries  total attempts when retryable
    """

    name: str = "unnamed_step"
    description: str = "No description"
    stage: str | None = None
    retryable: bool = False
    max_retries: int = 3

    @abstractmethod
    async def execute(self, ctx: PipelineContext) -> StepResult:
        ...

    async def rollback(self, ctx: PipelineContext) -> None:
        """Called by the engine after this step failed."""

    async def should_skip(self, ctx: PipelineContext) -> bool:
        return False

    @property
    def stage_name(self) -> str:
        return self.stage or self.name

    # ── helpers ───────────────────────────────

    def _session(self, ctx: PipelineContext) -> AsyncSession:
        if ctx.session is None:
            raise self._error(ctx, "No database session bound to the pipeline context")
        return ctx.session

    def _error(self, ctx: PipelineContext, message: str, **details: Any) -> StepExecutionError:
        return StepExecutionError(
            message,
            execution_id=ctx.execution_id,
            step_name=self.name,
            details={"stage": self.stage_name, **details},
        )

    def _result(self, status: str, started_at: datetime, **fields: Any) -> StepResult:
        finished = self._now()
        return StepResult(
            step_name=self.name,
            status=status,
            started_at=started_at,
            completed_at=finished,
            duration_ms=int((finished - started_at).total_seconds() * 1000),
            **fields,
        )

    def _success(self, started_at: datetime, metadata: dict[str, Any] | None = None) -> StepResult:
        return self._result(StepStatus.COMPLETED, started_at, metadata=metadata or {})

    def _failure(self, started_at: datetime, error: str, metadata: dict[str, Any] | None = None) -> StepResult:
        return self._result(
            StepStatus.FAILED,
            started_at,
            error=error,
            metadata={"stage": self.stage_name, **(metadata or {})},
        )

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)
