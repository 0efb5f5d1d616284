"""
PipelineContext — what the steps of one engine run share.

A run is either the staging of an upload (read file, stage rows) or a
single chunk of the background phase (parse, rules, split, price,
exclude, commit). Steps hand their output to the next step through the
fields below; to_summary_dict() is what ends up in the step logs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from volumetria.core.constants import ExclusionRule
from volumetria.pipeline.exclusions import ExclusionPolicy
from volumetria.pipeline.period import ExclusionWindow
from volumetria.pipeline.record import ExamRecord, RejectedItem
from volumetria.pipeline.reference import ReferenceData

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from volumetria.db.models import StagedExamRecord


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class StepResult:
    """Timing, status and metadata of one step, as stored in pipeline_step_logs."""

    step_name: str
    status: str                     # StepStatus value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(vars(self))
        data["started_at"] = _iso(self.started_at)
        data["completed_at"] = _iso(self.completed_at)
        return data


@dataclass
class PipelineContext:
    """
    State handed from step to step.

    The staging steps fill in the file fields and staging_result; the
    background steps turn staged_rows into records, rejected and
    excluded, and commit_records writes commit_summary.
    """

    # ── Who / what ────────────────────────────
    upload_id: uuid.UUID
    source_type: str
    period_reference: str | None = None
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    chunk_index: int = 0

    # ── Collaborators ─────────────────────────
    session: AsyncSession | None = None
    reference: ReferenceData | None = None
    window: ExclusionWindow | None = None
    policy: ExclusionPolicy = field(default_factory=ExclusionPolicy)
    ruleset_version: str = ""
    force_rules: bool = False

    # ── Staging phase ─────────────────────────
    file_path: str | None = None
    file_name: str | None = None
    detected_format: str | None = None
    raw_rows: list[dict[str, Any]] = field(default_factory=list)
    force_staging: bool = False
    staging_result: dict[str, int] = field(default_factory=dict)

    # ── Background phase ──────────────────────
    staged_rows: list[StagedExamRecord] = field(default_factory=list)
    records: list[ExamRecord] = field(default_factory=list)
    rejected: list[RejectedItem] = field(default_factory=list)
    excluded: list[tuple[ExamRecord, ExclusionRule]] = field(default_factory=list)
    commit_summary: dict[str, int] = field(default_factory=dict)

    # ── Engine bookkeeping ────────────────────
    current_step_index: int = 0
    total_steps: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    # free-form, for steps registered outside this package
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def payloads_by_staged_id(self) -> dict[uuid.UUID, dict[str, Any]]:
        return {row.id: row.raw_payload for row in self.staged_rows}

    def reject(self, record: ExamRecord, rejection) -> None:
        """Divert an in-flight record to the rejected list."""
        self.rejected.append(
            RejectedItem(
                rejection=rejection,
                staged_record_id=record.staged_record_id,
                row_number=record.row_number,
                raw_payload=self.payloads_by_staged_id.get(record.staged_record_id, {}),
            )
        )

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def to_summary_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "upload_id": str(self.upload_id),
            "source_type": self.source_type,
            "period_reference": self.period_reference,
            "chunk_index": self.chunk_index,
            "counts": {
                "staged_rows": len(self.staged_rows),
                "records": len(self.records),
                "rejected": len(self.rejected),
                "excluded": len(self.excluded),
            },
            "staging_result": self.staging_result,
            "commit_summary": self.commit_summary,
            "steps": f"{len(self.step_results)}/{self.total_steps}",
            "errors": self.errors,
        }
