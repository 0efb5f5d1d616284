"""
CommitRecordsStep — writes the chunk's outcome in the chunk transaction.

    - canonical rows for every surviving record (split children count
      individually)
    - RejectedRecord rows for parse and rule rejections
    - final status of each staged row (committed / rejected / excluded)
    - batch counters incremented by exactly what this chunk wrote

The orchestrator owns the transaction; nothing here commits.
"""

from __future__ import annotations

import uuid

from volumetria.core.constants import StagedRecordStatus
from volumetria.core.logging import get_logger
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.step import PipelineStep
from volumetria.repositories import exams as exams_repo
from volumetria.repositories import rejections as rejections_repo
from volumetria.repositories import staging as staging_repo
from volumetria.repositories import uploads as uploads_repo

logger = get_logger(__name__)


class CommitRecordsStep(PipelineStep):
    name = "commit_records"
    description = "Persist canonical, rejected and excluded outcomes"
    stage = "commit"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()
        db = self._session(ctx)

        inserted = await exams_repo.bulk_insert_exam_records(
            db, [record.to_row(ctx.ruleset_version) for record in ctx.records]
        )
        rejected = await rejections_repo.bulk_insert_rejections(db, ctx.upload_id, ctx.rejected)

        # ── Staged row statuses ───────────────────
        committed_ids = {r.staged_record_id for r in ctx.records if r.staged_record_id}
        excluded_ids: dict[str, set[uuid.UUID]] = {}
        for record, rule in ctx.excluded:
            if record.staged_record_id and record.staged_record_id not in committed_ids:
                excluded_ids.setdefault(rule.value, set()).add(record.staged_record_id)
        rejected_ids = {
            item.staged_record_id
            for item in ctx.rejected
            if item.staged_record_id and item.staged_record_id not in committed_ids
        }

        await staging_repo.mark_staged(db, list(committed_ids), StagedRecordStatus.COMMITTED)
        await staging_repo.mark_staged(db, list(rejected_ids), StagedRecordStatus.REJECTED)
        for rule_code, ids in excluded_ids.items():
            await staging_repo.mark_staged(db, list(ids), StagedRecordStatus.EXCLUDED, exclusion_rule=rule_code)

        accounted = committed_ids | rejected_ids
        for ids in excluded_ids.values():
            accounted |= ids
        orphaned = [row.id for row in ctx.staged_rows if row.id not in accounted]
        if orphaned:
            logger.warning("Staged rows without outcome", upload_id=str(ctx.upload_id), count=len(orphaned))
            await staging_repo.mark_staged(db, orphaned, StagedRecordStatus.ERROR)

        # ── Counters + heartbeat ──────────────────
        await uploads_repo.increment_counters(
            db,
            ctx.upload_id,
            records_processed=len(ctx.staged_rows),
            records_inserted=inserted,
            records_rejected=rejected,
            records_excluded=len(ctx.excluded),
        )

        ctx.commit_summary = {
            "processed": len(ctx.staged_rows),
            "inserted": inserted,
            "rejected": rejected,
            "excluded": len(ctx.excluded),
            "orphaned": len(orphaned),
        }
        return self._success(started_at, metadata=dict(ctx.commit_summary))
