"""
Orchestrator — upload lifecycle across the staging and background phases.

    trigger_ingestion   Phase A, inside the request: create/resume the
                        batch, stage the file, enqueue Phase B.
    run_background      Phase B, inside Celery: claim pending staged rows
                        chunk by chunk, run the background flow, commit
                        each chunk in its own transaction.
    apply_rule          Operator re-run of a rule, tier, exclusion or
                        rule group against the canonical store.
    reset_upload        Administrative reset back to `pending`.
    rollback_upload     Explicit undo of a batch's committed data.

Every state change goes through the transition table; every store-level
mutation is scoped by batch or by an explicit filter.
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from volumetria.core.config import Settings, settings as default_settings
from volumetria.core.constants import ExclusionRule, SourceType, UploadStatus
from volumetria.core.logging import get_logger
from volumetria.db.models import ExamRecord as ExamRecordRow
from volumetria.pipeline.context import PipelineContext
from volumetria.pipeline.engine import PipelineEngine, PipelineResult
from volumetria.pipeline.errors import InvalidPeriodError, MissingScopeError
from volumetria.pipeline.exclusions import ExclusionPolicy, sql_predicate
from volumetria.pipeline.flow_resolver import FlowResolver
from volumetria.pipeline.period import exclusion_window, normalize_period_reference
from volumetria.pipeline.pricing import resolve_price
from volumetria.pipeline.record import ExamRecord, RejectedItem
from volumetria.pipeline.reference import load_reference_data
from volumetria.pipeline.rules import RULESET_VERSION, apply_rules, rules_for
from volumetria.pipeline.splitter import split_record
from volumetria.pipeline.transitions import TERMINAL_STATUSES
from volumetria.repositories import audit as audit_repo
from volumetria.repositories import exams as exams_repo
from volumetria.repositories import rejections as rejections_repo
from volumetria.repositories import staging as staging_repo
from volumetria.repositories import step_logs as step_logs_repo
from volumetria.repositories import uploads as uploads_repo

logger = get_logger(__name__)

BACKGROUND_STARTED = "iniciado"
BACKGROUND_NOT_QUEUED = "pendente"
BACKGROUND_FINISHED = "concluido"

SPLIT_GROUP = "quebra_exames"
PRICING_GROUP = "resolucao_precos"
EXCLUSION_CODES = {rule.value: rule for rule in ExclusionRule}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _error_detail(stage: str, message: str, chunk: int | None = None) -> dict[str, Any]:
    return {"stage": stage, "message": message, "chunk": chunk, "at": _now().isoformat()}


def dispatch_background(upload_id: uuid.UUID | str) -> str:
    """Enqueue Phase B for a batch. Returns the Celery task id."""
    from volumetria.tasks.processing_tasks import process_staged_batch

    task = process_staged_batch.delay(str(upload_id))
    return task.id


# ═══════════════════════════════════════════════════════════
#  Phase A: trigger + staging
# ═══════════════════════════════════════════════════════════

async def trigger_ingestion(
    db: AsyncSession,
    *,
    file_path: str,
    source_type: str,
    period_reference: str | None = None,
    upload_id: uuid.UUID | None = None,
    file_name: str | None = None,
    force_staging: bool = False,
    engine: PipelineEngine | None = None,
) -> dict[str, Any]:
    """
    Stage an uploaded extract and hand the batch to the background phase.

    Commits at each status boundary so the batch state is visible to
    the watchdog and to status queries while staging runs.
    """
    source = SourceType(source_type)
    period = normalize_period_reference(period_reference) if period_reference else None

    batch = await uploads_repo.get_upload_batch(db, upload_id) if upload_id else None
    if batch is not None and batch.status in TERMINAL_STATUSES:
        # A finished batch is reported as is; reset_upload reopens it
        staged = await staging_repo.count_staged(db, batch.id)
        logger.info("Trigger on a finished batch ignored", upload_id=str(batch.id), status=batch.status)
        return {
            "success": True,
            "uploadId": str(batch.id),
            "status": batch.status,
            "stagingResult": {
                "staged": staged,
                "rejected": batch.records_rejected,
                "skipped": 0,
                "reused": True,
            },
            "backgroundStatus": BACKGROUND_FINISHED,
        }
    if batch is None:
        batch = await uploads_repo.create_upload_batch(
            db,
            file_name=file_name or os.path.basename(file_path),
            file_path=file_path,
            source_type=source.value,
            period_reference=period,
            upload_id=upload_id,
        )
    elif period and batch.period_reference != period:
        batch.period_reference = period

    upload_id = batch.id
    log = logger.bind(upload_id=str(upload_id), source_type=source.value)

    await uploads_repo.set_status(
        db,
        batch,
        UploadStatus.PROCESSING,
        current_stage="staging",
        started_at=batch.started_at or _now(),
        ruleset_version=RULESET_VERSION,
    )
    await db.commit()

    # ── Staging (idempotent) ──────────────────
    existing = await staging_repo.count_staged(db, upload_id)
    if existing and not force_staging:
        staging_result = {
            "staged": existing,
            "rejected": batch.records_rejected,
            "skipped": 0,
            "reused": True,
        }
        log.info("Staging skipped, batch already staged", staged=existing)
    else:
        ctx = PipelineContext(
            upload_id=upload_id,
            source_type=source.value,
            period_reference=period,
            session=db,
            file_path=file_path,
            file_name=batch.file_name,
            force_staging=force_staging,
        )
        engine = engine or PipelineEngine(flow_resolver=FlowResolver())
        result = await engine.run(ctx, phase="staging")

        if not result.succeeded:
            await db.rollback()
            await _mark_error(db, upload_id, result.failed_stage or "staging", result.error or "Staging failed")
            await step_logs_repo.persist_step_results(
                db,
                upload_id=upload_id,
                execution_id=result.execution_id,
                chunk_index=0,
                step_results=result.step_results,
            )
            await db.commit()
            log.error("Staging failed", stage=result.failed_stage, error=result.error)
            return {
                "success": False,
                "uploadId": str(upload_id),
                "error": result.error,
                "stage": result.failed_stage,
            }

        await step_logs_repo.persist_step_results(
            db,
            upload_id=upload_id,
            execution_id=result.execution_id,
            chunk_index=0,
            step_results=result.step_results,
        )
        staging_result = dict(ctx.staging_result)

    await db.refresh(batch)
    await uploads_repo.set_status(
        db,
        batch,
        UploadStatus.STAGING_COMPLETED,
        current_stage="staging_completed",
        staging_completed_at=_now(),
    )
    await db.commit()

    # ── Hand off to Phase B ───────────────────
    background_status = BACKGROUND_STARTED
    try:
        task_id = dispatch_background(upload_id)
        log.info("Background phase queued", task_id=task_id, **staging_result)
    except Exception as exc:
        # The watchdog re-dispatches batches left in staging_completed
        background_status = BACKGROUND_NOT_QUEUED
        log.warning("Background dispatch failed", error=str(exc))

    return {
        "success": True,
        "uploadId": str(upload_id),
        "stagingResult": staging_result,
        "backgroundStatus": background_status,
    }


async def _mark_error(
    db: AsyncSession,
    upload_id: uuid.UUID,
    stage: str,
    message: str,
    chunk: int | None = None,
) -> None:
    batch = await uploads_repo.get_upload_batch_or_raise(db, upload_id)
    await db.refresh(batch)
    await uploads_repo.set_status(
        db,
        batch,
        UploadStatus.ERROR,
        current_stage=stage,
        error_detail=_error_detail(stage, message, chunk),
        error_message=message,
    )


# ═══════════════════════════════════════════════════════════
#  Phase B: background processing
# ═══════════════════════════════════════════════════════════

async def run_background(
    upload_id: uuid.UUID,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    config: Settings | None = None,
    engine: PipelineEngine | None = None,
) -> dict[str, Any]:
    """
    Drain a batch's pending staged rows, one transaction per chunk.

    Safe to call more than once for the same batch: only `pending`
    rows are claimed, so committed chunks are never reprocessed.
    """
    config = config or default_settings
    engine = engine or PipelineEngine(flow_resolver=FlowResolver())
    log = logger.bind(upload_id=str(upload_id))

    # ── Prepare ───────────────────────────────
    async with session_factory() as db:
        batch = await uploads_repo.get_upload_batch_or_raise(db, upload_id)
        if batch.status in TERMINAL_STATUSES or batch.status == UploadStatus.PENDING:
            log.info("Background phase skipped", status=batch.status)
            return {"uploadId": str(upload_id), "status": batch.status, "chunks": 0, "skipped": True}

        if batch.status != UploadStatus.PROCESSING:
            await uploads_repo.set_status(
                db,
                batch,
                UploadStatus.PROCESSING,
                current_stage="background",
                error_detail=None,
                error_message=None,
            )

        source_type = batch.source_type
        period_reference = batch.period_reference
        reference = await load_reference_data(db, config)
        await db.commit()

    window = None
    if period_reference:
        try:
            window = exclusion_window(period_reference)
        except InvalidPeriodError as exc:
            log.warning("Unparseable period, exclusions disabled", period=period_reference, error=str(exc))

    policy = ExclusionPolicy.from_settings(config)
    chunk_index = 0
    totals = {"processed": 0, "inserted": 0, "rejected": 0, "excluded": 0}

    # ── Chunks ────────────────────────────────
    while True:
        async with session_factory() as db:
            rows = await staging_repo.claim_pending_chunk(db, upload_id, config.PIPELINE_CHUNK_SIZE)
            if not rows:
                await db.rollback()
                break

            ctx = PipelineContext(
                upload_id=upload_id,
                source_type=source_type,
                period_reference=period_reference,
                chunk_index=chunk_index,
                session=db,
                reference=reference,
                window=window,
                policy=policy,
                ruleset_version=RULESET_VERSION,
                staged_rows=rows,
            )
            result: PipelineResult = await engine.run(ctx, phase="background")

            if not result.succeeded:
                await db.rollback()
                await _mark_error(db, upload_id, result.failed_stage or "background", result.error or "", chunk_index)
                await step_logs_repo.persist_step_results(
                    db,
                    upload_id=upload_id,
                    execution_id=result.execution_id,
                    chunk_index=chunk_index,
                    step_results=result.step_results,
                )
                await db.commit()
                log.error(
                    "Chunk failed, batch moved to error",
                    chunk_index=chunk_index,
                    stage=result.failed_stage,
                    error=result.error,
                )
                return {
                    "uploadId": str(upload_id),
                    "status": UploadStatus.ERROR.value,
                    "chunks": chunk_index,
                    "failedChunk": chunk_index,
                    "error": result.error,
                    **totals,
                }

            await step_logs_repo.persist_step_results(
                db,
                upload_id=upload_id,
                execution_id=result.execution_id,
                chunk_index=chunk_index,
                step_results=result.step_results,
            )
            await db.commit()

        for key in totals:
            totals[key] += ctx.commit_summary.get(key, 0)
        log.info("Chunk committed", chunk_index=chunk_index, **ctx.commit_summary)
        chunk_index += 1

    # ── Finalise ──────────────────────────────
    async with session_factory() as db:
        # Serialises finalisation across concurrent runs of the same batch
        batch = await uploads_repo.lock_upload_batch(db, upload_id)
        pending = await staging_repo.count_pending(db, upload_id)
        if pending == 0 and await uploads_repo.complete_if_processing(
            db, upload_id, current_stage="completed", completed_at=_now()
        ):
            await db.refresh(batch)
        elif pending:
            log.info("Rows still pending, batch left open", pending=pending)
        status = batch.status
        await db.commit()

    log.info("Background phase finished", status=status, chunks=chunk_index, **totals)
    return {"uploadId": str(upload_id), "status": status, "chunks": chunk_index, **totals}


# ═══════════════════════════════════════════════════════════
#  Per-rule invocation on the canonical store
# ═══════════════════════════════════════════════════════════

async def apply_rule(
    db: AsyncSession,
    *,
    regra: str,
    arquivo_fonte: str | None = None,
    lote_upload: uuid.UUID | None = None,
    periodo_referencia: str | None = None,
    forcar_aplicacao: bool = False,
    actor: str = "system",
    config: Settings | None = None,
) -> dict[str, Any]:
    """
    Re-run a rule (code, tier, "all"), an exclusion (v002/v003/v031) or a
    rule group (quebra_exames, resolucao_precos) on committed records.

    Returns {sucesso, registros_atualizados, detalhes}.
    """
    if not (arquivo_fonte or lote_upload or periodo_referencia):
        raise MissingScopeError(
            "At least one of arquivo_fonte, lote_upload or periodo_referencia is required",
            details={"regra": regra},
        )

    key = regra.strip().lower()
    period = normalize_period_reference(periodo_referencia) if periodo_referencia else None
    filters = exams_repo.scope_filters(
        source_file=arquivo_fonte,
        upload_id=lote_upload,
        period_reference=period,
    )
    scope = {
        "arquivo_fonte": arquivo_fonte,
        "lote_upload": str(lote_upload) if lote_upload else None,
        "periodo_referencia": period,
    }
    log = logger.bind(regra=key, **scope)

    if key in EXCLUSION_CODES:
        outcome = await _apply_exclusion(db, EXCLUSION_CODES[key], filters, period, lote_upload)
    elif key == SPLIT_GROUP:
        outcome = await _apply_split(db, filters, config)
    elif key == PRICING_GROUP:
        outcome = await _apply_pricing(db, filters, config)
    else:
        outcome = await _apply_rule_table(db, key, filters, forcar_aplicacao, config)

    await audit_repo.write_audit(
        db,
        table_name="exam_records",
        operation=f"APPLY_RULE_{key.upper()}",
        record_id=str(lote_upload) if lote_upload else None,
        data={**scope, "forcar_aplicacao": forcar_aplicacao, **outcome},
        actor=actor,
    )
    log.info("Rule applied on canonical store", **outcome)
    return {"sucesso": True, **outcome}


async def _apply_exclusion(
    db: AsyncSession,
    rule: ExclusionRule,
    filters: list,
    period: str | None,
    lote_upload: uuid.UUID | None,
) -> dict[str, Any]:
    if period is None and lote_upload is not None:
        batch = await uploads_repo.get_upload_batch_or_raise(db, lote_upload)
        period = batch.period_reference
    if period is None:
        raise InvalidPeriodError(
            f"Exclusion rule {rule.value} needs a period reference",
            details={"regra": rule.value},
        )

    window = exclusion_window(period)
    predicate = sql_predicate(rule, window)
    by_batch = await exams_repo.count_by_upload(db, predicate, filters)
    deleted = await exams_repo.delete_matching(db, predicate, filters)
    for batch_id, count in by_batch.items():
        await uploads_repo.increment_counters(db, batch_id, records_inserted=-count, records_excluded=count)
    return {
        "registros_atualizados": deleted,
        "detalhes": [f"{rule.value}: {deleted} registros excluídos (período {window.period_reference})"],
    }


def _snapshot(record: ExamRecord, version: str | None) -> dict[str, Any]:
    """JSON-safe copy of a canonical row, kept on its RejectedRecord."""
    return {
        key: value if value is None or isinstance(value, (str, int, bool, list)) else str(value)
        for key, value in record.to_row(version or RULESET_VERSION).items()
    }


async def _scoped_records(db: AsyncSession, filters: list) -> list[ExamRecordRow]:
    return await exams_repo.list_scoped(db, filters)


async def _apply_split(db: AsyncSession, filters: list, config: Settings | None) -> dict[str, Any]:
    reference = await load_reference_data(db, config)
    rows = await _scoped_records(db, filters)
    replaced_ids: list[uuid.UUID] = []
    children_rows: list[dict[str, Any]] = []
    added_by_batch: dict[uuid.UUID, int] = {}

    for row in rows:
        record = ExamRecord.from_row(row)
        children = split_record(record, reference)
        if len(children) == 1 and children[0] is record:
            continue
        replaced_ids.append(row.id)
        version = row.ruleset_version or RULESET_VERSION
        children_rows.extend(resolve_price(child, reference).to_row(version) for child in children)
        added_by_batch[row.upload_batch_id] = added_by_batch.get(row.upload_batch_id, 0) + len(children) - 1

    await exams_repo.delete_by_ids(db, replaced_ids)
    created = await exams_repo.bulk_insert_exam_records(db, children_rows)
    for batch_id, added in added_by_batch.items():
        await uploads_repo.increment_counters(db, batch_id, records_inserted=added)
    return {
        "registros_atualizados": len(replaced_ids),
        "detalhes": [f"{len(replaced_ids)} exames quebrados em {created} registros"],
    }


async def _apply_pricing(db: AsyncSession, filters: list, config: Settings | None) -> dict[str, Any]:
    reference = await load_reference_data(db, config)
    updated = 0
    for row in await _scoped_records(db, filters):
        record = ExamRecord.from_row(row)
        priced = resolve_price(record, reference)
        if priced is record:
            continue
        row.unit_value = priced.unit_value
        row.price_status = priced.price_status
        updated += 1
    await db.flush()
    return {
        "registros_atualizados": updated,
        "detalhes": [f"{updated} preços atualizados"],
    }


async def _apply_rule_table(
    db: AsyncSession,
    selector: str,
    filters: list,
    force: bool,
    config: Settings | None,
) -> dict[str, Any]:
    rules = rules_for(selector)
    reference = await load_reference_data(db, config)

    updated_by_batch: dict[uuid.UUID, int] = {}
    rejected: dict[uuid.UUID, list[RejectedItem]] = {}
    rejected_ids: list[uuid.UUID] = []

    for row in await _scoped_records(db, filters):
        record = ExamRecord.from_row(row)
        outcome = apply_rules(record, reference, rules=rules, force=force)

        if outcome.rejected:
            rejected_ids.append(row.id)
            rejected.setdefault(row.upload_batch_id, []).append(RejectedItem(
                rejection=outcome.rejection,
                staged_record_id=row.staged_record_id,
                row_number=None,
                raw_payload=_snapshot(record, row.ruleset_version),
            ))
            continue

        if outcome.record == record:
            continue
        for column, value in outcome.record.to_row(RULESET_VERSION).items():
            setattr(row, column, value)
        if outcome.changed:
            updated_by_batch[row.upload_batch_id] = updated_by_batch.get(row.upload_batch_id, 0) + 1

    await db.flush()
    await exams_repo.delete_by_ids(db, rejected_ids)
    for batch_id, items in rejected.items():
        await rejections_repo.bulk_insert_rejections(db, batch_id, items)
    for batch_id, count in updated_by_batch.items():
        await uploads_repo.increment_counters(db, batch_id, records_updated=count)
    for batch_id, items in rejected.items():
        await uploads_repo.increment_counters(db, batch_id, records_rejected=len(items))

    updated = sum(updated_by_batch.values())
    details = [f"{', '.join(rule.code for rule in rules)}: {updated} registros atualizados"]
    if rejected_ids:
        details.append(f"{len(rejected_ids)} registros rejeitados e removidos")
    return {"registros_atualizados": updated, "detalhes": details}


# ═══════════════════════════════════════════════════════════
#  Administrative reset / rollback
# ═══════════════════════════════════════════════════════════

async def reset_upload(db: AsyncSession, upload_id: uuid.UUID, *, actor: str = "system") -> dict[str, Any]:
    """Clear a batch's staged and partial data and put it back in `pending`."""
    batch = await uploads_repo.get_upload_batch_or_raise(db, upload_id)
    previous = batch.status

    removed = {
        "staged": await staging_repo.delete_staged(db, upload_id),
        "rejected": await rejections_repo.delete_for_upload(db, upload_id),
        "canonical": await exams_repo.delete_for_upload(db, upload_id),
    }
    await uploads_repo.reset_counters(db, batch)
    await uploads_repo.set_status(db, batch, UploadStatus.PENDING)

    await audit_repo.write_audit(
        db,
        table_name="upload_batches",
        operation="RESET_UPLOAD",
        record_id=str(upload_id),
        data={"previous_status": previous, "removed": removed},
        actor=actor,
        severity="warning",
    )
    logger.info("Upload reset", upload_id=str(upload_id), previous_status=previous, **removed)
    return {"sucesso": True, "uploadId": str(upload_id), "removidos": removed}


async def rollback_upload(
    db: AsyncSession,
    upload_id: uuid.UUID,
    *,
    force: bool = False,
    actor: str = "system",
) -> dict[str, Any]:
    """
    Undo a batch's committed data.  Idempotent: a repeat call reports
    "already executed" and touches nothing unless forced.
    """
    batch = await uploads_repo.get_upload_batch_or_raise(db, upload_id)
    if batch.status == UploadStatus.ROLLBACK_EXECUTED and not force:
        return {
            "sucesso": True,
            "uploadId": str(upload_id),
            "jaExecutado": True,
            "mensagem": "Rollback já executado",
            "removidos": {"canonical": 0, "staged": 0},
        }

    previous = batch.status
    removed = {
        "canonical": await exams_repo.delete_for_upload(db, upload_id),
        "staged": await staging_repo.delete_staged(db, upload_id),
    }
    await uploads_repo.set_status(db, batch, UploadStatus.ROLLBACK_EXECUTED, current_stage="rollback")

    await audit_repo.write_audit(
        db,
        table_name="upload_batches",
        operation="ROLLBACK_UPLOAD",
        record_id=str(upload_id),
        data={"previous_status": previous, "removed": removed, "forced": force},
        actor=actor,
        severity="warning",
    )
    logger.warning("Upload rolled back", upload_id=str(upload_id), previous_status=previous, **removed)
    return {
        "sucesso": True,
        "uploadId": str(upload_id),
        "jaExecutado": False,
        "mensagem": "Rollback executado",
        "removidos": removed,
    }
