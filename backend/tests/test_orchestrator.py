"""
tests/test_orchestrator.py

Integration tests for the upload lifecycle against SQLite.

Coverage
--------
- trigger_ingestion stages rows, rejects unusable rows, queues Phase B
- Re-triggering a staged batch reuses the staged rows
- Forced re-staging does not double count, keeps committed rows
- Finished batches are reported, not re-staged
- run_background rules → split → price → commit, batch completed
- A failed chunk leaves committed chunks intact; a re-run resumes
- A row with a non-finite quantity is rejected alone
- Completion is a compare-and-set on `processing`
- Period exclusions during processing and on the canonical store,
  with batch counters following the store
- apply_rule scope checks, idempotent re-runs, store-level splits and
  rejections
- reset_upload and rollback_upload (idempotent)
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from volumetria.core.config import Settings
from volumetria.core.constants import StagedRecordStatus, UploadStatus
from volumetria.db.models import (
    AuditLog,
    ClientRegistry,
    ExamCatalog,
    ExamRecord,
    PipelineStepLog,
    PriceReference,
    RejectedRecord,
    SplitRule,
    StagedExamRecord,
    UploadBatch,
)
from volumetria.pipeline.engine import PipelineEngine
from volumetria.pipeline.errors import MissingScopeError, RuleNotFoundError
from volumetria.pipeline.flow_resolver import FLOW_REGISTRY, FlowResolver
from volumetria.pipeline.step import PipelineStep
from volumetria.repositories import uploads as uploads_repo
from volumetria.services import orchestrator

HEADER = "EMPRESA;NOME_PACIENTE;ESTUDO_DESCRICAO;MODALIDADE;DATA_REALIZACAO;DATA_LAUDO"

STANDARD_ROWS = [
    "CEDIDIAG;MARIA DA SILVA;RM CRANIO;MR;20/05/2025;10/06/2025",
    "CEDIDIAG;JOAO SOUZA;TC ABDOME E PELVE;CT;21/05/2025;11/06/2025",
    "CLINICA DESCONHECIDA;ANA LIMA;RM CRANIO;MR;22/05/2025;12/06/2025",
    "CEDIDIAG;;RM CRANIO;MR;22/05/2025;12/06/2025",
    "CLINICA_LOCAL;PEDRO ALVES;RM CRANIO;MR;22/05/2025;12/06/2025",
]


@pytest.fixture(autouse=True)
async def seeded(session_factory) -> None:
    async with session_factory() as session:
        session.add_all([
            ClientRegistry(name="CEDIDIAG", client_type="CO"),
            ClientRegistry(name="CLINICA FECHADA", client_type="CO", status="inactive"),
            ExamCatalog(study_description="RM CRANIO", modality="MR", specialty="NEURO", category="SC"),
            PriceReference(study_description="RM CRANIO", unit_value=Decimal("120.00")),
            PriceReference(study_description="TC ABDOME", unit_value=Decimal("85.00")),
            PriceReference(study_description="TC ABDOME E PELVE", unit_value=Decimal("150.00")),
            SplitRule(exame_original="TC ABDOME E PELVE", exame_quebrado="TC ABDOME", categoria_quebrada="SC"),
            SplitRule(exame_original="TC ABDOME E PELVE", exame_quebrado="TC PELVE", categoria_quebrada="SC"),
        ])
        await session.commit()


@pytest.fixture()
def extract(tmp_path):
    def _write(rows: list[str], name: str = "volumetria.csv") -> str:
        path = tmp_path / name
        path.write_text("\n".join([HEADER, *rows]) + "\n", encoding="utf-8")
        return str(path)

    return _write


async def fetch_batch(session_factory, upload_id: uuid.UUID) -> UploadBatch:
    async with session_factory() as session:
        return await session.get(UploadBatch, upload_id)


async def count(session_factory, model, *filters) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model).where(*filters)
        return (await session.execute(stmt)).scalar_one()


async def ingest(db, session_factory, config, file_path: str, **kwargs) -> uuid.UUID:
    """Stage + process a file; returns the upload id."""
    kwargs.setdefault("source_type", "volumetria_padrao")
    triggered = await orchestrator.trigger_ingestion(db, file_path=file_path, **kwargs)
    assert triggered["success"] is True
    upload_id = uuid.UUID(triggered["uploadId"])
    await orchestrator.run_background(upload_id, session_factory=session_factory, config=config)
    return upload_id


class FailOnSecondChunk(PipelineStep):
    name = "fail_on_second_chunk"
    description = "Fails after chunk 1 has been written"
    stage = "commit"

    async def execute(self, ctx):
        if ctx.chunk_index == 1:
            raise self._error(ctx, "disk full")
        return self._success(self._now())


# ---------------------------------------------------------------------------
# Phase A
# ---------------------------------------------------------------------------


class TestTriggerIngestion:
    async def test_stages_and_dispatches(self, db, session_factory, extract, dispatched) -> None:
        result = await orchestrator.trigger_ingestion(
            db, file_path=extract(STANDARD_ROWS), source_type="volumetria_padrao", period_reference="jun/25"
        )

        assert result["success"] is True
        assert result["backgroundStatus"] == "iniciado"
        assert result["stagingResult"] == {"staged": 3, "rejected": 2, "skipped": 0}
        assert dispatched == [result["uploadId"]]

        batch = await fetch_batch(session_factory, uuid.UUID(result["uploadId"]))
        assert batch.status == UploadStatus.STAGING_COMPLETED
        assert batch.period_reference == "2025-06"
        assert batch.file_name == "volumetria.csv"
        assert (batch.records_staged, batch.records_rejected) == (3, 2)

    async def test_staging_rejections_are_recorded(self, db, session_factory, extract) -> None:
        result = await orchestrator.trigger_ingestion(
            db, file_path=extract(STANDARD_ROWS), source_type="volumetria_padrao"
        )
        upload_id = uuid.UUID(result["uploadId"])

        async with session_factory() as session:
            rows = (
                await session.execute(
                    select(RejectedRecord).where(RejectedRecord.upload_batch_id == upload_id).order_by(RejectedRecord.row_number)
                )
            ).scalars().all()
        assert [(row.row_number, row.reason) for row in rows] == [
            (4, "MISSING_REQUIRED_FIELD"),
            (5, "LOCAL_CLIENT"),
        ]
        assert rows[1].raw_payload["EMPRESA"] == "CLINICA_LOCAL"

    async def test_restaging_is_reused(self, db, session_factory, extract, dispatched) -> None:
        path = extract(STANDARD_ROWS)
        first = await orchestrator.trigger_ingestion(db, file_path=path, source_type="volumetria_padrao")
        upload_id = uuid.UUID(first["uploadId"])

        second = await orchestrator.trigger_ingestion(
            db, file_path=path, source_type="volumetria_padrao", upload_id=upload_id
        )
        assert second["stagingResult"]["reused"] is True
        assert second["stagingResult"]["staged"] == 3
        assert await count(session_factory, StagedExamRecord, StagedExamRecord.upload_batch_id == upload_id) == 3
        assert len(dispatched) == 2

    async def test_forced_restaging_keeps_counters(self, db, session_factory, extract) -> None:
        path = extract(STANDARD_ROWS)
        first = await orchestrator.trigger_ingestion(db, file_path=path, source_type="volumetria_padrao")
        upload_id = uuid.UUID(first["uploadId"])

        await orchestrator.trigger_ingestion(
            db, file_path=path, source_type="volumetria_padrao", upload_id=upload_id, force_staging=True
        )
        batch = await fetch_batch(session_factory, upload_id)
        assert (batch.records_staged, batch.records_rejected) == (3, 2)
        assert await count(session_factory, StagedExamRecord, StagedExamRecord.upload_batch_id == upload_id) == 3
        assert await count(session_factory, RejectedRecord, RejectedRecord.upload_batch_id == upload_id) == 2

    async def test_forced_restaging_after_partial_commit_keeps_committed_rows(
        self, db, session_factory, extract, dispatched
    ) -> None:
        config = Settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite://", PIPELINE_CHUNK_SIZE=2)
        path = extract([f"CEDIDIAG;PACIENTE {n};RM CRANIO;MR;20/05/2025;10/06/2025" for n in range(4)])
        triggered = await orchestrator.trigger_ingestion(db, file_path=path, source_type="volumetria_padrao")
        upload_id = uuid.UUID(triggered["uploadId"])

        failing = PipelineEngine(
            flow_resolver=FlowResolver({
                **FLOW_REGISTRY,
                "background": lambda: FLOW_REGISTRY["background"]() + [FailOnSecondChunk()],
            })
        )
        first = await orchestrator.run_background(
            upload_id, session_factory=session_factory, config=config, engine=failing
        )
        assert first["status"] == UploadStatus.ERROR
        assert first["inserted"] == 2

        async with session_factory() as session:
            again = await orchestrator.trigger_ingestion(
                session, file_path=path, source_type="volumetria_padrao", upload_id=upload_id, force_staging=True
            )
        assert again["stagingResult"]["staged"] == 2
        await orchestrator.run_background(upload_id, session_factory=session_factory, config=config)

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.COMPLETED
        assert batch.records_staged == 4
        assert batch.records_inserted == 4
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 4
        assert await count(session_factory, StagedExamRecord, StagedExamRecord.upload_batch_id == upload_id) == 4

    async def test_finished_batch_is_reported_not_restaged(
        self, db, session_factory, config, extract, dispatched
    ) -> None:
        path = extract(STANDARD_ROWS)
        upload_id = await ingest(db, session_factory, config, path)

        async with session_factory() as session:
            again = await orchestrator.trigger_ingestion(
                session, file_path=path, source_type="volumetria_padrao", upload_id=upload_id
            )
        assert again["success"] is True
        assert again["status"] == UploadStatus.COMPLETED
        assert again["backgroundStatus"] == "concluido"
        assert again["stagingResult"]["staged"] == 3
        assert len(dispatched) == 1
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 3

    async def test_missing_file_marks_error(self, db, session_factory, tmp_path, dispatched) -> None:
        result = await orchestrator.trigger_ingestion(
            db, file_path=str(tmp_path / "missing.csv"), source_type="volumetria_padrao"
        )
        assert result["success"] is False
        assert result["stage"] == "staging"
        assert dispatched == []

        batch = await fetch_batch(session_factory, uuid.UUID(result["uploadId"]))
        assert batch.status == UploadStatus.ERROR
        assert batch.error_detail["stage"] == "staging"

    async def test_dispatch_failure_leaves_batch_for_watchdog(self, db, session_factory, extract, monkeypatch) -> None:
        def broken_dispatch(upload_id):
            raise ConnectionError("broker down")

        monkeypatch.setattr(orchestrator, "dispatch_background", broken_dispatch)
        result = await orchestrator.trigger_ingestion(
            db, file_path=extract(STANDARD_ROWS), source_type="volumetria_padrao"
        )
        assert result["success"] is True
        assert result["backgroundStatus"] == "pendente"
        batch = await fetch_batch(session_factory, uuid.UUID(result["uploadId"]))
        assert batch.status == UploadStatus.STAGING_COMPLETED

    async def test_unknown_source_type(self, db, extract) -> None:
        with pytest.raises(ValueError):
            await orchestrator.trigger_ingestion(db, file_path=extract(STANDARD_ROWS), source_type="planilha")


# ---------------------------------------------------------------------------
# Phase B
# ---------------------------------------------------------------------------


class TestRunBackground:
    async def test_full_flow(self, db, session_factory, config, extract) -> None:
        triggered = await orchestrator.trigger_ingestion(
            db, file_path=extract(STANDARD_ROWS), source_type="volumetria_padrao"
        )
        upload_id = uuid.UUID(triggered["uploadId"])

        summary = await orchestrator.run_background(upload_id, session_factory=session_factory, config=config)
        assert summary["status"] == UploadStatus.COMPLETED
        assert (summary["processed"], summary["inserted"], summary["rejected"]) == (3, 3, 1)

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.COMPLETED
        assert batch.completed_at is not None
        assert batch.records_inserted == 3
        assert batch.records_rejected == 3

        async with session_factory() as session:
            records = (
                await session.execute(
                    select(ExamRecord).where(ExamRecord.upload_batch_id == upload_id).order_by(ExamRecord.study_description)
                )
            ).scalars().all()
        assert [(r.study_description, r.unit_value, r.price_status) for r in records] == [
            ("RM CRANIO", Decimal("120.00"), "resolved"),
            ("TC ABDOME", Decimal("85.00"), "resolved"),
            ("TC PELVE", Decimal("150.00"), "resolved_via_split"),
        ]
        assert {r.billing_type for r in records} == {"CO-FT"}
        assert records[1].split_from == "TC ABDOME E PELVE"
        assert records[1].specialty == "TC"
        assert records[0].priority == "ROTINA"

        statuses = {
            row.processing_status
            for row in (
                await db.execute(select(StagedExamRecord).where(StagedExamRecord.upload_batch_id == upload_id))
            ).scalars()
        }
        assert statuses == {StagedRecordStatus.COMMITTED, StagedRecordStatus.REJECTED}
        assert await count(session_factory, PipelineStepLog, PipelineStepLog.upload_batch_id == upload_id) > 0

    async def test_second_run_is_a_noop(self, db, session_factory, config, extract) -> None:
        upload_id = await ingest(db, session_factory, config, extract(STANDARD_ROWS))
        again = await orchestrator.run_background(upload_id, session_factory=session_factory, config=config)
        assert again["skipped"] is True
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 3

    async def test_resumes_after_failed_chunk(self, db, session_factory, extract) -> None:
        config = Settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite://", PIPELINE_CHUNK_SIZE=2)
        rows = [f"CEDIDIAG;PACIENTE {n};RM CRANIO;MR;20/05/2025;10/06/2025" for n in range(5)]
        triggered = await orchestrator.trigger_ingestion(db, file_path=extract(rows), source_type="volumetria_padrao")
        upload_id = uuid.UUID(triggered["uploadId"])

        failing = PipelineEngine(
            flow_resolver=FlowResolver({
                **FLOW_REGISTRY,
                "background": lambda: FLOW_REGISTRY["background"]() + [FailOnSecondChunk()],
            })
        )
        first = await orchestrator.run_background(
            upload_id, session_factory=session_factory, config=config, engine=failing
        )
        assert first["status"] == UploadStatus.ERROR
        assert first["failedChunk"] == 1
        assert first["inserted"] == 2

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.ERROR
        assert batch.error_detail["stage"] == "commit"
        assert batch.error_detail["chunk"] == 1
        assert batch.records_inserted == 2
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 2

        second = await orchestrator.run_background(upload_id, session_factory=session_factory, config=config)
        assert second["status"] == UploadStatus.COMPLETED
        assert second["inserted"] == 3

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.records_inserted == 5
        assert batch.records_processed == 5
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 5

    async def test_infinite_quantity_rejects_only_its_row(self, db, session_factory, config, tmp_path) -> None:
        path = tmp_path / "valores.csv"
        path.write_text(
            "\n".join([
                HEADER + ";VALORES",
                "CEDIDIAG;MARIA DA SILVA;RM CRANIO;MR;20/05/2025;10/06/2025;1",
                "CEDIDIAG;JOAO SOUZA;RM CRANIO;MR;21/05/2025;11/06/2025;inf",
            ]) + "\n",
            encoding="utf-8",
        )
        upload_id = await ingest(db, session_factory, config, str(path))

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.COMPLETED
        assert batch.records_inserted == 1
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 1
        assert await count(
            session_factory,
            RejectedRecord,
            RejectedRecord.upload_batch_id == upload_id,
            RejectedRecord.reason == "MALFORMED_ROW",
        ) == 1


# ---------------------------------------------------------------------------
# Finalisation
# ---------------------------------------------------------------------------


class TestCompletion:
    async def test_only_a_processing_batch_is_completed(self, db) -> None:
        batch = await uploads_repo.create_upload_batch(db, file_name="a.csv", source_type="volumetria_padrao")
        await uploads_repo.set_status(db, batch, UploadStatus.PROCESSING)

        assert await uploads_repo.complete_if_processing(db, batch.id) is True
        assert await uploads_repo.complete_if_processing(db, batch.id) is False
        await db.refresh(batch)
        assert batch.status == UploadStatus.COMPLETED

    async def test_batch_moved_by_another_run_is_left_alone(self, db) -> None:
        batch = await uploads_repo.create_upload_batch(db, file_name="a.csv", source_type="volumetria_padrao")
        await uploads_repo.set_status(db, batch, UploadStatus.PROCESSING)
        await uploads_repo.set_status(db, batch, UploadStatus.ERROR)

        assert await uploads_repo.complete_if_processing(db, batch.id) is False
        locked = await uploads_repo.lock_upload_batch(db, batch.id)
        assert locked.status == UploadStatus.ERROR


# ---------------------------------------------------------------------------
# Exclusions
# ---------------------------------------------------------------------------


class TestExclusions:
    ROWS = [
        "CEDIDIAG;PACIENTE A;RM CRANIO;MR;03/06/2025;20/06/2025",
        "CEDIDIAG;PACIENTE B;RM CRANIO;MR;03/05/2025;20/05/2025",
        "CEDIDIAG;PACIENTE C;RM CRANIO;MR;03/05/2025;20/06/2025",
    ]

    @pytest.fixture()
    def no_report_rule(self) -> Settings:
        return Settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite://", EXCLUSION_REPORT_RULE_ENABLED=False)

    async def test_realization_rule_during_processing(self, db, session_factory, no_report_rule, extract) -> None:
        upload_id = await ingest(
            db,
            session_factory,
            no_report_rule,
            extract(self.ROWS),
            source_type="volumetria_padrao_retroativo",
            period_reference="2025-06",
        )
        batch = await fetch_batch(session_factory, upload_id)
        assert (batch.records_inserted, batch.records_excluded) == (2, 1)
        assert await count(
            session_factory,
            StagedExamRecord,
            StagedExamRecord.processing_status == StagedRecordStatus.EXCLUDED,
            StagedExamRecord.exclusion_rule == "v003",
        ) == 1

    async def test_store_level_rerun(self, db, session_factory, no_report_rule, extract) -> None:
        upload_id = await ingest(
            db,
            session_factory,
            no_report_rule,
            extract(self.ROWS),
            source_type="volumetria_padrao_retroativo",
            period_reference="2025-06",
        )

        async with session_factory() as session:
            first = await orchestrator.apply_rule(session, regra="v002", lote_upload=upload_id, actor="tester")
            await session.commit()
        async with session_factory() as session:
            second = await orchestrator.apply_rule(session, regra="v002", lote_upload=upload_id)
            await session.commit()

        assert first["registros_atualizados"] == 1
        assert second["registros_atualizados"] == 0
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 1
        assert await count(session_factory, AuditLog, AuditLog.operation == "APPLY_RULE_V002") == 2

    async def test_store_level_exclusion_moves_counters(self, db, session_factory, no_report_rule, extract) -> None:
        upload_id = await ingest(
            db,
            session_factory,
            no_report_rule,
            extract(self.ROWS),
            source_type="volumetria_padrao_retroativo",
            period_reference="2025-06",
        )
        async with session_factory() as session:
            await orchestrator.apply_rule(session, regra="v002", lote_upload=upload_id)
            await session.commit()

        batch = await fetch_batch(session_factory, upload_id)
        assert (batch.records_inserted, batch.records_excluded) == (1, 2)
        assert batch.records_inserted == await count(
            session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id
        )


# ---------------------------------------------------------------------------
# apply_rule
# ---------------------------------------------------------------------------


class TestApplyRule:
    async def test_scope_is_required(self, db) -> None:
        with pytest.raises(MissingScopeError):
            await orchestrator.apply_rule(db, regra="v007")

    async def test_unknown_rule(self, db) -> None:
        with pytest.raises(RuleNotFoundError):
            await orchestrator.apply_rule(db, regra="v999", arquivo_fonte="volumetria_padrao")

    async def test_rerun_without_force_changes_nothing(self, db, session_factory, config, extract) -> None:
        upload_id = await ingest(db, session_factory, config, extract(STANDARD_ROWS))
        async with session_factory() as session:
            result = await orchestrator.apply_rule(session, regra="all", lote_upload=upload_id)
            await session.commit()
        assert result["sucesso"] is True
        assert result["registros_atualizados"] == 0

    async def test_store_level_split_counts_children(self, db, session_factory, config, extract) -> None:
        rows = [
            "CEDIDIAG;MARIA DA SILVA;RM CRANIO;MR;20/05/2025;10/06/2025",
            "CEDIDIAG;JOAO SOUZA;RM CRANIO;MR;21/05/2025;11/06/2025",
        ]
        upload_id = await ingest(db, session_factory, config, extract(rows))
        async with session_factory() as session:
            session.add_all([
                SplitRule(exame_original="RM CRANIO", exame_quebrado="RM CRANIO A", categoria_quebrada="SC"),
                SplitRule(exame_original="RM CRANIO", exame_quebrado="RM CRANIO B", categoria_quebrada="SC"),
            ])
            await session.commit()

        async with session_factory() as session:
            result = await orchestrator.apply_rule(session, regra="quebra_exames", lote_upload=upload_id)
            await session.commit()

        assert result["registros_atualizados"] == 2
        batch = await fetch_batch(session_factory, upload_id)
        assert batch.records_inserted == 4
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 4

    async def test_forced_validation_rejects_from_store(self, db, session_factory, config, extract) -> None:
        upload_id = await ingest(db, session_factory, config, extract(STANDARD_ROWS))
        async with session_factory() as session:
            await session.execute(
                update(ClientRegistry).where(ClientRegistry.name == "CEDIDIAG").values(status="inactive")
            )
            result = await orchestrator.apply_rule(
                session, regra="v014", lote_upload=upload_id, forcar_aplicacao=True
            )
            await session.commit()

        assert result["detalhes"][-1] == "3 registros rejeitados e removidos"
        assert await count(session_factory, ExamRecord, ExamRecord.upload_batch_id == upload_id) == 0
        assert await count(
            session_factory,
            RejectedRecord,
            RejectedRecord.upload_batch_id == upload_id,
            RejectedRecord.reason == "CLIENT_INACTIVE",
        ) == 3
        batch = await fetch_batch(session_factory, upload_id)
        assert batch.records_rejected == 6


# ---------------------------------------------------------------------------
# Reset / rollback
# ---------------------------------------------------------------------------


class TestResetAndRollback:
    async def test_reset_clears_everything(self, db, session_factory, config, extract) -> None:
        upload_id = await ingest(db, session_factory, config, extract(STANDARD_ROWS))
        async with session_factory() as session:
            result = await orchestrator.reset_upload(session, upload_id, actor="tester")
            await session.commit()

        assert result["removidos"] == {"staged": 3, "rejected": 3, "canonical": 3}
        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.PENDING
        assert batch.records_inserted == 0
        assert batch.completed_at is None

    async def test_reset_batch_can_be_ingested_again(self, db, session_factory, config, extract) -> None:
        path = extract(STANDARD_ROWS)
        upload_id = await ingest(db, session_factory, config, path)
        async with session_factory() as session:
            await orchestrator.reset_upload(session, upload_id)
            await session.commit()

        async with session_factory() as session:
            await ingest(session, session_factory, config, path, upload_id=upload_id)

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.COMPLETED
        assert batch.records_inserted == 3

    async def test_rollback_is_idempotent(self, db, session_factory, config, extract) -> None:
        upload_id = await ingest(db, session_factory, config, extract(STANDARD_ROWS))

        async with session_factory() as session:
            first = await orchestrator.rollback_upload(session, upload_id, actor="tester")
            await session.commit()
        async with session_factory() as session:
            second = await orchestrator.rollback_upload(session, upload_id)
            await session.commit()

        assert first["jaExecutado"] is False
        assert first["removidos"] == {"canonical": 3, "staged": 3}
        assert second["jaExecutado"] is True
        assert second["removidos"] == {"canonical": 0, "staged": 0}

        batch = await fetch_batch(session_factory, upload_id)
        assert batch.status == UploadStatus.ROLLBACK_EXECUTED
        assert await count(session_factory, AuditLog, AuditLog.operation == "ROLLBACK_UPLOAD") == 1
