"""
Shared fixtures.

Integration tests run against an in-memory SQLite database (aiosqlite,
one shared connection) with every table created from the models.
Celery dispatch is replaced by a recorder so nothing needs a broker.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from volumetria.core.config import Settings
from volumetria.db.models import Base
from volumetria.pipeline.record import ExamRecord
from volumetria.pipeline.reference import AliasEntry, CatalogEntry, ClientInfo, ReferenceData, SplitChild
from volumetria.services import orchestrator


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Celery dispatch
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def dispatched(monkeypatch) -> list[str]:
    """Upload ids handed to the background queue during the test."""
    calls: list[str] = []

    def fake_dispatch(upload_id) -> str:
        calls.append(str(upload_id))
        return f"task-{len(calls)}"

    monkeypatch.setattr(orchestrator, "dispatch_background", fake_dispatch)
    return calls


# ---------------------------------------------------------------------------
# Settings / reference data
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> Settings:
    return Settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite://", PIPELINE_CHUNK_SIZE=500)


@pytest.fixture()
def reference(config) -> ReferenceData:
    """Small in-memory snapshot covering every rule tier."""
    return ReferenceData.from_settings(
        config,
        clients={
            "CEDIDIAG": ClientInfo(name="CEDIDIAG"),
            "HOSPITAL SANTA HELENA": ClientInfo(name="HOSPITAL SANTA HELENA"),
            "CEMVALENCA": ClientInfo(name="CEMVALENCA", client_type="NC"),
            "CEMVALENCA_PL": ClientInfo(name="CEMVALENCA_PL", client_type="NC"),
            "CEMVALENCA_RX": ClientInfo(name="CEMVALENCA_RX", client_type="NC"),
            "CLINICA NOVA": ClientInfo(name="CLINICA NOVA", status="pending"),
            "CLINICA FECHADA": ClientInfo(name="CLINICA FECHADA", status="inactive"),
            "HOSPITAL NC": ClientInfo(
                name="HOSPITAL NC",
                client_type="NC",
                billed_specialties=frozenset({"NEURO"}),
                billed_physicians=frozenset({"DR HOUSE"}),
            ),
        },
        client_aliases=[AliasEntry(alias="CLINICA CEDI", canonical_name="CEDIDIAG", match_type="contains")],
        exam_catalog={
            "RM CRANIO": CatalogEntry(modality="MR", specialty="NEURO", category="SC"),
            "MAMOGRAFIA BILATERAL": CatalogEntry(modality=None, specialty="MAMO", category=None),
        },
        priority_map={"EMERG PS": "URGENTE"},
        physician_aliases={"DR. HOUSE": "DR HOUSE"},
        split_rules={
            "TC ABDOME E PELVE": [
                SplitChild(description="TC ABDOME", category="SC"),
                SplitChild(description="TC PELVE", category="SC"),
            ],
        },
        prices={
            "RM CRANIO": Decimal("120.00"),
            "TC ABDOME": Decimal("85.00"),
            "TC ABDOME E PELVE": Decimal("150.00"),
        },
    )


def make_record(**overrides) -> ExamRecord:
    """A valid, already-normalized record; override what the test needs."""
    values = {
        "client_name": "CEDIDIAG",
        "patient_name": "MARIA DA SILVA",
        "study_description": "RM CRANIO",
        "modality": "MR",
        "specialty": "NEURO",
        "category": "SC",
        "priority": "ROTINA",
        "source_file": "volumetria_padrao",
        "realization_date": date(2025, 5, 20),
        "report_date": date(2025, 6, 10),
    }
    values.update(overrides)
    return ExamRecord(**values)


@pytest.fixture()
def record_factory():
    return make_record
