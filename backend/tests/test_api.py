"""
tests/test_api.py

HTTP surface tests (FastAPI app over httpx.ASGITransport, SQLite session
injected through dependency_overrides).

Coverage
--------
- /health
- POST /ingestion/trigger: staged result, validation errors, finished
  batches reported instead of re-run
- GET /uploads, GET /uploads/{id} with step logs, unknown id → 404
- POST /uploads/{id}/rollback idempotent, X-Actor recorded in audit
- GET /rules and POST /rules/apply scope / unknown rule errors
- GET /reports/unpriced, POST /maintenance/watchdog
"""

from __future__ import annotations

import uuid

import httpx
import pytest
from sqlalchemy import select

from volumetria.api import deps
from volumetria.db.models import AuditLog
from volumetria.main import app

CSV = (
    "EMPRESA;NOME_PACIENTE;ESTUDO_DESCRICAO;MODALIDADE;DATA_REALIZACAO;DATA_LAUDO\n"
    "CEDIDIAG;MARIA DA SILVA;RM CRANIO;MR;20/05/2025;10/06/2025\n"
    "CEDIDIAG;JOAO SOUZA;TC TORAX;CT;21/05/2025;11/06/2025\n"
)


@pytest.fixture()
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[deps.get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def csv_path(tmp_path) -> str:
    path = tmp_path / "volumetria.csv"
    path.write_text(CSV, encoding="utf-8")
    return str(path)


async def trigger(client, csv_path: str) -> dict:
    response = await client.post(
        "/api/v1/ingestion/trigger",
        json={"filePath": csv_path, "sourceType": "volumetria_padrao", "periodReference": "2025-06"},
    )
    assert response.status_code == 200
    return response.json()


# ---------------------------------------------------------------------------
# Health / ingestion
# ---------------------------------------------------------------------------


class TestIngestionEndpoints:
    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_trigger(self, client, csv_path, dispatched) -> None:
        body = await trigger(client, csv_path)
        assert body["success"] is True
        assert body["stagingResult"] == {"staged": 2, "rejected": 0, "skipped": 0}
        assert body["backgroundStatus"] == "iniciado"
        assert "error" not in body
        assert dispatched == [body["uploadId"]]

    async def test_trigger_missing_file_is_reported_in_body(self, client, tmp_path) -> None:
        response = await client.post(
            "/api/v1/ingestion/trigger",
            json={"filePath": str(tmp_path / "nope.csv"), "sourceType": "volumetria_padrao"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["stage"] == "staging"

    async def test_trigger_rejects_unknown_source_type(self, client, csv_path) -> None:
        response = await client.post(
            "/api/v1/ingestion/trigger",
            json={"filePath": csv_path, "sourceType": "planilha"},
        )
        assert response.status_code == 422

    async def test_trigger_rejects_bad_period(self, client, csv_path) -> None:
        response = await client.post(
            "/api/v1/ingestion/trigger",
            json={"filePath": csv_path, "sourceType": "volumetria_padrao", "periodReference": "junho"},
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "InvalidPeriodError"

    async def test_retrigger_of_finished_batch_reports_its_status(self, client, csv_path, dispatched) -> None:
        upload_id = (await trigger(client, csv_path))["uploadId"]
        assert (await client.post(f"/api/v1/uploads/{upload_id}/rollback")).status_code == 200

        response = await client.post(
            "/api/v1/ingestion/trigger",
            json={"filePath": csv_path, "sourceType": "volumetria_padrao", "uploadId": upload_id},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "rollback_executed"
        assert body["backgroundStatus"] == "concluido"
        assert dispatched == [upload_id]


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


class TestUploadEndpoints:
    async def test_list_and_detail(self, client, csv_path) -> None:
        upload_id = (await trigger(client, csv_path))["uploadId"]

        listing = (await client.get("/api/v1/uploads", params={"status": "staging_completed"})).json()
        assert listing["total"] == 1
        assert listing["data"][0]["id"] == upload_id

        detail = (await client.get(f"/api/v1/uploads/{upload_id}")).json()
        assert detail["records_staged"] == 2
        assert detail["period_reference"] == "2025-06"
        steps = sorted(detail["step_logs"], key=lambda log: log["step_index"])
        assert [log["step_name"] for log in steps] == ["read_source_file", "stage_records"]

    async def test_unknown_upload(self, client) -> None:
        response = await client.get(f"/api/v1/uploads/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error_type"] == "UploadNotFoundError"

    async def test_rollback_twice(self, client, csv_path, session_factory) -> None:
        upload_id = (await trigger(client, csv_path))["uploadId"]

        first = await client.post(f"/api/v1/uploads/{upload_id}/rollback", headers={"X-Actor": "operador"})
        second = await client.post(f"/api/v1/uploads/{upload_id}/rollback")

        assert first.status_code == 200
        assert first.json()["jaExecutado"] is False
        assert first.json()["removidos"]["staged"] == 2
        assert second.json()["jaExecutado"] is True

        async with session_factory() as session:
            audit = (
                await session.execute(select(AuditLog).where(AuditLog.operation == "ROLLBACK_UPLOAD"))
            ).scalar_one()
        assert audit.actor == "operador"

    async def test_forced_rollback(self, client, csv_path) -> None:
        upload_id = (await trigger(client, csv_path))["uploadId"]
        await client.post(f"/api/v1/uploads/{upload_id}/rollback")

        response = await client.post(f"/api/v1/uploads/{upload_id}/rollback", json={"force": True})
        assert response.json()["jaExecutado"] is False

    async def test_reset(self, client, csv_path) -> None:
        upload_id = (await trigger(client, csv_path))["uploadId"]
        response = await client.post(f"/api/v1/uploads/{upload_id}/reset")
        assert response.status_code == 200
        assert response.json()["removidos"]["staged"] == 2

        detail = (await client.get(f"/api/v1/uploads/{upload_id}")).json()
        assert detail["status"] == "pending"


# ---------------------------------------------------------------------------
# Rules / reports / maintenance
# ---------------------------------------------------------------------------


class TestRuleEndpoints:
    async def test_list_rules(self, client) -> None:
        body = (await client.get("/api/v1/rules")).json()
        codes = [rule["code"] for rule in body["data"]]
        assert body["version"]
        assert "v014" in codes
        assert body["data"][0]["tier"] == "identity"
        assert body["data"][-1]["tier"] == "validation"

    async def test_apply_requires_scope(self, client) -> None:
        response = await client.post("/api/v1/rules/apply", json={"regra": "v007"})
        assert response.status_code == 422
        body = response.json()
        assert body["sucesso"] is False
        assert body["error_type"] == "MissingScopeError"

    async def test_apply_unknown_rule(self, client) -> None:
        response = await client.post(
            "/api/v1/rules/apply",
            json={"regra": "v999", "arquivo_fonte": "volumetria_padrao"},
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "RuleNotFoundError"

    async def test_apply_on_empty_scope(self, client) -> None:
        response = await client.post(
            "/api/v1/rules/apply",
            json={"regra": "specialty", "arquivo_fonte": "volumetria_padrao"},
        )
        assert response.status_code == 200
        assert response.json()["registros_atualizados"] == 0


class TestReportAndMaintenanceEndpoints:
    async def test_unpriced_report_empty(self, client) -> None:
        body = (await client.get("/api/v1/reports/unpriced", params={"period_reference": "jun/25"})).json()
        assert body == {"data": [], "total": 0}

    async def test_watchdog_endpoint(self, client) -> None:
        body = (await client.post("/api/v1/maintenance/watchdog")).json()
        assert body == {"sucesso": True, "completed": [], "cancelled": [], "redispatched": []}

    async def test_cleanup_endpoint(self, client) -> None:
        body = (await client.post("/api/v1/maintenance/cleanup-rejected", params={"retention_days": 30})).json()
        assert body == {"sucesso": True, "deleted": 0}
