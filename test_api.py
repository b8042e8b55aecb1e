"""
API Tests

Drives a whole review session through the HTTP surface with FastAPI's
TestClient: upload, map, analyze, audit, export and report.
"""

import io

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from api.routes.sessions import get_store
from api.server import create_app
from core.config import EntityConfig
from reporting.narrative import NarrativeReport
from session.state import SessionStore


SOFTLAND_CSV = (
    "Fecha;Tipo;Folio;RUT;Proveedor;Monto Total\n"
    "15/03/2024;33;100;12.345.678-5;Proveedor Uno SpA;$10.000\n"
    "20/03/2024;33;101;12.345.678-5;Proveedor Uno SpA;$20.000\n"
    "02/04/2024;33;102;76.543.210-K;Ferreteria Sur;$5.000\n"
    ";;;;Total;$35.000\n"
).encode("utf-8")

CONTROL_CSV = (
    "Fecha;Tipo;Folio;RUT;Proveedor;Monto Total\n"
    "20/03/2024;33;0101;12345678-5;Proveedor Uno SpA;20000\n"
    "02/04/2024;33;102;11.111.111-1;Otro Proveedor;5000\n"
).encode("utf-8")

MAPPING = {
    "factura": "Folio",
    "rut": "RUT",
    "monto": "Monto Total",
    "nombre": "Proveedor",
    "fecha": "Fecha",
    "tipo": "Tipo",
}


@pytest.fixture
def store():
    return SessionStore([EntityConfig("pullinque", "Colegio Pullinque")])


@pytest.fixture
def client(store):
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    return TestClient(app)


def upload(client, source, name, content):
    return client.post(
        f"/entities/pullinque/files/{source}",
        files={"file": (name, content, "text/csv")},
    )


@pytest.fixture
def analyzed(client):
    upload(client, "softland", "softland.csv", SOFTLAND_CSV)
    upload(client, "control", "control.csv", CONTROL_CSV)
    client.put("/entities/pullinque/mappings/softland", json={"mapping": MAPPING})
    client.put("/entities/pullinque/mappings/control", json={"mapping": MAPPING})
    response = client.post("/entities/pullinque/analysis")
    assert response.status_code == 200
    return client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}


class TestSessionSetup:

    def test_list_entities(self, client):
        assert client.get("/entities").json() == [{"id": "pullinque", "name": "Colegio Pullinque"}]

    def test_unknown_entity(self, client):
        assert client.get("/entities/nope").status_code == 404

    def test_upload(self, client):
        response = upload(client, "softland", "softland.csv", SOFTLAND_CSV)
        assert response.status_code == 200
        body = response.json()
        assert body["row_count"] == 4
        assert body["headers"][2] == "Folio"

    def test_upload_unsupported_type(self, client):
        response = upload(client, "softland", "softland.pdf", b"%PDF")
        assert response.status_code == 400

    def test_invalid_source(self, client):
        assert upload(client, "otro", "x.csv", SOFTLAND_CSV).status_code == 422

    def test_mapping_suggestion(self, client):
        upload(client, "softland", "softland.csv", SOFTLAND_CSV)
        suggestion = client.get("/entities/pullinque/mappings/softland/suggestion").json()
        assert suggestion == MAPPING

    def test_suggestion_without_file(self, client):
        assert client.get("/entities/pullinque/mappings/control/suggestion").status_code == 409

    def test_analysis_blocked_until_ready(self, client):
        upload(client, "softland", "softland.csv", SOFTLAND_CSV)
        response = client.post("/entities/pullinque/analysis")
        assert response.status_code == 409
        assert response.json()["detail"]["control_loaded"] is False

    def test_session_summary(self, client):
        upload(client, "softland", "softland.csv", SOFTLAND_CSV)
        client.put("/entities/pullinque/mappings/softland", json={"mapping": MAPPING})

        body = client.get("/entities/pullinque").json()

        assert body["softland_file"]["name"] == "softland.csv"
        assert body["softland_missing_fields"] == []
        assert body["control_missing_fields"] == ["factura", "rut", "monto", "nombre", "fecha", "tipo"]
        assert body["can_run_analysis"] is False

    def test_clear_file(self, client):
        upload(client, "softland", "softland.csv", SOFTLAND_CSV)
        body = client.delete("/entities/pullinque/files/softland").json()
        assert body["softland_file"] is None


class TestReview:

    def test_analysis_summary(self, analyzed):
        analysis = analyzed.get("/entities/pullinque").json()["analysis"]
        assert analysis == {
            "softland_total": 3,
            "control_total": 2,
            "matched_count": 1,
            "missing_count": 2,
            "missing_amount": 15000,
        }

    def test_missing_list(self, analyzed):
        body = analyzed.get("/entities/pullinque/missing", params={"sort": "monto_val", "desc": True}).json()
        assert body["total"] == 2
        assert [r["factura_val"] for r in body["items"]] == ["100", "102"]
        assert body["items"][0]["_status"] == "pending"

    def test_missing_search(self, analyzed):
        body = analyzed.get("/entities/pullinque/missing", params={"q": "ferreteria"}).json()
        assert [r["factura_val"] for r in body["items"]] == ["102"]

    def test_source_rows_use_deep_link_search(self, analyzed):
        analyzed.post("/entities/pullinque/deep-link", json={"target": "control", "query": "102"})
        body = analyzed.get("/entities/pullinque/records/control").json()
        assert body["search"] == "102"
        assert body["total"] == 1
        assert analyzed.get("/entities/pullinque").json()["active_tab"] == "control"

    def test_comparison(self, analyzed):
        missing = analyzed.get("/entities/pullinque/missing").json()["items"]
        key = next(r["_key"] for r in missing if r["factura_val"] == "102")

        body = analyzed.get("/entities/pullinque/comparison", params={"key": key}).json()

        assert body["candidate_found"] is True
        fields = {f["field"]: f["matches"] for f in body["fields"]}
        assert fields["factura_val"] is True
        assert fields["rut_val"] is False

    def test_comparison_unknown_key(self, analyzed):
        response = analyzed.get("/entities/pullinque/comparison", params={"key": "nope"})
        assert response.status_code == 404

    def test_manual_audit(self, analyzed):
        missing = analyzed.get("/entities/pullinque/missing").json()["items"]
        keys = [r["_key"] for r in missing]

        body = analyzed.put(
            "/entities/pullinque/audit",
            json={"keys": keys[:1], "status": "failed"},
        ).json()

        assert body["failed_count"] == 1
        assert body["pending_count"] == 1
        assert body["real_missing_count"] == 1

        filtered = analyzed.get("/entities/pullinque/missing", params={"status": "failed"}).json()
        assert filtered["total"] == 1

    def test_auto_reconcile_all(self, analyzed):
        body = analyzed.post("/entities/pullinque/audit/auto", json={}).json()
        assert body["verified_count"] == 1
        assert body["failed_count"] == 1
        assert body["real_missing_amount"] == 10000

    def test_monthly(self, analyzed):
        body = analyzed.get("/entities/pullinque/monthly").json()
        assert body == [
            {"month": "2024-03", "count": 1, "total": 10000},
            {"month": "2024-04", "count": 1, "total": 5000},
        ]

    def test_missing_requires_analysis(self, client):
        assert client.get("/entities/pullinque/missing").status_code == 409

    def test_reset(self, analyzed):
        body = analyzed.post("/entities/pullinque/reset").json()
        assert body["analysis"] is None
        assert body["softland_file"] is None


class TestOutputs:

    def test_export(self, analyzed):
        response = analyzed.get("/entities/pullinque/export")

        assert response.status_code == 200
        assert "Discrepancias_Colegio_Pullinque_" in response.headers["content-disposition"]
        sheet = load_workbook(io.BytesIO(response.content)).active
        assert sheet.max_row == 3

    def test_report(self, analyzed, monkeypatch):
        monkeypatch.setattr(
            "api.routes.sessions.generate_report",
            lambda summary: NarrativeReport(text=f"Informe {summary.entity_name}"),
        )

        body = analyzed.post("/entities/pullinque/report").json()

        assert body == {"text": "Informe Colegio Pullinque", "error": None}
        session = analyzed.get("/entities/pullinque").json()
        assert session["report_text"] == "Informe Colegio Pullinque"
        assert session["report_loading"] is False

    def test_report_failure_is_inline(self, analyzed, monkeypatch):
        monkeypatch.setattr(
            "api.routes.sessions.generate_report",
            lambda summary: NarrativeReport(error="Error generando informe: sin conexión"),
        )
        body = analyzed.post("/entities/pullinque/report").json()
        assert body["text"] is None
        assert "sin conexión" in body["error"]

    def test_report_in_flight(self, analyzed, store):
        store.start_report("pullinque")
        assert analyzed.post("/entities/pullinque/report").status_code == 409
