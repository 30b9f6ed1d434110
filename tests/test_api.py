"""HTTP tests for the risk wizard service."""

from fastapi.testclient import TestClient

from riskwizard.config import Settings
from riskwizard.main import create_app
from tests.conftest import DRIVE_BY_ROW, make_xlsx

DRIVE_BY_SHEET_ROW = {
    "Technique ID": "T0817",
    "Technique Name": "Drive-by Compromise",
    "Tactic": "Initial Access",
    "Mitigations": "Network Segmentation",
}


def _start(client, name="Main Control HMI", asset_type="hmi"):
    sid = client.post("/assessments").json()["id"]
    client.put(f"/assessments/{sid}/asset", json={"name": name, "type": asset_type})
    client.post(f"/assessments/{sid}/next")
    return sid


def _finish(client, scores):
    sid = _start(client)
    for tid in scores:
        client.post(f"/assessments/{sid}/techniques", json={"techniqueId": tid})
    client.post(f"/assessments/{sid}/next")
    for tid, score in scores.items():
        client.put(f"/assessments/{sid}/scores/{tid}", json={"score": score})
    client.post(f"/assessments/{sid}/next")
    return sid


class TestHealthAndCatalog:
    def test_health(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Healthy", "catalog_loaded": True}

    def test_empty_catalog_when_not_seeded(self):
        client = TestClient(create_app(Settings(log_level="WARNING", seed_on_startup=False)))
        assert client.get("/catalog/tactics").json() == []
        assert client.get("/").json()["catalog_loaded"] is False

    def test_import_rows_scenario(self, client):
        resp = client.post("/catalog/import", json=[DRIVE_BY_ROW])
        assert resp.status_code == 200
        assert resp.json() == {"imported": 1, "tactics": ["Initial Access"]}
        techniques = client.get("/catalog/tactics/Initial Access/techniques").json()
        assert [t["id"] for t in techniques] == ["T0817"]
        assert client.get("/catalog/techniques/T0817/mitigations").json() == {
            "techniqueId": "T0817",
            "mitigations": ["Network Segmentation"],
        }

    def test_unknown_tactic_is_empty(self, client):
        assert client.get("/catalog/tactics/Nope/techniques").json() == []

    def test_bad_rows_rejected(self, client):
        before = client.get("/catalog/export").json()
        resp = client.post("/catalog/import", json=[{"techniqueId": "T1"}])
        assert resp.status_code == 422
        assert client.get("/catalog/export").json() == before

    def test_export_round_trip(self, client):
        rows = client.get("/catalog/export").json()
        assert len(rows) == 12
        assert rows[0]["techniqueId"] == "T0817"
        assert client.post("/catalog/import", json=rows).status_code == 200
        assert client.get("/catalog/export").json() == rows

    def test_file_import(self, client):
        content = make_xlsx(
            [{"Technique ID": "T0827", "Technique Name": "Loss of Control", "Tactic": "Impact", "Mitigations": "Network Segmentation"}]
        )
        resp = client.post(
            "/catalog/import/file",
            files={"file": ("attack.xlsx", content, "application/octet-stream")},
        )
        assert resp.status_code == 200
        assert resp.json()["tactics"] == ["Impact"]

    def test_file_import_bad_extension(self, client):
        resp = client.post("/catalog/import/file", files={"file": ("attack.csv", b"a,b", "text/csv")})
        assert resp.status_code == 422
        assert "Invalid file type" in resp.json()["detail"]
        assert len(client.get("/catalog/tactics").json()) == 4

    def test_import_while_busy(self, app, client):
        with app.state.importer.exclusive():
            resp = client.post("/catalog/import", json=[DRIVE_BY_ROW])
        assert resp.status_code == 409

    def test_sample_reload(self, client):
        client.post("/catalog/import", json=[DRIVE_BY_ROW])
        resp = client.post("/catalog/sample")
        assert resp.json()["imported"] == 12

    def test_sample_from_unreadable_path(self, tmp_path):
        settings = Settings(log_level="WARNING", seed_path=str(tmp_path / "missing.json"))
        # startup seeding fails quietly and leaves the catalog empty
        client = TestClient(create_app(settings))
        assert client.get("/").json()["catalog_loaded"] is False
        resp = client.post("/catalog/sample")
        assert resp.status_code == 422
        assert "Could not read seed data" in resp.json()["detail"]

    def test_file_import_over_size_limit(self):
        client = TestClient(create_app(Settings(log_level="WARNING", max_import_bytes=10)))
        content = make_xlsx([DRIVE_BY_SHEET_ROW])
        resp = client.post(
            "/catalog/import/file",
            files={"file": ("attack.xlsx", content, "application/octet-stream")},
        )
        assert resp.status_code == 422
        assert "limit" in resp.json()["detail"]
        assert len(client.get("/catalog/tactics").json()) == 4

    def test_asset_types(self, client):
        values = [t["value"] for t in client.get("/asset-types").json()]
        assert values == ["hmi", "plc", "workstation", "scada", "historian", "rtu"]


class TestRiskEndpoint:
    def test_unweighted(self, client):
        resp = client.post("/risk/calculate", json={"scores": [4, 6, 8]})
        assert resp.json() == {"totalRisk": 6.0, "level": "Medium", "weighted": False}

    def test_weighted(self, client):
        resp = client.post("/risk/calculate", json={"scores": [2, 8], "weights": [1, 3]})
        assert resp.json() == {"totalRisk": 6.5, "level": "Medium", "weighted": True}

    def test_non_finite_scores_rejected(self, client):
        # Python's json module reads 1e999 as inf and accepts a bare NaN
        for body in ('{"scores": [1e999]}', '{"scores": [5, 6], "weights": [NaN, 1]}'):
            resp = client.post("/risk/calculate", content=body, headers={"Content-Type": "application/json"})
            assert resp.status_code == 422
            assert "finite" in resp.json()["detail"]

    def test_mismatched_weights(self, client):
        resp = client.post("/risk/calculate", json={"scores": [2, 8], "weights": [1]})
        assert resp.json()["weighted"] is False
        assert resp.json()["totalRisk"] == 5.0


class TestAssessmentFlow:
    def test_create(self, client):
        body = client.post("/assessments").json()
        assert body["step"] == 1
        assert body["stepName"] == "ASSET_INPUT"
        assert body["canAdvance"] is False
        assert client.get(f"/assessments/{body['id']}").json() == body

    def test_unknown_session(self, client):
        assert client.get("/assessments/asm_missing").status_code == 404
        assert client.post("/assessments/asm_missing/next").status_code == 404
        assert client.delete("/assessments/asm_missing").status_code == 404

    def test_next_blocked_without_name(self, client):
        sid = client.post("/assessments").json()["id"]
        client.put(f"/assessments/{sid}/asset", json={"name": "   ", "type": "plc"})
        resp = client.post(f"/assessments/{sid}/next")
        assert resp.status_code == 200
        assert resp.json()["step"] == 1

    def test_select_and_deselect(self, client):
        sid = _start(client)
        body = client.post(f"/assessments/{sid}/techniques", json={"techniqueId": "T0817"}).json()
        assert body["scores"] == [{"techniqueId": "T0817", "score": 5, "asset": "Main Control HMI"}]
        body = client.delete(f"/assessments/{sid}/techniques/T0817").json()
        assert body["selected"] == []
        assert body["scores"] == []

    def test_select_unknown_technique(self, client):
        sid = _start(client)
        resp = client.post(f"/assessments/{sid}/techniques", json={"techniqueId": "T9999"})
        assert resp.status_code == 404

    def test_wrong_step(self, client):
        sid = client.post("/assessments").json()["id"]
        resp = client.post(f"/assessments/{sid}/techniques", json={"techniqueId": "T0817"})
        assert resp.status_code == 409

    def test_score_clamped(self, client):
        sid = _start(client)
        client.post(f"/assessments/{sid}/techniques", json={"techniqueId": "T0817"})
        client.post(f"/assessments/{sid}/next")
        body = client.put(f"/assessments/{sid}/scores/T0817", json={"score": 42}).json()
        assert body["scores"][0]["score"] == 10

    def test_score_infinity_clamped_and_nan_rejected(self, client):
        sid = _start(client)
        client.post(f"/assessments/{sid}/techniques", json={"techniqueId": "T0817"})
        client.post(f"/assessments/{sid}/next")
        url = f"/assessments/{sid}/scores/T0817"
        headers = {"Content-Type": "application/json"}
        assert client.put(url, content='{"score": 1e999}', headers=headers).json()["scores"][0]["score"] == 10
        assert client.put(url, content='{"score": -1e999}', headers=headers).json()["scores"][0]["score"] == 1
        resp = client.put(url, content='{"score": NaN}', headers=headers)
        assert resp.status_code == 422
        assert client.get(f"/assessments/{sid}").json()["scores"][0]["score"] == 1

    def test_view(self, client):
        sid = _start(client)
        resp = client.get(f"/assessments/{sid}/view", params={"tactic": "Impact"})
        body = resp.json()
        assert body["step"] == 2
        assert body["canGoBack"] is True
        assert [t["id"] for t in body["content"]["available"]] == ["T0826", "T0827", "T0828"]

    def test_previous_and_reset(self, client):
        sid = _start(client)
        assert client.post(f"/assessments/{sid}/previous").json()["step"] == 1
        body = client.post(f"/assessments/{sid}/reset").json()
        assert body["asset"] == {"name": "", "type": None}

    def test_delete(self, client):
        sid = client.post("/assessments").json()["id"]
        assert client.delete(f"/assessments/{sid}").json() == {"deleted": True}
        assert client.get(f"/assessments/{sid}").status_code == 404


class TestReports:
    def test_report_before_final_step(self, client):
        sid = _start(client)
        assert client.get(f"/assessments/{sid}/report").status_code == 409

    def test_report(self, client):
        sid = _finish(client, {"T0817": 4, "T0821": 6, "T0826": 8})
        body = client.get(f"/assessments/{sid}/report").json()
        snap = body["snapshot"]
        assert snap["totalRisk"] == 6.0
        assert snap["asset"]["name"] == "Main Control HMI"
        assert body["totalLevel"] == "Medium"
        assert body["distribution"] == {"high": 1, "medium": 1, "low": 1}
        assert body["rows"][2]["mitigations"] == ["Data Backup", "Network Segmentation", "Redundancy and Load Balancing"]

    def test_export_json(self, client):
        sid = _finish(client, {"T0817": 9})
        resp = client.get(f"/assessments/{sid}/report/export", params={"format": "json"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["totalLevel"] == "Critical"

    def test_export_xlsx(self, client):
        sid = _finish(client, {"T0817": 3})
        resp = client.get(f"/assessments/{sid}/report/export", params={"format": "xlsx"})
        assert resp.status_code == 200
        assert resp.content[:2] == b"PK"
        assert ".xlsx" in resp.headers["content-disposition"]

    def test_export_unknown_format(self, client):
        sid = _finish(client, {"T0817": 3})
        resp = client.get(f"/assessments/{sid}/report/export", params={"format": "pdf"})
        assert resp.status_code == 400
