"""
Tests for the HTTP layer — analyze and report routes via TestClient.
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def payload(sample_tests, subjects):
    return {"tests": sample_tests, "subjects": subjects}


class TestMeta:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_config(self, client):
        data = client.get("/api/config").json()
        assert {"class_name", "subjects", "trend_stable_band"} <= set(data)
        assert isinstance(data["subjects"], list)


class TestAnalyzeRoutes:

    def test_stats(self, client, payload):
        data = client.post("/api/analyze/stats", json=payload).json()
        assert data["monthly"][0]["period_key"] == "2024-03"
        assert data["cleaning_report"]["valid_records"] == 6
        assert data["periods"]["years"] == ["2024"]

    def test_stats_without_tests_returns_sentinels(self, client):
        data = client.post("/api/analyze/stats", json={"tests": []}).json()
        assert data["weekly"] is None
        assert data["overall"] is None

    def test_missing_tests_rejected(self, client):
        resp = client.post("/api/analyze/subjects", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No test records provided."

    def test_bad_subjects_rejected(self, client, sample_tests):
        resp = client.post("/api/analyze/subjects", json={"tests": sample_tests, "subjects": "Maths"})
        assert resp.status_code == 400

    def test_cumulative_from_weekly(self, client):
        weekly = [
            {"period_key": "2024-03-w2", "stats": {"per_subject": {"Maths": 60.0}, "overall": 60.0}},
            {"period_key": "2024-03-w1", "stats": {"per_subject": {"Maths": 80.0}, "overall": 80.0}},
        ]
        data = client.post("/api/analyze/cumulative-weekly", json={"weekly": weekly}).json()
        assert [c["stats"]["overall"] for c in data["cumulative_weekly"]] == [80.0, 70.0]

    @pytest.mark.parametrize("weekly", [
        ["2024-03-w1"],
        [{"period_key": "2024-03-w1", "stats": [80]}],
        "2024-03-w1",
    ])
    def test_cumulative_malformed_weekly_rejected(self, client, weekly):
        resp = client.post("/api/analyze/cumulative-weekly", json={"weekly": weekly})
        assert resp.status_code == 400

    def test_cumulative_from_tests(self, client, payload):
        payload["period"] = "2024-03"
        data = client.post("/api/analyze/cumulative-weekly", json=payload).json()
        assert [c["period_key"] for c in data["cumulative_weekly"]] == [
            "2024-03-w1", "2024-03-w2", "2024-03-w3",
        ]

    def test_period_view(self, client, payload):
        data = client.post("/api/analyze/period/2024-02", json=payload).json()
        assert data["test_count"] == 3
        assert data["stats"]["monthly"][0]["stats"]["overall"] == 75.78

    def test_period_not_found(self, client, payload):
        resp = client.post("/api/analyze/period/2019-01", json=payload)
        assert resp.status_code == 404

    def test_progress_rate(self, client):
        data = client.post("/api/analyze/progress-rate", json={"scores": [50, 60, 70, 80]}).json()
        assert data == {"progress_rate": 10.0, "trend": "improving"}

    def test_progress_rate_single_score(self, client):
        data = client.post("/api/analyze/progress-rate", json={"scores": [70]}).json()
        assert data == {"progress_rate": None, "trend": "insufficient_data"}

    def test_consistency(self, client, payload):
        data = client.post("/api/analyze/consistency", json=payload).json()
        assert {c["subject"] for c in data} == {"English", "Maths", "Science"}

    def test_subjects(self, client, payload):
        data = client.post("/api/analyze/subjects", json=payload).json()
        assert [r["subject"] for r in data] == payload["subjects"]

    def test_insights(self, client, payload):
        data = client.post("/api/analyze/insights", json=payload).json()
        assert data["summary"]["total"] == len(data["insights"])


class TestReportRoutes:

    def test_progress_pdf(self, client, payload):
        payload["class_name"] = "7B"
        resp = client.post("/api/reports/progress-pdf", json=payload)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.content[:5] == b"%PDF-"

    def test_progress_pdf_uses_configured_band(self, client, payload, monkeypatch):
        import routes.reports as reports_routes

        seen = {}
        original = reports_routes.generate_progress_report_pdf

        def capture(**kwargs):
            seen["stable_band"] = kwargs.get("stable_band")
            return original(**kwargs)

        monkeypatch.setattr(reports_routes, "TREND_STABLE_BAND", 3.0)
        monkeypatch.setattr(reports_routes, "generate_progress_report_pdf", capture)
        resp = client.post("/api/reports/progress-pdf", json=payload)
        assert resp.status_code == 200
        assert seen["stable_band"] == 3.0

    def test_excel(self, client, payload):
        resp = client.post("/api/reports/excel", json=payload)
        assert resp.status_code == 200
        assert "spreadsheetml" in resp.headers["content-type"]

    def test_reports_require_tests(self, client):
        assert client.post("/api/reports/excel", json={"tests": []}).status_code == 400
