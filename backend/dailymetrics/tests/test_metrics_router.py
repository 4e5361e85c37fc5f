"""HTTP tests for /metrics endpoints

WHAT: Request/response shapes, status codes and error envelopes
REFERENCES:
    - dailymetrics/routers/metrics.py
    - dailymetrics/main.py (MetricsError handler)
"""

from datetime import date, datetime, timezone

from dailymetrics.errors import SnapshotStorageError
from dailymetrics.metrics.registry import BUILTIN_METRICS
from dailymetrics.services import snapshot_store
from dailymetrics.tests.helpers import at

N_METRICS = len(BUILTIN_METRICS)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_collect_for_date(client, make_source):
    make_source("posts", at(date(2025, 1, 10)), count=3)

    response = client.post("/metrics/collect", json={"target_date": "2025-01-10"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["metrics_collected"] == N_METRICS
    assert body["data"]["status"] == "completed"
    assert body["data"]["collection_date"] == "2025-01-10"
    assert isinstance(body["data"]["execution_time_ms"], int)
    assert "2025-01-10" in body["message"]


def test_collect_without_body_uses_today(client):
    response = client.post("/metrics/collect")

    assert response.status_code == 200
    assert response.json()["data"]["collection_date"] == datetime.now(timezone.utc).date().isoformat()


def test_collect_invalid_date(client):
    response = client.post("/metrics/collect", json={"target_date": "2025-02-30"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid target_date"
    assert body["details"]


def test_collect_wrongly_typed_body_uses_error_envelope(client):
    response = client.post("/metrics/collect", json={"target_date": 20250110})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid request"
    assert "body.target_date" in body["details"]
    assert "detail" not in body


def test_collect_old_date_twice_needs_force(client):
    assert client.post("/metrics/collect", json={"target_date": "2024-06-01"}).status_code == 200

    refused = client.post("/metrics/collect", json={"target_date": "2024-06-01"})
    assert refused.status_code == 409
    assert refused.json()["success"] is False

    forced = client.post("/metrics/collect", json={"target_date": "2024-06-01", "force": True})
    assert forced.status_code == 200


def test_collect_storage_failure_is_503(client, monkeypatch):
    def broken_upsert(*args, **kwargs):
        raise SnapshotStorageError("Failed to write snapshot", "connection refused")

    monkeypatch.setattr(snapshot_store, "upsert_snapshot", broken_upsert)

    response = client.post("/metrics/collect", json={"target_date": "2025-01-10"})

    assert response.status_code == 503
    assert response.json() == {
        "success": False,
        "error": "Failed to write snapshot",
        "details": "connection refused",
    }


def test_backfill(client):
    response = client.post(
        "/metrics/backfill",
        json={"start_date": "2025-01-01", "end_date": "2025-01-03"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [d["collection_date"] for d in body["data"]] == ["2025-01-01", "2025-01-02", "2025-01-03"]
    assert body["summary"]["dates_processed"] == 3
    assert body["summary"]["total_metrics"] == 3 * N_METRICS
    assert body["summary"]["status"] == "completed"
    assert body["summary"]["failed_dates"] == []


def test_backfill_rejects_reversed_range(client):
    response = client.post(
        "/metrics/backfill",
        json={"start_date": "2025-01-03", "end_date": "2025-01-01"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid date range"


def test_backfill_requires_start_date(client):
    response = client.post("/metrics/backfill", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "start_date is required"


def test_get_metrics_range_with_filters(client):
    client.post("/metrics/backfill", json={"start_date": "2025-01-01", "end_date": "2025-01-02"})

    response = client.get(
        "/metrics",
        params={
            "start_date": "2025-01-01",
            "end_date": "2025-01-02",
            "categories": "users_total,posts_total",
        },
    )

    assert response.status_code == 200
    rows = response.json()["data"]
    assert len(rows) == 4
    assert [r["metric_date"] for r in rows] == ["2025-01-01", "2025-01-01", "2025-01-02", "2025-01-02"]
    assert {r["metric_category"] for r in rows} == {"users_total", "posts_total"}


def test_get_metrics_bad_range(client):
    response = client.get("/metrics", params={"start_date": "2025-01-02", "end_date": "2025-01-01"})

    assert response.status_code == 400


def test_get_metrics_missing_range_uses_error_envelope(client):
    response = client.get("/metrics")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid request"
    assert "query.start_date" in body["details"]
    assert "query.end_date" in body["details"]


def test_activity_non_integer_days_uses_error_envelope(client):
    response = client.get("/metrics/activity", params={"days": "week"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_current_metrics_empty_store(client):
    response = client.get("/metrics/current")

    assert response.status_code == 200
    values = response.json()["data"]["values"]
    assert set(values) == {spec.metric_category for spec in BUILTIN_METRICS}
    assert all(v == 0 for v in values.values())


def test_activity(client):
    response = client.get("/metrics/activity", params={"days": 30})

    assert response.status_code == 200
    points = response.json()["data"]
    assert len(points) == 30
    assert points[-1]["date"] == datetime.now(timezone.utc).date().isoformat()


def test_activity_rejects_zero_days(client):
    assert client.get("/metrics/activity", params={"days": 0}).status_code == 400


def test_collection_status_and_runs(client):
    client.post("/metrics/collect", json={"target_date": "2025-01-10"})

    status = client.get("/metrics/collection-status").json()["data"]
    assert status["collection_date"] == "2025-01-10"
    assert status["status"] == "completed"
    assert status["metrics_collected"] == N_METRICS
    assert status["duration_ms"] >= 0

    runs = client.get("/metrics/collection-runs", params={"limit": 5}).json()["data"]
    assert len(runs) == 1


def test_collection_status_before_any_run(client):
    response = client.get("/metrics/collection-status")

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": None}


def test_definitions(client):
    data = client.get("/metrics/definitions").json()["data"]

    assert len(data) == N_METRICS
    assert data[0]["display_name"] == "Total Users"
