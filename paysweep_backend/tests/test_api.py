from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from paysweep_backend import app as app_module
from paysweep_backend.config import Settings
from paysweep_backend.state import get_runtime

BASE = "/api/v1/admin"


@pytest.fixture(name="client")
def fixture_client(monkeypatch):
    settings = Settings.model_validate(
        {
            "payment_timeout": {"check_interval_minutes": 30, "payment_timeout_minutes": 60},
            "log_cleanup": {"hour": 3, "minute": 30},
        }
    )
    monkeypatch.setattr(app_module, "get_settings", lambda: settings)

    with TestClient(app_module.app) as client:
        yield client


def test_health_reports_running_schedulers(client):
    body = client.get("/").json()

    assert body["payment_timeout_running"] is True
    assert body["log_cleanup_running"] is True


def test_payment_timeout_status(client):
    body = client.get(f"{BASE}/payment-timeout/status").json()

    assert body["is_running"] is True
    assert body["check_interval_minutes"] == 30
    assert body["payment_timeout_minutes"] == 60
    assert body["next_check"] is not None


def test_stop_is_idempotent_and_clears_next_check(client):
    first = client.post(f"{BASE}/payment-timeout/stop")
    second = client.post(f"{BASE}/payment-timeout/stop")

    assert first.status_code == second.status_code == 200
    assert second.json()["is_running"] is False
    assert second.json()["next_check"] is None


def test_update_config_applies_both_values(client):
    response = client.put(
        f"{BASE}/payment-timeout/config",
        json={"check_interval_minutes": 15, "payment_timeout_minutes": 120},
    )

    assert response.status_code == 200
    assert response.json()["check_interval_minutes"] == 15
    assert response.json()["payment_timeout_minutes"] == 120
    assert response.json()["is_running"] is True

    changes = [
        log["metadata"]["config_key"]
        for log in client.get(f"{BASE}/logs", params={"log_type": "audit"}).json()["data"]
        if log["metadata"].get("action_type") == "config_change"
    ]
    assert sorted(changes) == ["check_interval_minutes", "payment_timeout_minutes"]


def test_invalid_interval_keeps_already_applied_timeout(client):
    response = client.put(
        f"{BASE}/payment-timeout/config",
        json={"check_interval_minutes": 2000, "payment_timeout_minutes": 90},
    )

    assert response.status_code == 400
    assert "check_interval_minutes" in response.json()["detail"]

    status = client.get(f"{BASE}/payment-timeout/status").json()
    assert status["payment_timeout_minutes"] == 90
    assert status["check_interval_minutes"] == 30


def test_empty_config_update_is_rejected(client):
    response = client.put(f"{BASE}/payment-timeout/config", json={})

    assert response.status_code == 400


def test_manual_run_dispatches_and_audits(client):
    response = client.post(f"{BASE}/payment-timeout/run")

    assert response.status_code == 200
    assert response.json()["status"] == "triggered"

    audits = client.get(f"{BASE}/logs", params={"log_type": "audit"}).json()["data"]
    operations = [log["metadata"].get("operation") for log in audits]
    assert "manual_payment_timeout_check" in operations

    backend = get_runtime().queue_backend
    assert backend.counts("payment-processing")["waiting"] >= 1


def test_log_cleanup_time_update(client):
    bad = client.put(f"{BASE}/log-cleanup/time", json={"hour": 25})
    assert bad.status_code == 400

    status = client.get(f"{BASE}/log-cleanup/status").json()
    assert status["cleanup_time"] == "03:30"

    good = client.put(f"{BASE}/log-cleanup/time", json={"hour": 4, "minute": 5})
    assert good.status_code == 200
    assert good.json()["cleanup_time"] == "04:05"


def test_manual_log_cleanup(client):
    response = client.post(f"{BASE}/log-cleanup/run")

    assert response.status_code == 200
    assert get_runtime().queue_backend.counts("database-operations")["waiting"] == 1


def test_routes_unavailable_before_startup():
    client = TestClient(app_module.app)

    response = client.get(f"{BASE}/payment-timeout/status")

    assert response.status_code == 503
