"""Tests for the monitoring API.

The application is built around a real runtime (in-memory DuckDB, device
gateway and broadcast hub) with a manual scheduler so no periodic work runs
on its own.
"""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import ManualScheduler
from vitalwatch.dashboard.api.main import create_app
from vitalwatch.dashboard.services.runtime import build_runtime
from vitalwatch.infrastructure.config_manager import MonitoringConfig


def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll until background session tasks have caught up."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def runtime():
    return build_runtime(config=MonitoringConfig(), scheduler=ManualScheduler())


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as test_client:
        yield test_client


@pytest.fixture
def patient(client):
    response = client.post("/api/patients", json={"patient_id": "P1", "name": "Ada Lovelace", "ward": "ICU"})
    assert response.status_code == 201
    return response.json()


class TestHealthEndpoint:
    """Test suite for the health check endpoint."""

    def test_health_check_success(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"]["status"] == "connected"
        assert data["active_sessions"] == 0
        assert "timestamp" in data
        assert "version" in data

    def test_health_degraded_when_reporter_stopped(self, client, runtime):
        runtime.reporter.stop()

        response = client.get("/api/health")

        assert response.json()["status"] == "degraded"

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/api/docs"

    def test_process_time_header(self, client):
        response = client.get("/api/health")

        assert "X-Process-Time" in response.headers
        assert "X-Request-ID" in response.headers


class TestSessionEndpoints:
    """Test suite for session lifecycle endpoints."""

    def test_start_session(self, client, patient):
        response = client.post("/api/sessions/P1")

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "active"
        assert data["patient"]["name"] == "Ada Lovelace"
        assert data["freshness"] == "no_data"
        assert client.get("/api/sessions").json() == ["P1"]

    def test_start_session_seeds_history(self, client, patient):
        client.post("/api/patients/P1/vitals", json={"heart_rate": 72, "timestamp": "2024-01-15T08:00:00Z"})

        data = client.post("/api/sessions/P1").json()

        assert data["history_size"] == 1
        assert data["latest_reading"]["heart_rate"] == 72
        assert data["latest_assessment"]["risk_level"] == 0.0
        assert data["freshness"] == "ok"

    def test_start_session_twice_returns_running_session(self, client, patient):
        first = client.post("/api/sessions/P1")
        second = client.post("/api/sessions/P1")

        assert second.status_code == 200
        assert second.json()["state"] == first.json()["state"] == "active"

    def test_start_session_unknown_patient(self, client):
        response = client.post("/api/sessions/NOPE")

        assert response.status_code == 404
        assert response.json()["detail"]["error_type"] == "SourceError"
        assert client.get("/api/sessions").json() == []

    def test_get_session(self, client, patient):
        client.post("/api/sessions/P1")

        response = client.get("/api/sessions/P1")

        assert response.status_code == 200
        assert response.json()["patient_id"] == "P1"

    def test_get_missing_session(self, client):
        assert client.get("/api/sessions/P1").status_code == 404

    def test_stop_session(self, client, runtime, patient):
        client.post("/api/sessions/P1")
        session = runtime.sessions.get("P1")

        response = client.delete("/api/sessions/P1")

        assert response.status_code == 204
        assert session.state.value == "stopped"
        assert client.get("/api/sessions/P1").status_code == 404
        assert client.delete("/api/sessions/P1").status_code == 404

    def test_active_sessions_in_health(self, client, patient):
        client.post("/api/sessions/P1")

        assert client.get("/api/health").json()["active_sessions"] == 1


class TestVitalsEndpoint:
    """Test suite for manual vitals entry."""

    def test_record_vitals(self, client, runtime, patient):
        response = client.post("/api/patients/P1/vitals", json={"heart_rate": 80, "oxygen_saturation": 98})

        assert response.status_code == 201
        data = response.json()
        assert data["topic"] == "patient_vitals_P1"
        assert data["reading"]["patient_id"] == "P1"
        history = runtime.broadcast.get_history("patient_vitals_P1")
        assert [m.id for m in history] == [data["message_id"]]
        assert history[0].type == "vital_update"
        assert history[0].sender_id == "api"

    def test_running_session_picks_up_recorded_vitals(self, client, runtime, patient):
        client.post("/api/sessions/P1")
        session = runtime.sessions.get("P1")

        client.post("/api/patients/P1/vitals", json={"heart_rate": 150})

        assert wait_until(lambda: len(session.history) == 1)
        assert wait_until(lambda: len(session.unacknowledged_alerts) == 1)
        data = client.get("/api/sessions/P1").json()
        assert data["latest_reading"]["heart_rate"] == 150
        assert data["latest_assessment"]["risk_level"] > 0

    def test_out_of_range_reading_rejected(self, client, patient):
        response = client.post("/api/patients/P1/vitals", json={"oxygen_saturation": 140})

        assert response.status_code == 422

    def test_unknown_patient(self, client):
        response = client.post("/api/patients/NOPE/vitals", json={"heart_rate": 80})

        assert response.status_code == 404


class TestAlertEndpoints:
    """Test suite for alert acknowledgement and the alert log."""

    def _raise_alert(self, client, runtime):
        client.post("/api/sessions/P1")
        session = runtime.sessions.get("P1")
        client.post("/api/patients/P1/vitals", json={"heart_rate": 150})
        assert wait_until(lambda: len(session.unacknowledged_alerts) == 1)
        return session, session.unacknowledged_alerts[0]

    def test_acknowledge_alert(self, client, runtime, patient):
        session, alert = self._raise_alert(client, runtime)

        response = client.post(f"/api/sessions/P1/alerts/{alert.id}/acknowledge")

        assert response.status_code == 200
        assert response.json()["acknowledged"] is True
        assert session.unacknowledged_alerts == ()

    def test_acknowledge_unknown_alert(self, client, runtime, patient):
        self._raise_alert(client, runtime)

        response = client.post("/api/sessions/P1/alerts/alert_missing/acknowledge")

        assert response.status_code == 404
        assert response.json()["detail"]["error_type"] == "AlertNotFound"

    def test_acknowledge_without_session(self, client):
        assert client.post("/api/sessions/P1/alerts/a1/acknowledge").status_code == 404

    def test_alert_log(self, client, runtime, patient):
        _, alert = self._raise_alert(client, runtime)

        assert wait_until(lambda: len(client.get("/api/sessions/P1/alerts").json()) == 1)
        entry = client.get("/api/sessions/P1/alerts").json()[0]
        assert entry["alert_id"] == alert.id
        assert entry["severity"] == alert.severity.value


class TestDeviceEndpoints:
    """Test suite for device registration and raw samples."""

    def _device(self, patient_id="P1", device_id="hr-1"):
        return {
            "id": device_id,
            "name": "Bedside HR",
            "device_type": "heart_rate_monitor",
            "patient_id": patient_id,
        }

    def test_register_device(self, client, runtime, patient):
        response = client.post("/api/patients/P1/devices", json=self._device())

        assert response.status_code == 201
        assert runtime.devices.get_device("hr-1").patient_id == "P1"

    def test_register_device_for_other_patient(self, client, patient):
        response = client.post("/api/patients/P1/devices", json=self._device(patient_id="P2"))

        assert response.status_code == 422

    def test_device_sample_reaches_session(self, client, runtime, patient):
        client.post("/api/patients/P1/devices", json=self._device())
        start = client.post("/api/sessions/P1").json()
        assert start["connected_devices"] == ["hr-1"]
        session = runtime.sessions.get("P1")

        response = client.post("/api/patients/P1/device-samples", json={"device_id": "hr-1", "heart_rate": 88})

        assert response.status_code == 202
        assert response.json()["delivered"] == 1
        assert wait_until(lambda: len(session.history) == 1)
        assert session.history[0].device_id == "hr-1"

    def test_malformed_sample(self, client, patient):
        response = client.post("/api/patients/P1/device-samples", json={"heart_rate": "fast"})

        assert response.status_code == 422

    def test_sample_from_unknown_device(self, client, patient):
        response = client.post("/api/patients/P1/device-samples", json={"device_id": "ghost", "heart_rate": 70})

        assert response.status_code == 409
        assert "ghost" in response.json()["detail"]

    def test_sample_from_disconnected_device(self, client, patient):
        client.post("/api/patients/P1/devices", json=self._device())

        response = client.post("/api/patients/P1/device-samples", json={"device_id": "hr-1", "heart_rate": 70})

        assert response.status_code == 409


class TestPerformanceEndpoints:
    """Test suite for performance endpoints."""

    def test_get_performance(self, client, runtime):
        runtime.reporter.record("risk_assessment", 12.0)

        response = client.get("/api/performance")

        assert response.status_code == 200
        data = response.json()
        assert data["running"] is True
        assert data["operations"]["risk_assessment"]["count"] == 1

    def test_optimize_trims_broadcast_history(self):
        runtime = build_runtime(config=MonitoringConfig(), broadcast_history_limit=1, scheduler=ManualScheduler())
        with TestClient(create_app(runtime)) as client:
            runtime.broadcast.publish("patient_vitals_P1", "vital_update", {"heart_rate": 70})
            runtime.broadcast.publish("patient_vitals_P1", "vital_update", {"heart_rate": 72})

            response = client.post("/api/performance/optimize")

        assert response.status_code == 200
        assert response.json()["evicted"] == {runtime.broadcast.name: 1}
        assert len(runtime.broadcast.get_history("patient_vitals_P1")) == 1


class TestAlertWebSocket:
    """Test suite for the alert feed WebSocket."""

    def test_connection_message(self, client):
        with client.websocket_connect("/ws/alerts") as websocket:
            data = websocket.receive_json()

        assert data["type"] == "connection"
        assert "connected" in data["message"]

    def test_alert_pushed_to_clients(self, client, patient):
        client.post("/api/sessions/P1")

        with client.websocket_connect("/ws/alerts") as websocket:
            websocket.receive_json()
            client.post("/api/patients/P1/vitals", json={"heart_rate": 150})
            data = websocket.receive_json()

        assert data["type"] in ("alert", "critical_alert")
        assert data["data"]["patient_id"] == "P1"
