"""Tests for the command line interface."""

import json

import pytest
from typer.testing import CliRunner

from vitalwatch.adapters.storage.duckdb_adapter import DuckDBPatientStore
from vitalwatch.cli import app, load_readings
from vitalwatch.infrastructure.settings import settings

runner = CliRunner()


@pytest.fixture
def readings_file(tmp_path):
    path = tmp_path / "recordings.json"
    path.write_text(json.dumps([
        {"patient_id": "P1", "timestamp": "2024-01-15T08:05:00Z", "heart_rate": 150},
        {"patient_id": "P1", "timestamp": "2024-01-15T08:00:00Z", "heart_rate": 72, "spo2": 98},
        {"patient_id": "P1", "heart_rate": "fast"},
        {"heart_rate": 80},
    ]))
    return path


class TestLoadReadings:
    """Test suite for load_readings()."""

    def test_invalid_entries_skipped_and_sorted(self, readings_file):
        readings = load_readings(readings_file, None)

        assert [r.heart_rate for r in readings] == [72, 150]
        assert readings[0].oxygen_saturation == 98

    def test_patient_option_fills_missing_ids(self, readings_file):
        readings = load_readings(readings_file, "P1")

        assert len(readings) == 3
        assert all(r.patient_id == "P1" for r in readings)


class TestAssessCommand:
    """Test suite for the assess command."""

    def test_assess_reports_alerts(self, readings_file):
        result = runner.invoke(app, ["assess", str(readings_file)])

        assert result.exit_code == 0
        assert "2 reading(s), 1 alert(s) decided" in result.output

    def test_assess_without_valid_readings(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("[]")

        result = runner.invoke(app, ["assess", str(path)])

        assert result.exit_code == 1

    def test_assess_rejects_non_list(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text('{"heart_rate": 80}')

        result = runner.invoke(app, ["assess", str(path)])

        assert result.exit_code == 1


class TestInitDbCommand:
    """Test suite for the init-db command."""

    def test_init_db_loads_patients(self, tmp_path, monkeypatch):
        db_path = tmp_path / "vitals.duckdb"
        monkeypatch.setenv("VW_DB_PATH", str(db_path))
        monkeypatch.setattr(settings, "_config_manager", None)
        monkeypatch.setattr(settings, "_monitoring", None)
        patients = tmp_path / "patients.json"
        patients.write_text(json.dumps([{"patient_id": "P1", "name": "Ada Lovelace"}]))

        result = runner.invoke(app, ["init-db", "--patients", str(patients)])

        assert result.exit_code == 0
        store = DuckDBPatientStore(db_path=str(db_path))
        try:
            assert store.fetch_patient("P1").value.name == "Ada Lovelace"
        finally:
            store.close()

    def test_init_db_rejects_malformed_patient(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VW_DB_PATH", str(tmp_path / "vitals.duckdb"))
        monkeypatch.setattr(settings, "_config_manager", None)
        monkeypatch.setattr(settings, "_monitoring", None)
        patients = tmp_path / "patients.json"
        patients.write_text(json.dumps([
            {"patient_id": "P1", "name": "Ada Lovelace"},
            {"name": "No Id"},
        ]))

        result = runner.invoke(app, ["init-db", "--patients", str(patients)])

        assert result.exit_code == 1
        assert "Invalid patient entry 1" in result.output
        assert not isinstance(result.exception, ValueError)


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "VitalWatch v" in result.output
