"""DuckDB Patient Store Adapter.

This adapter implements the PatientDataPort query interface on top of
DuckDB, an in-process database, and keeps an append-only log of decided
alerts for review.

Architecture:
    - Implements PatientDataPort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Connection is established lazily and reused
    - Timestamps are stored as naive UTC
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import duckdb
from pydantic import ValidationError as PydanticValidationError

from vitalwatch.domain.models import AlertRecord, Patient, VitalReading
from vitalwatch.domain.ports import PatientDataPort, SourceError
from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)

_READING_COLUMNS = (
    "reading_id", "patient_id", "device_id", "recorded_at", "heart_rate",
    "bp_systolic", "bp_diastolic", "oxygen_saturation", "temperature_celsius",
    "respiratory_rate", "glucose", "notes",
)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class DuckDBPatientStore(PatientDataPort):
    """DuckDB implementation of the patient/vitals query port.

    Parameters:
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)

    Example Usage:
        ```python
        store = DuckDBPatientStore(db_path="data/vitals.duckdb")
        store.initialize_schema()
        store.upsert_patient(Patient(patient_id="P001", name="Jane Doe"))
        result = await store.get_vital_statistics("P001", 50)
        ```
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialized = False
        # DuckDB connections are not safe for concurrent use
        self._lock = threading.RLock()

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise SourceError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    source="duckdb",
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create DuckDB connection."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except Exception as e:
                raise SourceError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    source="duckdb",
                    details={"db_path": self.db_path},
                )
        return self._connection

    def initialize_schema(self) -> Result[None]:
        """Initialize database schema.

        Creates tables for:
        - patients: Patient snapshot records
        - vital_readings: Normalized vital readings
        - alert_log: Append-only log of decided alerts

        Returns:
            Result[None]: Success or failure result
        """
        try:
            with self._lock:
                conn = self._get_connection()

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS patients (
                        patient_id VARCHAR PRIMARY KEY,
                        name VARCHAR NOT NULL,
                        ward VARCHAR,
                        attending_physician VARCHAR
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS vital_readings (
                        reading_id VARCHAR PRIMARY KEY,
                        patient_id VARCHAR NOT NULL,
                        device_id VARCHAR,
                        recorded_at TIMESTAMP NOT NULL,
                        heart_rate DOUBLE,
                        bp_systolic DOUBLE,
                        bp_diastolic DOUBLE,
                        oxygen_saturation DOUBLE,
                        temperature_celsius DOUBLE,
                        respiratory_rate DOUBLE,
                        glucose DOUBLE,
                        notes VARCHAR
                    )
                """)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS alert_log (
                        alert_id VARCHAR PRIMARY KEY,
                        patient_id VARCHAR NOT NULL,
                        title VARCHAR NOT NULL,
                        message VARCHAR NOT NULL,
                        severity VARCHAR NOT NULL,
                        metrics VARCHAR,
                        risk_level DOUBLE,
                        created_at TIMESTAMP NOT NULL
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_vital_readings_patient
                    ON vital_readings(patient_id, recorded_at)
                """)

                self._initialized = True
            logger.info("DuckDB schema initialized")
            return Result.success_result(None)

        except Exception as e:
            error_msg = f"Failed to initialize schema: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                SourceError(error_msg, source="duckdb"),
                error_type="SourceError",
                error_details={"source": "duckdb"},
            )

    def _ensure_schema(self) -> Result[None]:
        if self._initialized:
            return Result.success_result(None)
        return self.initialize_schema()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_patient(self, patient: Patient) -> Result[str]:
        """Insert or replace a patient snapshot."""
        init_result = self._ensure_schema()
        if init_result.is_failure():
            return init_result
        try:
            with self._lock:
                self._get_connection().execute(
                    "INSERT OR REPLACE INTO patients (patient_id, name, ward, attending_physician) "
                    "VALUES (?, ?, ?, ?)",
                    [patient.patient_id, patient.name, patient.ward, patient.attending_physician],
                )
            return Result.success_result(patient.patient_id)
        except Exception as e:
            logger.error(f"Failed to persist patient {patient.patient_id}: {str(e)}", exc_info=True)
            return Result.failure_result(
                e, error_type="SourceError", error_details={"patient_id": patient.patient_id, "source": "duckdb"}
            )

    def save_reading(self, reading: VitalReading) -> Result[str]:
        """Persist a reading. The patient must exist.

        Returns:
            Result[str]: The reading id, or Failure with ``not_found`` set in
            error_details when the patient is unknown
        """
        init_result = self._ensure_schema()
        if init_result.is_failure():
            return init_result
        details = {"patient_id": reading.patient_id, "source": "duckdb"}
        try:
            with self._lock:
                conn = self._get_connection()
                exists = conn.execute(
                    "SELECT 1 FROM patients WHERE patient_id = ?", [reading.patient_id]
                ).fetchone()
                if exists is None:
                    return Result.failure_result(
                        f"Unknown patient: {reading.patient_id}",
                        error_type="SourceError",
                        error_details={**details, "not_found": True},
                    )
                conn.execute(
                    f"INSERT INTO vital_readings ({', '.join(_READING_COLUMNS)}) "
                    f"VALUES ({', '.join('?' for _ in _READING_COLUMNS)})",
                    [
                        reading.id,
                        reading.patient_id,
                        reading.device_id,
                        _to_naive_utc(reading.timestamp),
                        reading.heart_rate,
                        reading.bp_systolic,
                        reading.bp_diastolic,
                        reading.oxygen_saturation,
                        reading.temperature_celsius,
                        reading.respiratory_rate,
                        reading.glucose,
                        reading.notes,
                    ],
                )
            return Result.success_result(reading.id)
        except Exception as e:
            logger.error(f"Failed to persist reading {reading.id}: {str(e)}", exc_info=True)
            return Result.failure_result(e, error_type="SourceError", error_details=details)

    def log_alert(self, alert: AlertRecord) -> Result[str]:
        """Append a decided alert to the alert log."""
        init_result = self._ensure_schema()
        if init_result.is_failure():
            return init_result
        try:
            with self._lock:
                self._get_connection().execute(
                    "INSERT OR REPLACE INTO alert_log "
                    "(alert_id, patient_id, title, message, severity, metrics, risk_level, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        alert.id,
                        alert.patient_id,
                        alert.title,
                        alert.message,
                        alert.severity.value,
                        ",".join(sorted(m.value for m in alert.metrics)),
                        alert.risk_level,
                        _to_naive_utc(alert.created_at),
                    ],
                )
            return Result.success_result(alert.id)
        except Exception as e:
            logger.error(f"Failed to log alert {alert.id}: {str(e)}", exc_info=True)
            return Result.failure_result(
                e, error_type="SourceError", error_details={"alert_id": alert.id, "source": "duckdb"}
            )

    # ------------------------------------------------------------------
    # PatientDataPort
    # ------------------------------------------------------------------

    # Port queries run in a worker thread; the connection lock serializes them
    async def get_patient_by_id(self, patient_id: str) -> Result[Patient]:
        return await asyncio.to_thread(self.fetch_patient, patient_id)

    async def get_vital_statistics(self, patient_id: str, limit: int) -> Result[list[VitalReading]]:
        return await asyncio.to_thread(self.fetch_vitals, patient_id, limit)

    def fetch_patient(self, patient_id: str) -> Result[Patient]:
        init_result = self._ensure_schema()
        if init_result.is_failure():
            return init_result
        details = {"patient_id": patient_id, "source": "duckdb"}
        try:
            with self._lock:
                row = self._get_connection().execute(
                    "SELECT patient_id, name, ward, attending_physician FROM patients WHERE patient_id = ?",
                    [patient_id],
                ).fetchone()
        except Exception as e:
            logger.error(f"Failed to load patient {patient_id}: {str(e)}", exc_info=True)
            return Result.failure_result(e, error_type="SourceError", error_details=details)

        if row is None:
            return Result.failure_result(
                f"Unknown patient: {patient_id}",
                error_type="SourceError",
                error_details={**details, "not_found": True},
            )
        return Result.success_result(Patient(
            patient_id=row[0], name=row[1], ward=row[2], attending_physician=row[3]
        ))

    def fetch_vitals(self, patient_id: str, limit: int) -> Result[list[VitalReading]]:
        """Most recent ``limit`` readings for a patient, oldest first."""
        init_result = self._ensure_schema()
        if init_result.is_failure():
            return init_result
        details = {"patient_id": patient_id, "source": "duckdb"}
        try:
            with self._lock:
                rows = self._get_connection().execute(
                    f"SELECT {', '.join(_READING_COLUMNS)} FROM vital_readings "
                    "WHERE patient_id = ? ORDER BY recorded_at DESC, rowid DESC LIMIT ?",
                    [patient_id, limit],
                ).fetchall()
        except Exception as e:
            logger.error(f"Failed to load vitals for patient {patient_id}: {str(e)}", exc_info=True)
            return Result.failure_result(e, error_type="SourceError", error_details=details)

        readings = []
        for row in reversed(rows):
            values = dict(zip(_READING_COLUMNS, row))
            try:
                readings.append(VitalReading(
                    id=values["reading_id"],
                    patient_id=values["patient_id"],
                    device_id=values["device_id"],
                    timestamp=values["recorded_at"],
                    heart_rate=values["heart_rate"],
                    bp_systolic=values["bp_systolic"],
                    bp_diastolic=values["bp_diastolic"],
                    oxygen_saturation=values["oxygen_saturation"],
                    temperature_celsius=values["temperature_celsius"],
                    respiratory_rate=values["respiratory_rate"],
                    glucose=values["glucose"],
                    notes=values["notes"],
                ))
            except PydanticValidationError as e:
                logger.warning(f"Skipping invalid stored reading {values['reading_id']}: {str(e)}")
        return Result.success_result(readings)

    def get_alert_log(self, patient_id: str, limit: int = 100) -> Result[list[dict]]:
        """Logged alerts for a patient, newest first."""
        init_result = self._ensure_schema()
        if init_result.is_failure():
            return init_result
        try:
            with self._lock:
                cursor = self._get_connection().execute(
                    "SELECT alert_id, title, message, severity, metrics, risk_level, created_at "
                    "FROM alert_log WHERE patient_id = ? ORDER BY created_at DESC LIMIT ?",
                    [patient_id, limit],
                )
                columns = [c[0] for c in cursor.description]
                rows = cursor.fetchall()
            return Result.success_result([dict(zip(columns, row)) for row in rows])
        except Exception as e:
            logger.error(f"Failed to read alert log for {patient_id}: {str(e)}", exc_info=True)
            return Result.failure_result(
                e, error_type="SourceError", error_details={"patient_id": patient_id, "source": "duckdb"}
            )

    def health_check(self) -> Result[None]:
        """Run a trivial query to verify the connection."""
        try:
            with self._lock:
                self._get_connection().execute("SELECT 1").fetchone()
            return Result.success_result(None)
        except Exception as e:
            return Result.failure_result(e, error_type="SourceError", error_details={"source": "duckdb"})

    def close(self) -> None:
        """Close storage connection and release resources."""
        if self._connection is not None:
            try:
                self._connection.close()
                self._connection = None
                self._initialized = False
                logger.info("Closed DuckDB connection")
            except Exception as e:
                logger.warning(f"Error closing connection: {str(e)}")
