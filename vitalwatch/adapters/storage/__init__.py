"""Storage adapters for VitalWatch.

This module contains the DuckDB adapter that implements the PatientDataPort
query interface and keeps the alert log.
"""

from vitalwatch.adapters.storage.duckdb_adapter import DuckDBPatientStore

__all__ = ["DuckDBPatientStore"]
