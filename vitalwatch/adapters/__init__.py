"""Adapters layer for VitalWatch.

This module contains the adapters that implement the Port interfaces defined
in the domain layer: payload normalization, the in-memory broadcast hub and
device gateway, the DuckDB patient store and the notification sinks.
"""
