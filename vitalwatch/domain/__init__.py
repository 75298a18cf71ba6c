"""Domain layer for VitalWatch.

This module contains the monitoring core: the Result type, the vital reading
models, the clinical threshold and risk rules, the alert dispatcher, the
per-patient session controller and the performance reporter.
All domain code is pure Python with no external dependencies beyond Pydantic.
"""

from .models import (
    AlertRecord,
    MetricKind,
    RiskAssessment,
    RuleViolation,
    Severity,
    Trend,
    VitalReading,
)
from .result import Failure, Loading, Result, Success

__all__ = [
    "AlertRecord",
    "MetricKind",
    "RiskAssessment",
    "RuleViolation",
    "Severity",
    "Trend",
    "VitalReading",
    "Result",
    "Success",
    "Failure",
    "Loading",
]
