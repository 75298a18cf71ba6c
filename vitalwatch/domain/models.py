"""Vital Monitoring Domain Models.

This module defines the canonical value objects that flow through the
monitoring pipeline: the normalized ``VitalReading``, the evaluator and
aggregator outputs (``RuleViolation``, ``RiskAssessment``), the
``AlertRecord`` emitted by the dispatcher, and the small collaborator
records (``Patient``, ``DeviceDescriptor``, ``BroadcastMessage``).

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are frozen: superseded readings are replaced, never mutated
    - Validation is enforced at runtime via Pydantic V2, so raw
      device/broadcast payloads are rejected at the adapter boundary
      instead of travelling through the pipeline as untyped dicts
"""

import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Short unique identifier with a readable prefix (e.g. ``alert_1a2b3c4d``)."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class MetricKind(str, Enum):
    """Vital-sign channels evaluated by the threshold rules."""

    HEART_RATE = "heart_rate"
    BLOOD_PRESSURE = "blood_pressure"
    OXYGEN_SATURATION = "oxygen_saturation"
    TEMPERATURE = "temperature"
    RESPIRATORY_RATE = "respiratory_rate"
    GLUCOSE = "glucose"


class Severity(str, Enum):
    """Severity of a rule violation or alert, ordered NORMAL < WARNING < CRITICAL."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.NORMAL: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
}


class Trend(str, Enum):
    """Direction of a patient's vitals relative to their recent history."""

    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"
    UNKNOWN = "unknown"


class VitalReading(BaseModel):
    """One timestamped set of physiological measurements for a patient.

    Any subset of the numeric channels may be absent (the device did not
    report that channel). Absent channels stay ``None``; they are never
    defaulted to zero.

    Parameters:
        id: Reading identifier
        patient_id: Patient the reading belongs to
        device_id: Reporting device, when the reading came from telemetry
        timestamp: When the measurement was taken
        heart_rate: Beats per minute
        bp_systolic: Systolic blood pressure (mmHg)
        bp_diastolic: Diastolic blood pressure (mmHg)
        oxygen_saturation: SpO2 percentage (0-100)
        temperature_celsius: Body temperature (°C)
        respiratory_rate: Breaths per minute
        glucose: Blood glucose (mg/dL)
        notes: Free-text notes from the device or clinician
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("vital"), description="Reading identifier")
    patient_id: str = Field(..., min_length=1, description="Patient identifier")
    device_id: Optional[str] = Field(None, description="Reporting device identifier")
    timestamp: datetime = Field(default_factory=utc_now, description="Measurement time")
    heart_rate: Optional[float] = Field(None, ge=0, description="Heart rate (bpm)")
    bp_systolic: Optional[float] = Field(None, ge=0, description="Systolic BP (mmHg)")
    bp_diastolic: Optional[float] = Field(None, ge=0, description="Diastolic BP (mmHg)")
    oxygen_saturation: Optional[float] = Field(None, ge=0, le=100, description="SpO2 (%)")
    temperature_celsius: Optional[float] = Field(None, ge=0, description="Temperature (°C)")
    respiratory_rate: Optional[float] = Field(None, ge=0, description="Respiratory rate (/min)")
    glucose: Optional[float] = Field(None, ge=0, description="Blood glucose (mg/dL)")
    notes: Optional[str] = Field(None, description="Free-text notes")

    @field_validator(
        "heart_rate",
        "bp_systolic",
        "bp_diastolic",
        "oxygen_saturation",
        "temperature_celsius",
        "respiratory_rate",
        "glucose",
    )
    @classmethod
    def reject_non_finite(cls, v: Optional[float]) -> Optional[float]:
        """Reject NaN and infinity, which no device can legitimately report."""
        if v is not None and not math.isfinite(v):
            raise ValueError("measurement must be a finite number")
        return v

    @field_validator("timestamp")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are interpreted as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def present_metrics(self) -> list[MetricKind]:
        """Metric kinds this reading carries at least one value for."""
        present = []
        if self.heart_rate is not None:
            present.append(MetricKind.HEART_RATE)
        if self.bp_systolic is not None or self.bp_diastolic is not None:
            present.append(MetricKind.BLOOD_PRESSURE)
        if self.oxygen_saturation is not None:
            present.append(MetricKind.OXYGEN_SATURATION)
        if self.temperature_celsius is not None:
            present.append(MetricKind.TEMPERATURE)
        if self.respiratory_rate is not None:
            present.append(MetricKind.RESPIRATORY_RATE)
        if self.glucose is not None:
            present.append(MetricKind.GLUCOSE)
        return present


class RuleViolation(BaseModel):
    """A single out-of-range metric found by the threshold evaluator."""

    model_config = ConfigDict(frozen=True)

    metric: MetricKind
    message: str
    severity: Severity
    value: Optional[str] = Field(None, description="Offending value as displayed (e.g. '150' or '141/85')")


class RiskAssessment(BaseModel):
    """Derived risk summary for the latest reading of a patient.

    Attributes:
        risk_level: Normalized score in [0, 1]
        trend: Direction relative to the recent moving average
        recommendations: Textual hints keyed to the violated metrics (may be empty)
        violations: Violations found on the latest reading
    """

    model_config = ConfigDict(frozen=True)

    risk_level: float = Field(..., ge=0.0, le=1.0)
    trend: Trend = Trend.UNKNOWN
    recommendations: list[str] = Field(default_factory=list)
    violations: list[RuleViolation] = Field(default_factory=list)

    @property
    def violated_metrics(self) -> frozenset[MetricKind]:
        return frozenset(v.metric for v in self.violations)

    @property
    def max_severity(self) -> Severity:
        if not self.violations:
            return Severity.NORMAL
        return max((v.severity for v in self.violations), key=lambda s: s.rank)


class AlertRecord(BaseModel):
    """An alert decided by the dispatcher.

    Lifecycle: created → optionally acknowledged by a human action from the
    UI collaborator → kept in the recent-alert window for de-duplication,
    then aged out. Records are frozen; ``acknowledge()`` returns a copy.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("alert"))
    patient_id: str
    title: str
    message: str
    severity: Severity
    created_at: datetime = Field(default_factory=utc_now)
    acknowledged: bool = False
    metrics: frozenset[MetricKind] = Field(default_factory=frozenset)
    risk_level: Optional[float] = Field(None, ge=0.0, le=1.0)

    @property
    def dedup_key(self) -> tuple[str, frozenset[MetricKind]]:
        return (self.patient_id, self.metrics)

    def acknowledge(self) -> 'AlertRecord':
        return self.model_copy(update={"acknowledged": True})


class Patient(BaseModel):
    """Patient snapshot loaded when a monitoring session starts."""

    model_config = ConfigDict(frozen=True)

    patient_id: str = Field(..., min_length=1)
    name: str
    ward: Optional[str] = None
    attending_physician: Optional[str] = None


class DeviceType(str, Enum):
    """Medical device categories that can stream vitals."""

    BLOOD_PRESSURE_MONITOR = "blood_pressure_monitor"
    HEART_RATE_MONITOR = "heart_rate_monitor"
    GLUCOSE_MONITOR = "glucose_monitor"
    PULSE_OXIMETER = "pulse_oximeter"
    ECG_MONITOR = "ecg_monitor"
    TEMPERATURE_MONITOR = "temperature_monitor"


class DeviceDescriptor(BaseModel):
    """A medical device assigned to a patient."""

    id: str
    name: str
    device_type: DeviceType
    patient_id: str
    is_connected: bool = False
    battery_level: Optional[int] = Field(None, ge=0, le=100)


class BroadcastMessage(BaseModel):
    """A message delivered on a broadcast topic.

    ``type == "vital_update"`` messages carry a reading payload in ``data``;
    the payload is parsed into a ``VitalReading`` by the normalization adapter.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("msg"))
    type: str
    channel: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    sender_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class PerformanceWarning(BaseModel):
    """A system-health threshold breach raised by the performance reporter."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("perf"))
    rule: str = Field(..., description="Rule identifier, e.g. 'jank_percentage' or 'operation_average'")
    metric: str = Field(..., description="Metric name the rule was evaluated on")
    message: str
    value: float
    threshold: float
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_breach(self) -> 'PerformanceWarning':
        """A warning must describe an actual breach."""
        if self.value <= self.threshold:
            raise ValueError(
                f"warning value {self.value} does not exceed threshold {self.threshold}"
            )
        return self
