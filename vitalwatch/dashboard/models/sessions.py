"""Request/response models for sessions, vitals and performance endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from vitalwatch.domain.models import AlertRecord, Patient, RiskAssessment, VitalReading
from vitalwatch.domain.performance import MetricAggregate, OptimizationReport
from vitalwatch.domain.session import DataFreshness, SessionSnapshot, SessionState


class SessionResponse(BaseModel):
    """Snapshot of a monitoring session."""

    patient_id: str
    state: SessionState
    patient: Optional[Patient] = None
    freshness: DataFreshness
    history_size: int = Field(..., ge=0)
    latest_reading: Optional[VitalReading] = None
    latest_assessment: Optional[RiskAssessment] = None
    unacknowledged_alerts: list[AlertRecord] = Field(default_factory=list)
    connected_devices: list[str] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> 'SessionResponse':
        return cls(
            patient_id=snapshot.patient_id,
            state=snapshot.state,
            patient=snapshot.patient,
            freshness=snapshot.freshness,
            history_size=len(snapshot.history),
            latest_reading=snapshot.history[-1] if snapshot.history else None,
            latest_assessment=snapshot.latest_assessment,
            unacknowledged_alerts=list(snapshot.unacknowledged_alerts),
            connected_devices=list(snapshot.connected_devices),
        )


class VitalReadingInput(BaseModel):
    """Manually entered vital reading. Every channel is optional."""

    heart_rate: Optional[float] = None
    bp_systolic: Optional[float] = None
    bp_diastolic: Optional[float] = None
    oxygen_saturation: Optional[float] = None
    temperature_celsius: Optional[float] = None
    respiratory_rate: Optional[float] = None
    glucose: Optional[float] = None
    device_id: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


class VitalReadingAccepted(BaseModel):
    """Response for a persisted and published reading."""

    reading: VitalReading
    message_id: str = Field(..., description="Broadcast message id")
    topic: str


class DeviceSampleAccepted(BaseModel):
    delivered: int = Field(..., ge=0, description="Open device streams the sample was delivered to")


class PerformanceResponse(BaseModel):
    """Current performance aggregates."""

    running: bool
    jank_percentage: float
    frames: Optional[dict[str, Any]] = None
    operations: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        running: bool,
        jank_percentage: float,
        frames: Optional[MetricAggregate],
        operations: dict[str, MetricAggregate]
    ) -> 'PerformanceResponse':
        return cls(
            running=running,
            jank_percentage=round(jank_percentage, 2),
            frames=_aggregate_dict(frames) if frames else None,
            operations={name: _aggregate_dict(agg) for name, agg in operations.items()},
        )


class OptimizationResponse(BaseModel):
    evicted: dict[str, int] = Field(default_factory=dict)
    dropped_metrics: list[str] = Field(default_factory=list)
    total_evicted: int = 0

    @classmethod
    def from_report(cls, report: OptimizationReport) -> 'OptimizationResponse':
        return cls(
            evicted=dict(report.evicted),
            dropped_metrics=list(report.dropped_metrics),
            total_evicted=report.total_evicted,
        )


def _aggregate_dict(aggregate: MetricAggregate) -> dict[str, Any]:
    return {
        "count": aggregate.count,
        "total_ms": round(aggregate.total_ms, 3),
        "average_ms": round(aggregate.average_ms, 3),
        "max_ms": round(aggregate.max_ms, 3),
    }
