"""Threshold Evaluator - Clinical Bounds for Vital Readings.

Maps a ``VitalReading`` to zero or more ``RuleViolation`` objects using
fixed clinical bounds. Normal ranges are inclusive. A value outside the
normal range raises a WARNING; a value beyond the extreme bound upgrades
that metric's single violation to CRITICAL.

Absent channels are skipped, never defaulted to zero. The evaluator is
pure: deterministic, no side effects, no I/O.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from vitalwatch.domain.models import MetricKind, RuleViolation, Severity, VitalReading


@dataclass(frozen=True)
class Bounds:
    """Inclusive normal range plus extreme (critical) bounds for one channel.

    ``None`` means the side is unbounded.
    """

    low: Optional[float]
    high: Optional[float]
    critical_low: Optional[float] = None
    critical_high: Optional[float] = None

    @property
    def width(self) -> float:
        if self.low is None or self.high is None:
            # One-sided ranges normalise against the bound itself
            return abs(self.low if self.low is not None else self.high or 1.0)
        return self.high - self.low

    def is_normal(self, value: float) -> bool:
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True

    def is_critical(self, value: float) -> bool:
        if self.critical_low is not None and value < self.critical_low:
            return True
        if self.critical_high is not None and value > self.critical_high:
            return True
        return False

    def deviation(self, value: float) -> float:
        """Distance outside the normal range divided by the range width (0 inside)."""
        if self.low is not None and value < self.low:
            return (self.low - value) / self.width
        if self.high is not None and value > self.high:
            return (value - self.high) / self.width
        return 0.0


HEART_RATE = Bounds(low=60, high=100, critical_low=50, critical_high=120)
SYSTOLIC = Bounds(low=None, high=140, critical_high=180)
DIASTOLIC = Bounds(low=None, high=90, critical_high=110)
OXYGEN_SATURATION = Bounds(low=95, high=None, critical_low=90)
TEMPERATURE = Bounds(low=36.1, high=37.2, critical_low=35.0, critical_high=39.0)
RESPIRATORY_RATE = Bounds(low=12, high=20, critical_low=10, critical_high=24)
GLUCOSE = Bounds(low=70, high=180, critical_low=54, critical_high=250)

# Channels that share a metric kind are evaluated together (blood pressure)
CHANNELS: dict[MetricKind, tuple[tuple[str, Bounds], ...]] = {
    MetricKind.HEART_RATE: (("heart_rate", HEART_RATE),),
    MetricKind.BLOOD_PRESSURE: (("bp_systolic", SYSTOLIC), ("bp_diastolic", DIASTOLIC)),
    MetricKind.OXYGEN_SATURATION: (("oxygen_saturation", OXYGEN_SATURATION),),
    MetricKind.TEMPERATURE: (("temperature_celsius", TEMPERATURE),),
    MetricKind.RESPIRATORY_RATE: (("respiratory_rate", RESPIRATORY_RATE),),
    MetricKind.GLUCOSE: (("glucose", GLUCOSE),),
}


def format_value(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def _heart_rate_message(reading: VitalReading) -> str:
    hr = reading.heart_rate
    direction = "elevated" if hr > HEART_RATE.high else "low"
    return f"Heart rate {direction}: {format_value(hr)} bpm (normal 60-100)"


def _blood_pressure_message(reading: VitalReading) -> str:
    return (
        f"Blood pressure elevated: {format_value(reading.bp_systolic)}/"
        f"{format_value(reading.bp_diastolic)} mmHg (normal <= 140/90)"
    )


def _oxygen_message(reading: VitalReading) -> str:
    return f"Oxygen saturation low: {format_value(reading.oxygen_saturation)}% (normal >= 95%)"


def _temperature_message(reading: VitalReading) -> str:
    temp = reading.temperature_celsius
    direction = "elevated" if temp > TEMPERATURE.high else "low"
    return f"Temperature {direction}: {format_value(temp)} °C (normal 36.1-37.2)"


def _respiratory_message(reading: VitalReading) -> str:
    rr = reading.respiratory_rate
    direction = "elevated" if rr > RESPIRATORY_RATE.high else "low"
    return f"Respiratory rate {direction}: {format_value(rr)} /min (normal 12-20)"


def _glucose_message(reading: VitalReading) -> str:
    glucose = reading.glucose
    direction = "elevated" if glucose > GLUCOSE.high else "low"
    return f"Glucose {direction}: {format_value(glucose)} mg/dL (normal 70-180)"


_MESSAGES: dict[MetricKind, Callable[[VitalReading], str]] = {
    MetricKind.HEART_RATE: _heart_rate_message,
    MetricKind.BLOOD_PRESSURE: _blood_pressure_message,
    MetricKind.OXYGEN_SATURATION: _oxygen_message,
    MetricKind.TEMPERATURE: _temperature_message,
    MetricKind.RESPIRATORY_RATE: _respiratory_message,
    MetricKind.GLUCOSE: _glucose_message,
}


def _display_value(metric: MetricKind, reading: VitalReading) -> str:
    if metric == MetricKind.BLOOD_PRESSURE:
        return f"{format_value(reading.bp_systolic)}/{format_value(reading.bp_diastolic)}"
    field_name = CHANNELS[metric][0][0]
    return format_value(getattr(reading, field_name))


def evaluate(reading: VitalReading) -> list[RuleViolation]:
    """Evaluate a reading against the clinical bounds.

    Parameters:
        reading: The reading to evaluate

    Returns:
        list[RuleViolation]: At most one violation per metric kind, in
        MetricKind declaration order. Empty when every present channel is
        within its normal range or no channel is present.
    """
    violations = []
    for metric, channels in CHANNELS.items():
        abnormal = False
        critical = False
        for field_name, bounds in channels:
            value = getattr(reading, field_name)
            if value is None:
                continue
            if not bounds.is_normal(value):
                abnormal = True
                if bounds.is_critical(value):
                    critical = True

        if not abnormal:
            continue

        violations.append(RuleViolation(
            metric=metric,
            message=_MESSAGES[metric](reading),
            severity=Severity.CRITICAL if critical else Severity.WARNING,
            value=_display_value(metric, reading),
        ))
    return violations
