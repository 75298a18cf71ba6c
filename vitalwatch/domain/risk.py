"""Risk Aggregator - Risk Level and Trend for the Latest Reading.

Combines the threshold violations of the latest reading with a trend signal
computed against a simple moving average of recent history.

Scoring:
    - Violations are combined as independent contributions,
      ``1 - prod(1 - w)``, so any CRITICAL violation alone scores above 0.7
    - A WORSENING trend adds a fraction of the remaining headroom, only when
      the latest reading is already abnormal
    - The level is clamped to [0, 1]

The aggregator is pure and never raises on absent data.
"""

from typing import Sequence

from vitalwatch.domain.models import (
    MetricKind,
    RiskAssessment,
    RuleViolation,
    Severity,
    Trend,
    VitalReading,
)
from vitalwatch.domain.thresholds import CHANNELS, evaluate

CRITICAL_WEIGHT = 0.75
WARNING_WEIGHT = 0.30
WORSENING_BOOST = 0.10
TREND_TOLERANCE = 0.05
TREND_WINDOW = 10

_RECOMMENDATIONS = {
    MetricKind.HEART_RATE: "Abnormal heart rate: consider cardiac reassessment and a 12-lead ECG",
    MetricKind.BLOOD_PRESSURE: "Elevated blood pressure: recheck manually and review antihypertensive therapy",
    MetricKind.OXYGEN_SATURATION: "Low oxygen saturation: assess airway and consider supplemental oxygen",
    MetricKind.TEMPERATURE: "Abnormal temperature: evaluate for infection and consider cultures",
    MetricKind.RESPIRATORY_RATE: "Abnormal respiratory rate: assess respiratory effort and work of breathing",
    MetricKind.GLUCOSE: "Abnormal glucose: repeat point-of-care glucose and review insulin orders",
}
ESCALATION_HINT = "Critical values present: notify the attending physician immediately"
MONITORING_HINT = "Vitals are worsening: increase monitoring frequency"


def base_risk(violations: Sequence[RuleViolation]) -> float:
    """Combine violations as independent contributions to a [0, 1) score."""
    remaining = 1.0
    for violation in violations:
        if violation.severity == Severity.CRITICAL:
            remaining *= 1.0 - CRITICAL_WEIGHT
        elif violation.severity == Severity.WARNING:
            remaining *= 1.0 - WARNING_WEIGHT
    return 1.0 - remaining


def compute_trend(latest: VitalReading, history: Sequence[VitalReading]) -> Trend:
    """Classify the latest reading against the moving average of recent history.

    For every channel present in ``latest`` and in at least one of the most
    recent ``TREND_WINDOW`` prior readings, compares the normalised deviation
    from the normal range of the latest value against that of the prior mean.

    Returns:
        Trend: UNKNOWN with empty history or no comparable channel
    """
    recent = list(history)[-TREND_WINDOW:]
    if not recent:
        return Trend.UNKNOWN

    delta = 0.0
    compared = False
    for channels in CHANNELS.values():
        for field_name, bounds in channels:
            current = getattr(latest, field_name)
            if current is None:
                continue
            prior_values = [
                getattr(r, field_name) for r in recent
                if getattr(r, field_name) is not None
            ]
            if not prior_values:
                continue
            average = sum(prior_values) / len(prior_values)
            delta += bounds.deviation(current) - bounds.deviation(average)
            compared = True

    if not compared:
        return Trend.UNKNOWN
    if delta > TREND_TOLERANCE:
        return Trend.WORSENING
    if delta < -TREND_TOLERANCE:
        return Trend.IMPROVING
    return Trend.STABLE


def recommendations_for(violations: Sequence[RuleViolation], trend: Trend) -> list[str]:
    hints = [_RECOMMENDATIONS[v.metric] for v in violations]
    if any(v.severity == Severity.CRITICAL for v in violations):
        hints.append(ESCALATION_HINT)
    if trend == Trend.WORSENING:
        hints.append(MONITORING_HINT)
    return hints


def assess(latest: VitalReading, history: Sequence[VitalReading]) -> RiskAssessment:
    """Compute the risk assessment for ``latest``.

    Parameters:
        latest: The reading being processed
        history: Prior readings, oldest first (``latest`` excluded)

    Returns:
        RiskAssessment: risk level in [0, 1], trend, recommendations and the
        violations of ``latest``
    """
    violations = evaluate(latest)
    trend = compute_trend(latest, history)

    risk = base_risk(violations)
    if violations and trend == Trend.WORSENING:
        risk += (1.0 - risk) * WORSENING_BOOST
    risk = min(1.0, max(0.0, risk))

    return RiskAssessment(
        risk_level=risk,
        trend=trend,
        recommendations=recommendations_for(violations, trend),
        violations=violations,
    )
