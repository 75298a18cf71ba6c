"""Tests for the clinical threshold evaluator."""

import pytest

from vitalwatch.domain.models import MetricKind, Severity, VitalReading
from vitalwatch.domain.thresholds import HEART_RATE, SYSTOLIC, evaluate, format_value


def reading(**values) -> VitalReading:
    return VitalReading(patient_id="P1", **values)


class TestEvaluate:
    """Test suite for evaluate()."""

    def test_reading_with_all_fields_absent_has_no_violations(self):
        assert evaluate(reading()) == []

    @pytest.mark.parametrize("heart_rate", [60, 100, 80])
    def test_heart_rate_bounds_are_inclusive(self, heart_rate):
        assert evaluate(reading(heart_rate=heart_rate)) == []

    @pytest.mark.parametrize("heart_rate", [59, 101])
    def test_heart_rate_just_outside_raises_one_violation(self, heart_rate):
        violations = evaluate(reading(heart_rate=heart_rate))
        assert len(violations) == 1
        assert violations[0].metric == MetricKind.HEART_RATE
        assert violations[0].severity == Severity.WARNING
        assert str(heart_rate) in violations[0].message

    def test_blood_pressure_at_limits_is_normal(self):
        assert evaluate(reading(bp_systolic=140, bp_diastolic=90)) == []

    @pytest.mark.parametrize("systolic,diastolic", [(141, 90), (140, 91), (150, 95)])
    def test_blood_pressure_raises_exactly_one_violation(self, systolic, diastolic):
        violations = evaluate(reading(bp_systolic=systolic, bp_diastolic=diastolic))
        assert [v.metric for v in violations] == [MetricKind.BLOOD_PRESSURE]
        assert violations[0].value == f"{systolic}/{diastolic}"

    def test_oxygen_saturation(self):
        assert evaluate(reading(oxygen_saturation=95)) == []
        violations = evaluate(reading(oxygen_saturation=94))
        assert violations[0].metric == MetricKind.OXYGEN_SATURATION
        assert "94%" in violations[0].message

    @pytest.mark.parametrize("temperature,expected", [(36.1, 0), (37.2, 0), (36.0, 1), (37.3, 1)])
    def test_temperature_bounds(self, temperature, expected):
        assert len(evaluate(reading(temperature_celsius=temperature))) == expected

    @pytest.mark.parametrize("rate,expected", [(12, 0), (20, 0), (11, 1), (21, 1)])
    def test_respiratory_rate_bounds(self, rate, expected):
        assert len(evaluate(reading(respiratory_rate=rate))) == expected

    def test_glucose_bounds(self):
        assert evaluate(reading(glucose=70)) == []
        assert evaluate(reading(glucose=180)) == []
        assert evaluate(reading(glucose=181))[0].metric == MetricKind.GLUCOSE

    def test_absent_channels_are_not_defaulted_to_zero(self):
        # Zero would be far below every normal range
        assert evaluate(reading(heart_rate=72)) == []

    def test_extreme_values_are_critical(self):
        violations = evaluate(reading(heart_rate=150, oxygen_saturation=85))
        assert [v.severity for v in violations] == [Severity.CRITICAL, Severity.CRITICAL]

    def test_blood_pressure_critical_when_either_channel_is_extreme(self):
        violations = evaluate(reading(bp_systolic=150, bp_diastolic=115))
        assert len(violations) == 1
        assert violations[0].severity == Severity.CRITICAL

    def test_violations_follow_metric_order(self):
        violations = evaluate(reading(glucose=300, heart_rate=110, respiratory_rate=25))
        assert [v.metric for v in violations] == [
            MetricKind.HEART_RATE,
            MetricKind.RESPIRATORY_RATE,
            MetricKind.GLUCOSE,
        ]

    def test_evaluate_is_deterministic(self):
        r = reading(heart_rate=130, bp_systolic=160, bp_diastolic=100)
        assert evaluate(r) == evaluate(r)


class TestBounds:
    """Test suite for Bounds helpers."""

    def test_deviation_is_zero_inside_range(self):
        assert HEART_RATE.deviation(80) == 0.0

    def test_deviation_is_normalised_by_range_width(self):
        assert HEART_RATE.deviation(120) == pytest.approx(0.5)
        assert HEART_RATE.deviation(40) == pytest.approx(0.5)

    def test_one_sided_range_uses_bound_as_width(self):
        assert SYSTOLIC.deviation(154) == pytest.approx(0.1)

    def test_format_value(self):
        assert format_value(None) == "-"
        assert format_value(101.0) == "101"
        assert format_value(37.5) == "37.5"
