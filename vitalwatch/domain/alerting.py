"""Alert Dispatcher - De-duplication, Escalation and Rate Limiting.

Decides, from the risk assessment of a reading and the recent-alert window,
which alerts to emit, then forwards each emitted alert to the injected
notification sink.

Rules:
    - Risk level above ``critical_risk_threshold``: one CRITICAL alert for
      the patient referencing every violated metric. Per-metric alerts of
      the same pass are folded into it; delivery uses the critical path.
    - Otherwise: one alert per violated metric, at the violation's severity.
    - De-duplication key is ``(patient_id, metric set)``. A key is emitted at
      most once per pass; across passes an alert is suppressed only when the
      window holds the same key at the same or higher severity within the
      cooldown. A higher severity is never suppressed.
    - Optional per-patient rate limit suppresses WARNING alerts only.

The window is updated when an alert is decided, not when it is delivered:
a delivery failure is logged and never rolls the window back, so a retry
cannot re-send a decided alert.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from vitalwatch.domain.models import (
    AlertRecord,
    MetricKind,
    RiskAssessment,
    Severity,
    VitalReading,
    utc_now,
)
from vitalwatch.domain.ports import DispatchError, NotificationPort
from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)

RATE_LIMIT_PERIOD = timedelta(seconds=60)


class AlertPolicy(BaseModel):
    """Alerting policy.

    Parameters:
        critical_risk_threshold: Risk level above which the pass escalates to one CRITICAL alert
        cooldown_seconds: Same-key suppression window across passes (0 disables it)
        max_alerts_per_minute: Per-patient WARNING budget (None disables rate limiting)
        window_size: Maximum number of alerts remembered for de-duplication
    """

    critical_risk_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    cooldown_seconds: float = Field(default=0.0, ge=0.0)
    max_alerts_per_minute: Optional[int] = Field(default=None, ge=1)
    window_size: int = Field(default=100, ge=1)

    @property
    def retention(self) -> timedelta:
        return max(timedelta(seconds=self.cooldown_seconds), RATE_LIMIT_PERIOD)


@dataclass(frozen=True)
class AlertWindow:
    """Immutable short-term memory of recently decided alerts, oldest first."""

    alerts: tuple[AlertRecord, ...] = ()
    max_size: int = 100

    def __len__(self) -> int:
        return len(self.alerts)

    def __iter__(self):
        return iter(self.alerts)

    def latest_for(self, key: tuple[str, frozenset[MetricKind]]) -> Optional[AlertRecord]:
        for alert in reversed(self.alerts):
            if alert.dedup_key == key:
                return alert
        return None

    def count_since(self, patient_id: str, since: datetime) -> int:
        return sum(
            1 for alert in self.alerts
            if alert.patient_id == patient_id and alert.created_at >= since
        )

    def extended(
        self,
        new_alerts: list[AlertRecord],
        now: datetime,
        retention: timedelta
    ) -> 'AlertWindow':
        """Return a window with ``new_alerts`` appended, aged out and bounded."""
        horizon = now - retention
        kept = [a for a in self.alerts if a.created_at >= horizon]
        kept.extend(new_alerts)
        return AlertWindow(alerts=tuple(kept[-self.max_size:]), max_size=self.max_size)


@dataclass
class AlertDispatcher:
    """Decides and delivers alerts for one or more sessions.

    The dispatcher holds no per-patient state: the caller owns the window
    and threads it through successive calls.
    """

    sink: NotificationPort
    policy: AlertPolicy = field(default_factory=AlertPolicy)

    def new_window(self) -> AlertWindow:
        return AlertWindow(max_size=self.policy.window_size)

    def is_escalated(self, assessment: RiskAssessment) -> bool:
        return bool(assessment.violations) and assessment.risk_level > self.policy.critical_risk_threshold

    def decide(
        self,
        assessment: RiskAssessment,
        reading: VitalReading,
        window: AlertWindow,
        now: Optional[datetime] = None
    ) -> tuple[list[AlertRecord], AlertWindow]:
        """Decide which alerts to emit for one evaluation pass.

        Nothing is delivered here; suppressed candidates are only logged.

        Parameters:
            assessment: Risk assessment of ``reading``
            reading: The reading that produced the assessment
            window: Recent alerts for de-duplication
            now: Decision time (defaults to the current UTC time)

        Returns:
            tuple: (emitted alerts, updated window)
        """
        now = now or utc_now()
        candidates = self._candidates(assessment, reading, now)

        emitted: list[AlertRecord] = []
        seen_keys = set()
        recent_count = window.count_since(reading.patient_id, now - RATE_LIMIT_PERIOD)

        for alert in candidates:
            key = alert.dedup_key
            if key in seen_keys:
                continue
            seen_keys.add(key)

            if self._in_cooldown(alert, window, now):
                logger.info(
                    f"Suppressed duplicate alert for patient {alert.patient_id} "
                    f"({_metric_names(alert.metrics)}) within {self.policy.cooldown_seconds}s cooldown"
                )
                continue

            limit = self.policy.max_alerts_per_minute
            if (
                limit is not None
                and alert.severity != Severity.CRITICAL
                and recent_count + len(emitted) >= limit
            ):
                logger.warning(
                    f"Rate limit reached for patient {alert.patient_id} "
                    f"({limit}/min): suppressed {alert.severity.value} alert ({_metric_names(alert.metrics)})"
                )
                continue

            emitted.append(alert)

        new_window = window.extended(emitted, now, self.policy.retention)
        return emitted, new_window

    async def dispatch(
        self,
        assessment: RiskAssessment,
        reading: VitalReading,
        window: AlertWindow,
        now: Optional[datetime] = None
    ) -> tuple[list[AlertRecord], AlertWindow]:
        """Decide alerts and forward each one to the notification sink.

        Delivery failures are logged as DispatchError and do not affect the
        returned window.
        """
        alerts, new_window = self.decide(assessment, reading, window, now)
        escalated = self.is_escalated(assessment)

        for alert in alerts:
            result = await self._deliver(alert, escalated)
            if result.is_failure():
                error = DispatchError(
                    f"Failed to deliver alert {alert.id}: {result.error}",
                    alert_id=alert.id,
                    details={"patient_id": alert.patient_id},
                )
                logger.error(str(error))
            else:
                logger.info(
                    f"Dispatched {alert.severity.value} alert {alert.id} for patient "
                    f"{alert.patient_id}: {alert.title}"
                )

        return alerts, new_window

    async def _deliver(self, alert: AlertRecord, escalated: bool) -> Result[None]:
        try:
            if escalated:
                return await self.sink.send_critical_alert(alert)
            return await self.sink.send_alert(alert)
        except Exception as e:
            return Result.failure_result(e, error_type="DispatchError", error_details={"alert_id": alert.id})

    def _candidates(
        self,
        assessment: RiskAssessment,
        reading: VitalReading,
        now: datetime
    ) -> list[AlertRecord]:
        violations = assessment.violations
        if not violations:
            return []

        if self.is_escalated(assessment):
            return [AlertRecord(
                patient_id=reading.patient_id,
                title=f"Critical risk for patient {reading.patient_id}",
                message=(
                    f"Risk level {assessment.risk_level:.2f}: "
                    + "; ".join(v.message for v in violations)
                ),
                severity=Severity.CRITICAL,
                created_at=now,
                metrics=frozenset(v.metric for v in violations),
                risk_level=assessment.risk_level,
            )]

        return [
            AlertRecord(
                patient_id=reading.patient_id,
                title=f"{_metric_title(v.metric)} alert",
                message=v.message,
                severity=v.severity,
                created_at=now,
                metrics=frozenset({v.metric}),
                risk_level=assessment.risk_level,
            )
            for v in violations
        ]

    def _in_cooldown(self, alert: AlertRecord, window: AlertWindow, now: datetime) -> bool:
        cooldown = self.policy.cooldown_seconds
        if cooldown <= 0:
            return False
        previous = window.latest_for(alert.dedup_key)
        if previous is None:
            return False
        if alert.severity.rank > previous.severity.rank:
            return False
        return now - previous.created_at < timedelta(seconds=cooldown)


def _metric_title(metric: MetricKind) -> str:
    return metric.value.replace("_", " ").capitalize()


def _metric_names(metrics: frozenset[MetricKind]) -> str:
    return ", ".join(sorted(m.value for m in metrics))
