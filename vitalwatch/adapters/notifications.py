"""Notification sinks (NotificationPort).

Every session shares one sink, so each adapter guards its internal state
with a lock and reports delivery problems as Failure results.

    - LoggingNotificationSink: writes alerts to the log and keeps the most
      recent deliveries in memory
    - AlertLogSink: appends alerts to the DuckDB alert log
    - FanOutNotificationSink: delivers to several sinks, failing when any fails
"""

import asyncio
import logging
from collections import deque
from typing import Sequence, Union

from vitalwatch.adapters.storage.duckdb_adapter import DuckDBPatientStore
from vitalwatch.domain.models import AlertRecord, PerformanceWarning, Severity
from vitalwatch.domain.ports import NotificationPort
from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)

Notification = Union[AlertRecord, PerformanceWarning]


def alert_context(alert: AlertRecord) -> dict:
    return {"patient_id": alert.patient_id, "alert_id": alert.id, "severity": alert.severity.value}


class LoggingNotificationSink(NotificationPort):
    """Sink that logs every notification and remembers the latest ones.

    Parameters:
        history_size: Deliveries kept for inspection
    """

    def __init__(self, history_size: int = 200):
        self._lock = asyncio.Lock()
        self._delivered: deque[tuple[str, Notification]] = deque(maxlen=history_size)

    async def send_alert(self, alert: AlertRecord) -> Result[None]:
        log = logger.warning if alert.severity == Severity.CRITICAL else logger.info
        log(
            f"ALERT [{alert.severity.value}] patient={alert.patient_id} {alert.title}: {alert.message}",
            extra=alert_context(alert),
        )
        await self._remember("alert", alert)
        return Result.success_result(None)

    async def send_critical_alert(self, alert: AlertRecord) -> Result[None]:
        logger.critical(
            f"CRITICAL ALERT patient={alert.patient_id} risk={alert.risk_level} {alert.title}: {alert.message}",
            extra=alert_context(alert),
        )
        await self._remember("critical_alert", alert)
        return Result.success_result(None)

    async def send_system_warning(self, warning: PerformanceWarning) -> Result[None]:
        logger.warning(f"SYSTEM WARNING [{warning.rule}] {warning.message}")
        await self._remember("system_warning", warning)
        return Result.success_result(None)

    async def _remember(self, kind: str, item: Notification) -> None:
        async with self._lock:
            self._delivered.append((kind, item))

    async def recent(self) -> list[tuple[str, Notification]]:
        async with self._lock:
            return list(self._delivered)


class AlertLogSink(NotificationPort):
    """Sink that appends clinical alerts to the DuckDB alert log.

    System warnings are not clinical records and are acknowledged without
    being stored.
    """

    def __init__(self, store: DuckDBPatientStore):
        self.store = store

    async def send_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._log(alert)

    async def send_critical_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._log(alert)

    async def _log(self, alert: AlertRecord) -> Result[None]:
        # DuckDB writes block; keep them off the event loop
        result = await asyncio.to_thread(self.store.log_alert, alert)
        return result.map(lambda _: None)

    async def send_system_warning(self, warning: PerformanceWarning) -> Result[None]:
        return Result.success_result(None)


class FanOutNotificationSink(NotificationPort):
    """Delivers every notification to all wrapped sinks concurrently.

    A failing sink does not prevent delivery to the others; the combined
    result is a Failure listing every sink that failed.
    """

    def __init__(self, sinks: Sequence[NotificationPort]):
        self.sinks = list(sinks)

    async def send_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._fan_out("send_alert", alert)

    async def send_critical_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._fan_out("send_critical_alert", alert)

    async def send_system_warning(self, warning: PerformanceWarning) -> Result[None]:
        return await self._fan_out("send_system_warning", warning)

    async def _fan_out(self, method: str, item: Notification) -> Result[None]:
        outcomes = await asyncio.gather(
            *(getattr(sink, method)(item) for sink in self.sinks),
            return_exceptions=True,
        )

        errors = []
        for sink, outcome in zip(self.sinks, outcomes):
            name = type(sink).__name__
            if isinstance(outcome, BaseException):
                errors.append(f"{name}: {outcome}")
            elif outcome.is_failure():
                errors.append(f"{name}: {outcome.error}")

        if errors:
            return Result.failure_result(
                "; ".join(errors),
                error_type="DispatchError",
                error_details={"item_id": item.id, "failed_sinks": len(errors)},
            )
        return Result.success_result(None)
