"""Composition root for the monitoring service.

``build_runtime`` wires the adapters, the dispatcher, the performance
reporter and the session registry from configuration. Every collaborator is
constructed here and passed in explicitly; nothing is a hidden singleton.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from vitalwatch.adapters.broadcast_hub import BroadcastHub
from vitalwatch.adapters.device_gateway import InMemoryDeviceGateway
from vitalwatch.adapters.normalization import PayloadNormalizer
from vitalwatch.adapters.notifications import (
    AlertLogSink,
    FanOutNotificationSink,
    LoggingNotificationSink,
)
from vitalwatch.adapters.storage.duckdb_adapter import DuckDBPatientStore
from vitalwatch.dashboard.services.session_registry import SessionRegistry
from vitalwatch.dashboard.services.websocket_manager import ConnectionManager, WebSocketNotificationSink
from vitalwatch.domain.alerting import AlertDispatcher
from vitalwatch.domain.performance import PerformanceReporter
from vitalwatch.domain.ports import NotificationPort, SchedulerPort
from vitalwatch.domain.session import MonitoringSession
from vitalwatch.infrastructure.config_manager import MonitoringConfig
from vitalwatch.infrastructure.scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)


@dataclass
class MonitoringRuntime:
    """Everything the API needs, constructed once per application."""

    config: MonitoringConfig
    store: DuckDBPatientStore
    devices: InMemoryDeviceGateway
    broadcast: BroadcastHub
    connections: ConnectionManager
    sink: NotificationPort
    scheduler: SchedulerPort
    dispatcher: AlertDispatcher
    reporter: PerformanceReporter
    normalizer: PayloadNormalizer
    sessions: SessionRegistry

    def new_session(self, patient_id: str) -> MonitoringSession:
        return MonitoringSession(
            patient_id=patient_id,
            patient_data=self.store,
            devices=self.devices,
            broadcast=self.broadcast,
            dispatcher=self.dispatcher,
            normalizer=self.normalizer,
            scheduler=self.scheduler,
            config=self.config.session,
            performance=self.reporter,
        )

    async def startup(self) -> None:
        init_result = self.store.initialize_schema()
        if init_result.is_failure():
            logger.error(f"Patient store unavailable at startup: {init_result.error}")
        self.reporter.register_cache(self.broadcast)
        self.reporter.start()

    async def shutdown(self) -> None:
        await self.sessions.stop_all()
        self.reporter.stop()
        if isinstance(self.scheduler, AsyncioScheduler):
            await self.scheduler.shutdown()
        self.store.close()


def build_runtime(
    config: Optional[MonitoringConfig] = None,
    broadcast_history_limit: int = 1000,
    scheduler: Optional[SchedulerPort] = None,
    store: Optional[DuckDBPatientStore] = None,
) -> MonitoringRuntime:
    """Wire the monitoring service.

    Parameters:
        config: Monitoring configuration (defaults apply when omitted)
        broadcast_history_limit: Messages the broadcast hub retains after eviction
        scheduler: Scheduler for periodic work (asyncio scheduler when omitted)
        store: Patient store (DuckDB at ``config.store.db_path`` when omitted)
    """
    config = config or MonitoringConfig()
    store = store or DuckDBPatientStore(db_path=config.store.db_path)
    scheduler = scheduler or AsyncioScheduler()
    connections = ConnectionManager()

    sink = FanOutNotificationSink([
        LoggingNotificationSink(),
        AlertLogSink(store),
        WebSocketNotificationSink(connections),
    ])

    runtime = MonitoringRuntime(
        config=config,
        store=store,
        devices=InMemoryDeviceGateway(),
        broadcast=BroadcastHub(history_limit=broadcast_history_limit),
        connections=connections,
        sink=sink,
        scheduler=scheduler,
        dispatcher=AlertDispatcher(sink=sink, policy=config.alerts),
        reporter=PerformanceReporter(sink=sink, scheduler=scheduler, thresholds=config.performance),
        normalizer=PayloadNormalizer(),
        sessions=None,  # type: ignore[arg-type]
    )
    runtime.sessions = SessionRegistry(runtime.new_session)
    return runtime
