"""Monitoring Session Controller - Per-Patient Pipeline Lifecycle.

A ``MonitoringSession`` owns everything live about one monitored patient:
the bounded reading history, the latest risk assessment, the alert window,
the unacknowledged alerts and the two upstream subscriptions (device
telemetry and the broadcast channel).

State machine:
    INACTIVE -> INITIALIZING -> ACTIVE -> STOPPED
                     |
                     +-> FAILED (patient or vitals could not be loaded)

Processing:
    - Readings from both sources, plus manual ``submit()`` calls, are
      processed one at a time under a single ``asyncio.Lock``, in arrival
      order. No reordering by timestamp is performed.
    - Each reading is assessed against the prior history and handed to the
      dispatcher, then appended to history (oldest evicted past the limit).
    - Malformed payloads and processing errors are logged and skipped; the
      session stays ACTIVE.
    - After ``stop()`` no reading is processed or queued.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from vitalwatch.domain.alerting import AlertDispatcher, AlertWindow
from vitalwatch.domain.models import AlertRecord, BroadcastMessage, Patient, RiskAssessment, VitalReading
from vitalwatch.domain.performance import PerformanceReporter
from vitalwatch.domain.ports import (
    BroadcastPort,
    CallbackHandle,
    DeviceStreamPort,
    PatientDataPort,
    ReadingNormalizerPort,
    SchedulerPort,
    SourceError,
    Subscription,
)
from vitalwatch.domain.result import Result
from vitalwatch.domain.risk import assess

logger = logging.getLogger(__name__)

ListenerHandle = CallbackHandle


class SessionState(str, Enum):
    INACTIVE = "inactive"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    STOPPED = "stopped"
    FAILED = "failed"


class DataFreshness(str, Enum):
    """Whether live readings are still arriving for the patient."""

    OK = "ok"
    STALE = "stale"
    NO_DATA = "no_data"


class SessionConfig(BaseModel):
    """Per-session settings.

    Parameters:
        history_size: Maximum readings kept in history (oldest evicted first)
        init_timeout_seconds: Upper bound on startup (patient, vitals, devices, subscriptions)
        freshness_check_seconds: Interval of the data-freshness check
        stale_after_seconds: Silence after which data is classified STALE
        topic_template: Broadcast topic for a patient's vitals
    """

    history_size: int = Field(default=50, ge=1)
    init_timeout_seconds: float = Field(default=10.0, gt=0)
    freshness_check_seconds: float = Field(default=30.0, gt=0)
    stale_after_seconds: float = Field(default=120.0, gt=0)
    topic_template: str = Field(default="patient_vitals_{patient_id}")

    def topic_for(self, patient_id: str) -> str:
        return self.topic_template.format(patient_id=patient_id)


@dataclass(frozen=True)
class SessionUpdate:
    """What a listener receives after each processed reading."""

    patient_id: str
    reading: VitalReading
    assessment: RiskAssessment
    alerts: tuple[AlertRecord, ...]


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a session for the UI collaborator."""

    patient_id: str
    state: SessionState
    patient: Optional[Patient]
    history: tuple[VitalReading, ...]
    latest_assessment: Optional[RiskAssessment]
    unacknowledged_alerts: tuple[AlertRecord, ...]
    freshness: DataFreshness
    connected_devices: tuple[str, ...]


class MonitoringSession:
    """Live monitoring context for one patient.

    All collaborators are injected; the session creates no global state.

    Parameters:
        patient_id: Patient to monitor
        patient_data: Patient/vitals query port
        devices: Device telemetry port
        broadcast: Broadcast/update channel port
        dispatcher: Alert dispatcher (shared, stateless per patient)
        normalizer: Raw payload parser
        scheduler: Scheduler for the freshness check
        config: Session settings
        performance: Optional reporter timing reading processing
    """

    def __init__(
        self,
        patient_id: str,
        patient_data: PatientDataPort,
        devices: DeviceStreamPort,
        broadcast: BroadcastPort,
        dispatcher: AlertDispatcher,
        normalizer: ReadingNormalizerPort,
        scheduler: SchedulerPort,
        config: Optional[SessionConfig] = None,
        performance: Optional[PerformanceReporter] = None,
    ):
        self.patient_id = patient_id
        self.config = config or SessionConfig()
        self._patient_data = patient_data
        self._devices = devices
        self._broadcast = broadcast
        self._dispatcher = dispatcher
        self._normalizer = normalizer
        self._scheduler = scheduler
        self._performance = performance

        self._state = SessionState.INACTIVE
        self._lock = asyncio.Lock()
        self._patient: Optional[Patient] = None
        self._history: deque[VitalReading] = deque(maxlen=self.config.history_size)
        self._latest_assessment: Optional[RiskAssessment] = None
        self._window: AlertWindow = dispatcher.new_window()
        self._unacknowledged: dict[str, AlertRecord] = {}
        self._connected_devices: list[str] = []
        self._listeners: dict[int, Callable[[SessionUpdate], Any]] = {}
        self._next_listener_id = 0

        self._device_subscription: Optional[Subscription[dict]] = None
        self._broadcast_subscription: Optional[Subscription] = None
        self._tasks: list[asyncio.Task] = []
        self._freshness_handle: Optional[CallbackHandle] = None
        self._freshness = DataFreshness.NO_DATA
        self._last_reading_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> tuple[VitalReading, ...]:
        return tuple(self._history)

    @property
    def latest_assessment(self) -> Optional[RiskAssessment]:
        return self._latest_assessment

    @property
    def alert_window(self) -> AlertWindow:
        return self._window

    @property
    def unacknowledged_alerts(self) -> tuple[AlertRecord, ...]:
        return tuple(self._unacknowledged.values())

    @property
    def freshness(self) -> DataFreshness:
        return self._freshness

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Result[SessionSnapshot]:
        """Load the patient snapshot and open both upstream subscriptions.

        Returns:
            Result[SessionSnapshot]: Success once ACTIVE. Failure (error_type
            "SourceError") when the patient or vitals cannot be loaded within
            ``init_timeout_seconds``; the session is then FAILED.
        """
        if self._state != SessionState.INACTIVE:
            return Result.failure_result(
                f"Session for patient {self.patient_id} cannot start from state {self._state.value}",
                error_type="SessionStateError",
                error_details={"patient_id": self.patient_id, "state": self._state.value},
            )

        self._set_state(SessionState.INITIALIZING)
        try:
            result = await asyncio.wait_for(self._initialize(), timeout=self.config.init_timeout_seconds)
        except asyncio.TimeoutError:
            result = Result.failure_result(
                SourceError(
                    f"Initialization timed out after {self.config.init_timeout_seconds}s",
                    source="session",
                ),
                error_type="SourceError",
                error_details={"patient_id": self.patient_id, "source": "session"},
            )
        except Exception as e:
            logger.error(f"Unexpected error initializing session for patient {self.patient_id}: {str(e)}", exc_info=True)
            result = Result.failure_result(
                e,
                error_type="SourceError",
                error_details={"patient_id": self.patient_id, "source": "session"},
            )

        if result.is_failure():
            self._close_subscriptions()
            if self._state == SessionState.INITIALIZING:
                self._set_state(SessionState.FAILED)
            logger.error(f"Session for patient {self.patient_id} failed to start: {result.error}")
            return result

        if self._state != SessionState.INITIALIZING:
            # stop() was called while initializing
            self._close_subscriptions()
            return Result.failure_result(
                f"Session for patient {self.patient_id} was stopped during initialization",
                error_type="SessionStateError",
                error_details={"patient_id": self.patient_id},
            )

        if self._history:
            latest = self._history[-1]
            self._latest_assessment = assess(latest, list(self._history)[:-1])
            self._last_reading_at = self._scheduler.now()
            self._freshness = DataFreshness.OK

        self._set_state(SessionState.ACTIVE)
        self._tasks = [
            asyncio.create_task(self._consume_devices(), name=f"devices-{self.patient_id}"),
            asyncio.create_task(self._consume_broadcasts(), name=f"broadcast-{self.patient_id}"),
        ]
        self._freshness_handle = self._scheduler.call_every(
            self.config.freshness_check_seconds, self.check_freshness
        )
        return Result.success_result(self.snapshot())

    async def _initialize(self) -> Result[None]:
        details = {"patient_id": self.patient_id}

        patient_result = await self._patient_data.get_patient_by_id(self.patient_id)
        if patient_result.is_failure():
            return Result.failure_result(
                f"Failed to load patient {self.patient_id}: {patient_result.error}",
                error_type="SourceError",
                error_details={**patient_result.error_details, **details, "source": "patient_data"},
            )
        self._patient = patient_result.value

        vitals_result = await self._patient_data.get_vital_statistics(
            self.patient_id, self.config.history_size
        )
        if vitals_result.is_failure():
            return Result.failure_result(
                f"Failed to load vitals for patient {self.patient_id}: {vitals_result.error}",
                error_type="SourceError",
                error_details={**vitals_result.error_details, **details, "source": "patient_data"},
            )
        self._history.extend(vitals_result.value)

        await self._connect_devices()

        self._device_subscription = self._devices.get_device_data_stream(self.patient_id)
        self._broadcast_subscription = self._broadcast.subscribe(self.config.topic_for(self.patient_id))
        return Result.success_result(None)

    async def _connect_devices(self) -> None:
        try:
            devices = await self._devices.get_patient_devices(self.patient_id)
        except Exception as e:
            logger.warning(f"Could not list devices for patient {self.patient_id}: {str(e)}")
            return

        results = await asyncio.gather(
            *(self._devices.connect_to_device(device.id) for device in devices),
            return_exceptions=True,
        )
        for device, result in zip(devices, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to connect device {device.id}: {str(result)}")
            elif result.is_failure():
                logger.warning(f"Failed to connect device {device.id}: {result.error}")
            else:
                self._connected_devices.append(device.id)

    async def stop(self) -> None:
        """Stop the session.

        Marks the session STOPPED, cancels both subscriptions and the
        freshness check, waits for an in-flight reading to finish, cancels
        the consumer tasks and clears the buffers. Idempotent.
        """
        if self._state in (SessionState.STOPPED, SessionState.FAILED):
            return

        self._set_state(SessionState.STOPPED)
        self._close_subscriptions()
        if self._freshness_handle is not None:
            self._freshness_handle.cancel()
            self._freshness_handle = None

        async with self._lock:
            # An in-flight reading completes before buffers are released
            pass

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []

        self._history.clear()
        self._unacknowledged.clear()
        self._window = self._dispatcher.new_window()
        self._listeners.clear()

    def _close_subscriptions(self) -> None:
        for subscription in (self._device_subscription, self._broadcast_subscription):
            if subscription is not None:
                subscription.cancel()

    def _set_state(self, state: SessionState) -> None:
        logger.info(
            f"Session {self.patient_id}: {self._state.value} -> {state.value}",
            extra={"patient_id": self.patient_id, "session_state": state.value},
        )
        self._state = state

    # ------------------------------------------------------------------
    # Inbound readings
    # ------------------------------------------------------------------

    async def _consume_devices(self) -> None:
        await self._consume(self._device_subscription, "devices", self._parse_device_sample)

    async def _consume_broadcasts(self) -> None:
        await self._consume(self._broadcast_subscription, "broadcast", self._parse_broadcast)

    async def _consume(
        self,
        subscription: Subscription,
        source: str,
        parse: Callable[[Any], Result[Optional[VitalReading]]]
    ) -> None:
        """Feed one upstream stream into processing while the session is ACTIVE.

        A failure while receiving an item drops that item only; the loop ends
        when the stream is exhausted, closed or cancelled.
        """
        while self._state == SessionState.ACTIVE:
            try:
                item = await subscription.__anext__()
            except StopAsyncIteration:
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = SourceError(f"Stream item failed: {str(e)}", source=source)
                logger.error(f"Session {self.patient_id} ({source}): {error}; item dropped", exc_info=True)
                if subscription.closed:
                    return
                await asyncio.sleep(0)
                continue

            if self._state != SessionState.ACTIVE:
                return
            parsed = parse(item)
            if parsed.is_success() and parsed.value is not None:
                await self._process(parsed.value)

    def _parse_device_sample(self, sample: dict) -> Result[VitalReading]:
        parsed = self._normalizer.from_device_sample(self.patient_id, sample)
        if parsed.is_failure():
            logger.warning(f"Skipping malformed device sample for patient {self.patient_id}: {parsed.error}")
        return parsed

    def _parse_broadcast(self, message: BroadcastMessage) -> Result[Optional[VitalReading]]:
        parsed = self._normalizer.from_broadcast(self.patient_id, message)
        if parsed.is_failure():
            logger.warning(
                f"Skipping malformed broadcast message {message.id} for patient "
                f"{self.patient_id}: {parsed.error}"
            )
        return parsed

    async def submit(self, reading: VitalReading) -> Result[SessionUpdate]:
        """Process a manually entered reading through the same path as the streams."""
        if reading.patient_id != self.patient_id:
            return Result.failure_result(
                f"Reading for patient {reading.patient_id} submitted to session {self.patient_id}",
                error_type="ValidationError",
                error_details={"patient_id": self.patient_id},
            )
        if self._state != SessionState.ACTIVE:
            return Result.failure_result(
                f"Session for patient {self.patient_id} is not active",
                error_type="SessionStateError",
                error_details={"patient_id": self.patient_id, "state": self._state.value},
            )

        update = await self._process(reading)
        if update is None:
            return Result.failure_result(
                f"Reading {reading.id} was not processed",
                error_type="ProcessingError",
                error_details={"patient_id": self.patient_id, "reading_id": reading.id},
            )
        return Result.success_result(update)

    async def _process(self, reading: VitalReading) -> Optional[SessionUpdate]:
        async with self._lock:
            if self._state != SessionState.ACTIVE:
                logger.debug(f"Dropped reading {reading.id}: session {self.patient_id} is {self._state.value}")
                return None

            prior = list(self._history)
            try:
                if self._performance is not None:
                    with self._performance.track("session.process_reading"):
                        assessment, alerts = await self._evaluate(reading, prior)
                else:
                    assessment, alerts = await self._evaluate(reading, prior)
            except Exception as e:
                logger.error(
                    f"Failed to process reading {reading.id} for patient {self.patient_id}: {str(e)}",
                    exc_info=True,
                )
                return None

            # A reading that failed processing never enters history
            self._history.append(reading)
            self._last_reading_at = self._scheduler.now()
            self._latest_assessment = assessment
            for alert in alerts:
                self._unacknowledged[alert.id] = alert
            update = SessionUpdate(
                patient_id=self.patient_id,
                reading=reading,
                assessment=assessment,
                alerts=tuple(alerts),
            )

        self._notify(update)
        return update

    async def _evaluate(
        self,
        reading: VitalReading,
        prior: list[VitalReading]
    ) -> tuple[RiskAssessment, list[AlertRecord]]:
        assessment = assess(reading, prior)
        alerts, self._window = await self._dispatcher.dispatch(assessment, reading, self._window)
        return assessment, alerts

    # ------------------------------------------------------------------
    # UI collaborator surface
    # ------------------------------------------------------------------

    def acknowledge(self, alert_id: str) -> Result[AlertRecord]:
        """Acknowledge an alert, removing it from the unacknowledged set."""
        alert = self._unacknowledged.pop(alert_id, None)
        if alert is None:
            return Result.failure_result(
                f"No unacknowledged alert {alert_id} for patient {self.patient_id}",
                error_type="AlertNotFound",
                error_details={"patient_id": self.patient_id, "alert_id": alert_id},
            )
        logger.info(f"Alert {alert_id} acknowledged for patient {self.patient_id}")
        return Result.success_result(alert.acknowledge())

    def add_listener(self, callback: Callable[[SessionUpdate], Any]) -> ListenerHandle:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = callback
        return ListenerHandle(lambda: self._listeners.pop(listener_id, None))

    def _notify(self, update: SessionUpdate) -> None:
        for callback in list(self._listeners.values()):
            try:
                callback(update)
            except Exception as e:
                logger.error(f"Session listener failed for patient {self.patient_id}: {str(e)}", exc_info=True)

    def check_freshness(self) -> DataFreshness:
        """Classify whether live data is still arriving and log transitions."""
        if self._last_reading_at is None:
            status = DataFreshness.NO_DATA
        elif self._scheduler.now() - self._last_reading_at > self.config.stale_after_seconds:
            status = DataFreshness.STALE
        else:
            status = DataFreshness.OK

        if status != self._freshness:
            log = logger.warning if status != DataFreshness.OK else logger.info
            log(f"Session {self.patient_id}: data freshness {self._freshness.value} -> {status.value}")
            self._freshness = status
        return status

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            patient_id=self.patient_id,
            state=self._state,
            patient=self._patient,
            history=tuple(self._history),
            latest_assessment=self._latest_assessment,
            unacknowledged_alerts=tuple(self._unacknowledged.values()),
            freshness=self._freshness,
            connected_devices=tuple(self._connected_devices),
        )
