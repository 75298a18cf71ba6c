"""Shared fixtures and port fakes for the VitalWatch test suite."""

import asyncio
import inspect
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from vitalwatch.adapters.broadcast_hub import BroadcastHub
from vitalwatch.adapters.device_gateway import InMemoryDeviceGateway
from vitalwatch.adapters.normalization import PayloadNormalizer
from vitalwatch.domain.alerting import AlertDispatcher, AlertPolicy
from vitalwatch.domain.models import AlertRecord, Patient, PerformanceWarning, VitalReading
from vitalwatch.domain.ports import (
    CallbackHandle,
    NotificationPort,
    PatientDataPort,
    SchedulerPort,
    Subscription,
)
from vitalwatch.domain.result import Result
from vitalwatch.domain.session import MonitoringSession, SessionConfig

BASE_TIME = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def make_reading(patient_id: str = "P1", minutes: int = 0, **values) -> VitalReading:
    """Reading at ``BASE_TIME + minutes`` carrying only the given channels."""
    return VitalReading(patient_id=patient_id, timestamp=BASE_TIME + timedelta(minutes=minutes), **values)


class FakePatientData(PatientDataPort):
    """In-memory patient/vitals source with failure and delay injection."""

    def __init__(self):
        self.patients: dict[str, Patient] = {}
        self.vitals: dict[str, list[VitalReading]] = {}
        self.fail_patient = False
        self.fail_vitals = False
        self.delay_seconds = 0.0

    def add_patient(self, patient_id: str, name: str = "Test Patient", vitals: Optional[list] = None) -> None:
        self.patients[patient_id] = Patient(patient_id=patient_id, name=name)
        self.vitals[patient_id] = list(vitals or [])

    async def get_patient_by_id(self, patient_id: str) -> Result[Patient]:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_patient:
            return Result.failure_result("patient service unreachable", error_type="SourceError")
        patient = self.patients.get(patient_id)
        if patient is None:
            return Result.failure_result(
                f"Unknown patient: {patient_id}",
                error_type="SourceError",
                error_details={"not_found": True},
            )
        return Result.success_result(patient)

    async def get_vital_statistics(self, patient_id: str, limit: int) -> Result[list[VitalReading]]:
        if self.fail_vitals:
            return Result.failure_result("vitals query failed", error_type="SourceError")
        return Result.success_result(self.vitals.get(patient_id, [])[-limit:])


class OpenStreamSubscription(Subscription):
    """Mock stream that keeps yielding pushed items even after ``cancel()``."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.cancel_calls = 0

    @property
    def closed(self) -> bool:
        return False

    def push(self, item) -> None:
        self._queue.put_nowait(item)

    def cancel(self) -> None:
        self.cancel_calls += 1

    async def __anext__(self):
        return await self._queue.get()


class OpenStreamGateway(InMemoryDeviceGateway):
    """Device gateway whose data stream ignores cancellation."""

    def __init__(self):
        super().__init__()
        self.stream = OpenStreamSubscription()

    def get_device_data_stream(self, patient_id: str) -> OpenStreamSubscription:
        return self.stream


class RecordingSink(NotificationPort):
    """Notification sink recording every call, optionally failing."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.calls: list[tuple[str, object]] = []

    @property
    def alerts(self) -> list[AlertRecord]:
        return [item for kind, item in self.calls if kind in ("alert", "critical_alert")]

    @property
    def warnings(self) -> list[PerformanceWarning]:
        return [item for kind, item in self.calls if kind == "system_warning"]

    async def _record(self, kind: str, item) -> Result[None]:
        self.calls.append((kind, item))
        if self.raise_error:
            raise RuntimeError("sink exploded")
        if self.fail:
            return Result.failure_result("sink unavailable", error_type="DispatchError")
        return Result.success_result(None)

    async def send_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._record("alert", alert)

    async def send_critical_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._record("critical_alert", alert)

    async def send_system_warning(self, warning: PerformanceWarning) -> Result[None]:
        return await self._record("system_warning", warning)


class ManualScheduler(SchedulerPort):
    """Scheduler driven explicitly by tests through ``advance()``."""

    def __init__(self):
        self.current = 0.0
        self._entries: dict[int, list] = {}
        self._next_id = 0

    def now(self) -> float:
        return self.current

    def call_every(self, interval_seconds: float, callback) -> CallbackHandle:
        entry_id = self._next_id
        self._next_id += 1
        self._entries[entry_id] = [interval_seconds, callback, self.current + interval_seconds]
        return CallbackHandle(lambda: self._entries.pop(entry_id, None))

    @property
    def pending(self) -> int:
        return len(self._entries)

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running each callback as it falls due."""
        target = self.current + seconds
        while True:
            due = [
                (entry[2], entry_id) for entry_id, entry in self._entries.items()
                if entry[2] <= target
            ]
            if not due:
                break
            when, entry_id = min(due)
            entry = self._entries[entry_id]
            self.current = when
            entry[2] = when + entry[0]
            outcome = entry[1]()
            if inspect.isawaitable(outcome):
                await outcome
        self.current = target


async def settle(rounds: int = 5) -> None:
    """Let consumer tasks drain their queues."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def patient_data() -> FakePatientData:
    data = FakePatientData()
    data.add_patient("P1")
    return data


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def dispatcher(sink) -> AlertDispatcher:
    return AlertDispatcher(sink=sink, policy=AlertPolicy())


@pytest.fixture
def make_session(patient_data, scheduler, dispatcher):
    """Factory building a session for P1 with real in-memory adapters."""

    def _make(
        patient_id: str = "P1",
        devices: Optional[InMemoryDeviceGateway] = None,
        broadcast: Optional[BroadcastHub] = None,
        config: Optional[SessionConfig] = None,
        performance=None,
    ) -> MonitoringSession:
        return MonitoringSession(
            patient_id=patient_id,
            patient_data=patient_data,
            devices=devices or InMemoryDeviceGateway(),
            broadcast=broadcast or BroadcastHub(),
            dispatcher=dispatcher,
            normalizer=PayloadNormalizer(),
            scheduler=scheduler,
            config=config,
            performance=performance,
        )

    return _make
