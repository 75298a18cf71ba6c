"""Domain Ports - Abstract Contracts for the Monitoring Core.

This module defines the Port interfaces (abstract contracts) that Adapters must implement.
Following Hexagonal Architecture, the Domain Core defines what it needs, not how it's provided.

Clinical Safety:
    - Ports hand the core typed models only; raw device and broadcast payloads
      are parsed at the adapter boundary
    - Fallible collaborator calls return Result, so upstream failures never
      crash a monitoring session
    - Subscriptions and callbacks return explicit handles with cancel(), so a
      stopped session releases every upstream resource

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (DuckDB store, in-memory device gateway, broadcast hub,
      notification sinks) implement these ports
    - Tests substitute fakes for every port
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar, Union

from vitalwatch.domain.models import (
    AlertRecord,
    BroadcastMessage,
    DeviceDescriptor,
    Patient,
    PerformanceWarning,
    VitalReading,
)
from vitalwatch.domain.result import Result

T = TypeVar('T')


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class MonitoringError(Exception):
    """Base exception for all monitoring-related errors.

    Attributes:
        details: Additional error context (patient_id, source, etc.)
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(MonitoringError):
    """Raised when a reading payload is malformed.

    Missing channels are not an error; this covers payloads that cannot be
    parsed at all or carry physically impossible values.

    Attributes:
        source: The source the payload came from (device id, topic)
    """

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.source = source


class SourceError(MonitoringError):
    """Raised when an upstream collaborator or stream fails.

    Attributes:
        source: The collaborator that failed (patient store, device gateway, ...)
    """

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.source = source


class DispatchError(MonitoringError):
    """Raised when the notification sink fails to deliver an alert.

    Attributes:
        alert_id: The alert that could not be delivered
    """

    def __init__(self, message: str, alert_id: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.alert_id = alert_id


class ConfigurationError(MonitoringError):
    """Raised when configuration is missing or invalid."""
    pass


# ============================================================================
# Handles
# ============================================================================

class CallbackHandle:
    """Handle returned by every registration; ``cancel()`` releases it.

    Cancelling is idempotent: the release function runs at most once.
    """

    def __init__(self, release: Callable[[], Any]):
        self._release: Optional[Callable[[], Any]] = release

    @property
    def cancelled(self) -> bool:
        return self._release is None

    def cancel(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()


class Subscription(ABC, Generic[T]):
    """Async stream of items from an upstream source.

    Iterate with ``async for``; iteration ends after ``cancel()``. Cancelling
    is synchronous so a session can stop listening before it returns.
    """

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    @abstractmethod
    async def __anext__(self) -> T:
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stop delivery. Items not yet consumed are discarded."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


# ============================================================================
# Outbound Ports
# ============================================================================

class PatientDataPort(ABC):
    """Query interface onto the patient/vitals store."""

    @abstractmethod
    async def get_patient_by_id(self, patient_id: str) -> Result[Patient]:
        """Load the patient snapshot.

        Returns:
            Result[Patient]: Failure with error_type "SourceError" when the
            patient is unknown or the store is unreachable
        """
        pass

    @abstractmethod
    async def get_vital_statistics(self, patient_id: str, limit: int) -> Result[list[VitalReading]]:
        """Load the most recent ``limit`` readings for a patient, oldest first."""
        pass


class DeviceStreamPort(ABC):
    """Device telemetry collaborator.

    Raw samples are plain dicts in device vocabulary (``bp_systolic``,
    ``glucose_level``, ...); the session normalizes them through the
    normalization adapter before they enter the pipeline.
    """

    @abstractmethod
    async def get_patient_devices(self, patient_id: str) -> list[DeviceDescriptor]:
        pass

    @abstractmethod
    async def connect_to_device(self, device_id: str) -> Result[None]:
        pass

    @abstractmethod
    def get_device_data_stream(self, patient_id: str) -> Subscription[dict]:
        pass


class BroadcastPort(ABC):
    """Topic-based broadcast/update channel.

    Patient vitals are published on ``patient_vitals_{patient_id}``; messages
    with ``type == "vital_update"`` carry a reading payload.
    """

    @abstractmethod
    def subscribe(self, topic: str) -> Subscription[BroadcastMessage]:
        pass


class ReadingNormalizerPort(ABC):
    """Parses raw upstream payloads into ``VitalReading`` values.

    Failures carry error_type "ValidationError"; the session logs and skips them.
    """

    @abstractmethod
    def from_device_sample(self, patient_id: str, sample: dict) -> Result[VitalReading]:
        pass

    @abstractmethod
    def from_broadcast(self, patient_id: str, message: BroadcastMessage) -> Result[Optional[VitalReading]]:
        """Parse a broadcast message.

        Returns:
            Result: Success(None) for message types that carry no reading
        """
        pass


class NotificationPort(ABC):
    """Notification sink shared by every session.

    Implementations must be safe for concurrent use from multiple sessions.
    Delivery failures are reported as Failure results, never raised.
    """

    @abstractmethod
    async def send_alert(self, alert: AlertRecord) -> Result[None]:
        pass

    @abstractmethod
    async def send_critical_alert(self, alert: AlertRecord) -> Result[None]:
        """Distinguished delivery path for alerts whose risk level exceeds the critical threshold."""
        pass

    @abstractmethod
    async def send_system_warning(self, warning: PerformanceWarning) -> Result[None]:
        pass


class TimingSource(ABC):
    """Source of frame timings (in milliseconds) for the performance reporter."""

    @abstractmethod
    def add_timings_callback(self, callback: Callable[[list[float]], None]) -> CallbackHandle:
        pass


class EvictableCache(ABC):
    """A cache the performance reporter may trim on ``optimize()``."""

    name: str = "cache"

    @abstractmethod
    def evict(self) -> int:
        """Trim the cache to its limit and return the number of entries removed.

        Must be idempotent: a second call with no intervening writes returns 0.
        """
        pass


ScheduledCallback = Callable[[], Union[None, Awaitable[None]]]


class SchedulerPort(ABC):
    """Injectable scheduler for periodic work.

    Used by the session freshness check and the performance reporter tick so
    tests can drive time manually.
    """

    @abstractmethod
    def call_every(self, interval_seconds: float, callback: ScheduledCallback) -> CallbackHandle:
        """Run ``callback`` every ``interval_seconds`` until the handle is cancelled.

        Coroutine callbacks are awaited before the next interval starts.
        """
        pass

    @abstractmethod
    def now(self) -> float:
        """Monotonic clock in seconds."""
        pass
