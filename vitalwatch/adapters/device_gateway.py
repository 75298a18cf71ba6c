"""In-memory device gateway (DeviceStreamPort).

Keeps the registry of medical devices assigned to patients and fans raw
device samples out to per-patient telemetry subscriptions. Samples are
delivered raw; sessions normalize them.
"""

import asyncio
import logging
from typing import Any

from vitalwatch.adapters.subscription import QueueSubscription
from vitalwatch.domain.models import DeviceDescriptor
from vitalwatch.domain.ports import DeviceStreamPort, SourceError
from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)


class InMemoryDeviceGateway(DeviceStreamPort):
    """Device registry and telemetry fan-out.

    Parameters:
        connect_delay_seconds: Simulated pairing latency per device
    """

    def __init__(self, connect_delay_seconds: float = 0.0):
        self.connect_delay_seconds = connect_delay_seconds
        self._devices: dict[str, DeviceDescriptor] = {}
        self._streams: dict[str, set[QueueSubscription[dict]]] = {}

    def register_device(self, device: DeviceDescriptor) -> None:
        self._devices[device.id] = device
        logger.info(f"Registered {device.device_type.value} {device.id} for patient {device.patient_id}")

    def get_device(self, device_id: str) -> DeviceDescriptor:
        device = self._devices.get(device_id)
        if device is None:
            raise SourceError(f"Unknown device: {device_id}", source="devices")
        return device

    async def get_patient_devices(self, patient_id: str) -> list[DeviceDescriptor]:
        return [d for d in self._devices.values() if d.patient_id == patient_id]

    async def connect_to_device(self, device_id: str) -> Result[None]:
        device = self._devices.get(device_id)
        if device is None:
            return Result.failure_result(
                f"Unknown device: {device_id}",
                error_type="SourceError",
                error_details={"device_id": device_id, "source": "devices"},
            )
        if device.battery_level == 0:
            return Result.failure_result(
                f"Device {device_id} battery depleted",
                error_type="SourceError",
                error_details={"device_id": device_id, "source": "devices"},
            )

        if self.connect_delay_seconds:
            await asyncio.sleep(self.connect_delay_seconds)
        self._devices[device_id] = device.model_copy(update={"is_connected": True})
        logger.info(f"Connected to device {device_id}")
        return Result.success_result(None)

    def disconnect_device(self, device_id: str) -> None:
        device = self.get_device(device_id)
        self._devices[device_id] = device.model_copy(update={"is_connected": False})

    def get_device_data_stream(self, patient_id: str) -> QueueSubscription[dict]:
        subscription: QueueSubscription[dict] = QueueSubscription(
            on_cancel=lambda sub: self._streams.get(patient_id, set()).discard(sub)
        )
        self._streams.setdefault(patient_id, set()).add(subscription)
        return subscription

    def push_sample(self, patient_id: str, sample: dict[str, Any]) -> int:
        """Deliver a raw sample to every open stream for the patient.

        Samples naming a registered device must come from a connected device
        assigned to the patient.

        Returns:
            int: Number of streams the sample was delivered to

        Raises:
            SourceError: If the named device is unknown, disconnected or
                assigned to another patient
        """
        device_id = sample.get("device_id")
        if device_id is not None:
            device = self.get_device(str(device_id))
            if device.patient_id != patient_id:
                raise SourceError(
                    f"Device {device_id} is not assigned to patient {patient_id}",
                    source="devices",
                )
            if not device.is_connected:
                raise SourceError(f"Device {device_id} is not connected", source="devices")

        streams = list(self._streams.get(patient_id, ()))
        return sum(1 for stream in streams if stream.push(dict(sample)))
