"""Patient, device and vitals ingestion endpoints.

Manually entered vitals are persisted and then published on the patient's
broadcast topic, so a running session picks them up through the same path
as any other upstream update. Raw device samples go to the device gateway.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from pydantic import ValidationError as PydanticValidationError

from vitalwatch.adapters.normalization import VITAL_UPDATE, reading_payload
from vitalwatch.dashboard.api.dependencies import RuntimeDep
from vitalwatch.dashboard.api.errors import raise_for_failure
from vitalwatch.dashboard.models.sessions import DeviceSampleAccepted, VitalReadingAccepted, VitalReadingInput
from vitalwatch.domain.models import DeviceDescriptor, Patient, VitalReading
from vitalwatch.domain.ports import SourceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patients", tags=["patients"])


@router.post("", response_model=Patient, status_code=201)
async def register_patient(patient: Patient, runtime: RuntimeDep) -> Patient:
    """Create or replace a patient record."""
    result = runtime.store.upsert_patient(patient)
    raise_for_failure(result, f"Registering patient {patient.patient_id}")
    return patient


@router.post("/{patient_id}/devices", response_model=DeviceDescriptor, status_code=201)
async def register_device(patient_id: str, device: DeviceDescriptor, runtime: RuntimeDep) -> DeviceDescriptor:
    """Assign a device to the patient in the device gateway."""
    if device.patient_id != patient_id:
        raise HTTPException(
            status_code=422,
            detail=f"Device {device.id} is assigned to patient {device.patient_id}, not {patient_id}",
        )
    runtime.devices.register_device(device)
    return device


@router.post("/{patient_id}/vitals", response_model=VitalReadingAccepted, status_code=201)
async def record_vitals(patient_id: str, entry: VitalReadingInput, runtime: RuntimeDep) -> VitalReadingAccepted:
    """Persist a manually entered reading and publish it as a ``vital_update``.

    Returns 422 for an out-of-range reading and 404 for an unknown patient.
    """
    try:
        reading = VitalReading(patient_id=patient_id, **entry.model_dump(exclude_none=True))
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    result = runtime.store.save_reading(reading)
    raise_for_failure(result, f"Saving reading for {patient_id}")

    topic = runtime.config.session.topic_for(patient_id)
    message = runtime.broadcast.publish(
        topic,
        VITAL_UPDATE,
        reading_payload(reading),
        sender_id="api",
    )
    logger.info(f"Recorded reading {reading.id} for patient {patient_id}", extra={"patient_id": patient_id})
    return VitalReadingAccepted(reading=reading, message_id=message.id, topic=topic)


@router.post("/{patient_id}/device-samples", response_model=DeviceSampleAccepted, status_code=202)
async def push_device_sample(
    patient_id: str,
    runtime: RuntimeDep,
    sample: dict[str, Any] = Body(...),
) -> DeviceSampleAccepted:
    """Push a raw device sample to the patient's open device streams.

    The sample is validated before delivery (422 when malformed). A sample
    naming an unknown, disconnected or foreign device is rejected with 409.
    """
    parsed = runtime.normalizer.from_device_sample(patient_id, sample)
    raise_for_failure(parsed, f"Validating device sample for {patient_id}")

    try:
        delivered = runtime.devices.push_sample(patient_id, sample)
    except SourceError as e:
        logger.info(f"Rejected device sample for {patient_id}: {str(e)}")
        raise HTTPException(status_code=409, detail=str(e))
    return DeviceSampleAccepted(delivered=delivered)
