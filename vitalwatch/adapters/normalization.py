"""Payload normalization: raw device samples and broadcast payloads to VitalReading.

Upstream payloads are loosely typed dicts whose vocabulary depends on the
producer:

    - Device samples use ``temperature`` and ``glucose_level``
    - Store-shaped payloads carry ``blood_pressure`` as a "120/80" string,
      numeric values as strings, and ``recorded_date`` instead of ``timestamp``
    - Payloads produced by this service use the ``VitalReading`` field names

All of them are parsed here into a validated, frozen ``VitalReading`` so that
nothing untyped travels past the adapter boundary. Parse failures are
returned as ``Failure`` results with error_type "ValidationError"; they are
never raised into the session.
"""

import logging
import re
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from vitalwatch.domain.models import BroadcastMessage, VitalReading
from vitalwatch.domain.ports import ReadingNormalizerPort, ValidationError
from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)

VITAL_UPDATE = "vital_update"

# Source key -> VitalReading field
FIELD_ALIASES = {
    "heart_rate": "heart_rate",
    "bp_systolic": "bp_systolic",
    "blood_pressure_systolic": "bp_systolic",
    "bp_diastolic": "bp_diastolic",
    "blood_pressure_diastolic": "bp_diastolic",
    "oxygen_saturation": "oxygen_saturation",
    "spo2": "oxygen_saturation",
    "temperature": "temperature_celsius",
    "temperature_celsius": "temperature_celsius",
    "respiratory_rate": "respiratory_rate",
    "glucose": "glucose",
    "glucose_level": "glucose",
}

_BLOOD_PRESSURE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)\s*$")


def _to_number(key: str, value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Field '{key}' must be numeric, got a boolean")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ValidationError(f"Field '{key}' is not a number: {value!r}")
    raise ValidationError(f"Field '{key}' must be numeric, got {type(value).__name__}")


def _split_blood_pressure(value: Any) -> tuple[Optional[float], Optional[float]]:
    if value is None or value == "":
        return None, None
    if not isinstance(value, str):
        raise ValidationError(f"Field 'blood_pressure' must be a 'systolic/diastolic' string, got {value!r}")
    match = _BLOOD_PRESSURE.match(value)
    if match is None:
        raise ValidationError(f"Field 'blood_pressure' is not 'systolic/diastolic': {value!r}")
    return float(match.group(1)), float(match.group(2))


def build_reading_fields(patient_id: str, payload: dict) -> dict[str, Any]:
    """Translate a raw payload into ``VitalReading`` keyword arguments.

    Raises:
        ValidationError: If a field is present but cannot be parsed
    """
    if not isinstance(payload, dict):
        raise ValidationError(f"Payload must be an object, got {type(payload).__name__}")

    payload_patient = payload.get("patient_id")
    if payload_patient is not None and str(payload_patient) != patient_id:
        raise ValidationError(
            f"Payload is for patient {payload_patient}, expected {patient_id}",
            details={"patient_id": patient_id},
        )

    fields: dict[str, Any] = {"patient_id": patient_id}

    for key, target in FIELD_ALIASES.items():
        if key in payload:
            number = _to_number(key, payload[key])
            if number is not None:
                fields[target] = number

    if "blood_pressure" in payload:
        systolic, diastolic = _split_blood_pressure(payload["blood_pressure"])
        if systolic is not None:
            fields.setdefault("bp_systolic", systolic)
            fields.setdefault("bp_diastolic", diastolic)

    for key in ("id", "device_id", "notes"):
        if payload.get(key) is not None:
            fields[key] = str(payload[key])

    timestamp = payload.get("timestamp") or payload.get("recorded_date")
    if timestamp is not None:
        fields["timestamp"] = timestamp

    return fields


def parse_reading(patient_id: str, payload: dict, source: str) -> Result[VitalReading]:
    """Parse one raw payload into a validated reading.

    Parameters:
        patient_id: Patient the payload was delivered for
        payload: Raw payload
        source: Source identifier for error context (device id, topic)
    """
    details = {"patient_id": patient_id, "source": source}
    try:
        reading = VitalReading(**build_reading_fields(patient_id, payload))
    except ValidationError as e:
        return Result.failure_result(e, error_type="ValidationError", error_details={**details, **e.details})
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return Result.failure_result(
            f"Invalid reading ({fields}): {e.errors()[0]['msg']}",
            error_type="ValidationError",
            error_details=details,
        )
    return Result.success_result(reading)


class PayloadNormalizer(ReadingNormalizerPort):
    """Normalizer used by every monitoring session."""

    def from_device_sample(self, patient_id: str, sample: dict) -> Result[VitalReading]:
        source = "device"
        if isinstance(sample, dict) and sample.get("device_id"):
            source = f"device:{sample['device_id']}"
        return parse_reading(patient_id, sample, source)

    def from_broadcast(self, patient_id: str, message: BroadcastMessage) -> Result[Optional[VitalReading]]:
        if message.type != VITAL_UPDATE:
            logger.debug(f"Ignoring broadcast message {message.id} of type {message.type}")
            return Result.success_result(None)
        return parse_reading(patient_id, message.data, f"broadcast:{message.channel or ''}")


def reading_payload(reading: VitalReading) -> dict[str, Any]:
    """Serialize a reading into a ``vital_update`` payload (absent channels omitted)."""
    return reading.model_dump(mode="json", exclude_none=True)
