"""Monitoring session endpoints.

Start, inspect and stop the per-patient monitoring session, and acknowledge
its alerts.
"""

import logging

from fastapi import APIRouter, HTTPException, Response

from vitalwatch.dashboard.api.dependencies import RuntimeDep
from vitalwatch.dashboard.api.errors import raise_for_failure
from vitalwatch.dashboard.models.sessions import SessionResponse
from vitalwatch.domain.models import AlertRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("", response_model=list[str])
async def list_sessions(runtime: RuntimeDep) -> list[str]:
    """Patient ids with a registered monitoring session."""
    return runtime.sessions.patient_ids()


@router.post("/{patient_id}", response_model=SessionResponse)
async def start_session(patient_id: str, runtime: RuntimeDep) -> SessionResponse:
    """Start monitoring a patient.

    Starting an already running session returns its current snapshot.
    An unknown patient yields 404; a failing upstream source yields 502.
    """
    result = await runtime.sessions.start(patient_id)
    raise_for_failure(result, f"Starting session for {patient_id}")
    return SessionResponse.from_snapshot(result.value)


@router.get("/{patient_id}", response_model=SessionResponse)
async def get_session(patient_id: str, runtime: RuntimeDep) -> SessionResponse:
    session = runtime.sessions.get(patient_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No monitoring session for patient {patient_id}")
    session.check_freshness()
    return SessionResponse.from_snapshot(session.snapshot())


@router.delete("/{patient_id}", status_code=204)
async def stop_session(patient_id: str, runtime: RuntimeDep) -> Response:
    result = await runtime.sessions.stop(patient_id)
    raise_for_failure(result, f"Stopping session for {patient_id}")
    return Response(status_code=204)


@router.post("/{patient_id}/alerts/{alert_id}/acknowledge", response_model=AlertRecord)
async def acknowledge_alert(patient_id: str, alert_id: str, runtime: RuntimeDep) -> AlertRecord:
    """Acknowledge an alert raised by the patient's session."""
    session = runtime.sessions.get(patient_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No monitoring session for patient {patient_id}")
    result = session.acknowledge(alert_id)
    raise_for_failure(result, f"Acknowledging alert {alert_id}")
    return result.value


@router.get("/{patient_id}/alerts", response_model=list[dict])
async def get_alert_log(patient_id: str, runtime: RuntimeDep, limit: int = 100) -> list[dict]:
    """Alerts delivered for the patient, newest first, from the alert log."""
    result = runtime.store.get_alert_log(patient_id, limit=limit)
    raise_for_failure(result, f"Reading alert log for {patient_id}")
    return result.value
