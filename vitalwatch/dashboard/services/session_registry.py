"""Registry of live monitoring sessions, one per patient.

The HTTP layer starts, inspects and stops sessions through this registry.
Sessions are created by an injected factory so the registry holds no
knowledge of how collaborators are wired.
"""

import asyncio
import logging
from typing import Callable, Optional

from vitalwatch.domain.result import Result
from vitalwatch.domain.session import MonitoringSession, SessionSnapshot, SessionState

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], MonitoringSession]


class SessionRegistry:
    """Creates, tracks and stops monitoring sessions.

    Parameters:
        factory: Builds an INACTIVE session for a patient id
    """

    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._sessions: dict[str, MonitoringSession] = {}
        self._start_locks: dict[str, asyncio.Lock] = {}

    async def start(self, patient_id: str) -> Result[SessionSnapshot]:
        """Start monitoring a patient, or return the snapshot of the running session.

        A FAILED or STOPPED session for the patient is replaced by a new one.
        Starts for the same patient are serialized; starts for different
        patients run concurrently.
        """
        async with self._start_locks.setdefault(patient_id, asyncio.Lock()):
            existing = self._sessions.get(patient_id)
            if existing is not None and existing.state in (SessionState.ACTIVE, SessionState.INITIALIZING):
                return Result.success_result(existing.snapshot())

            session = self._factory(patient_id)
            self._sessions[patient_id] = session
            result = await session.start()

            if result.is_failure():
                # stop() may already have removed or replaced the entry
                if self._sessions.get(patient_id) is session:
                    del self._sessions[patient_id]
            else:
                logger.info(f"Monitoring started for patient {patient_id}")
            return result

    def get(self, patient_id: str) -> Optional[MonitoringSession]:
        return self._sessions.get(patient_id)

    async def stop(self, patient_id: str) -> Result[None]:
        session = self._sessions.pop(patient_id, None)
        if session is None:
            return Result.failure_result(
                f"No monitoring session for patient {patient_id}",
                error_type="SessionNotFound",
                error_details={"patient_id": patient_id},
            )
        await session.stop()
        logger.info(f"Monitoring stopped for patient {patient_id}")
        return Result.success_result(None)

    async def stop_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        await asyncio.gather(*(session.stop() for session in sessions))

    def active_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.state == SessionState.ACTIVE)

    def patient_ids(self) -> list[str]:
        return sorted(self._sessions)
