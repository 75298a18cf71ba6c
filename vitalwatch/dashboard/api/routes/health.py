"""Health check endpoint for the monitoring API."""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter

from vitalwatch import __version__
from vitalwatch.adapters.storage.duckdb_adapter import DuckDBPatientStore
from vitalwatch.dashboard.api.dependencies import RuntimeDep
from vitalwatch.dashboard.models.health import DatabaseHealth, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


def check_database_health(store: DuckDBPatientStore) -> DatabaseHealth:
    """Check patient store connectivity.

    Parameters:
        store: Patient store instance

    Returns:
        DatabaseHealth: Store health status
    """
    start_time = time.perf_counter()
    result = store.health_check()
    if result.is_failure():
        logger.warning(f"Patient store health check failed: {result.error}")
        return DatabaseHealth(status="disconnected", response_time_ms=None)

    response_time = (time.perf_counter() - start_time) * 1000
    return DatabaseHealth(status="connected", response_time_ms=round(response_time, 2))


@router.get("/health", response_model=HealthResponse)
async def health_check(runtime: RuntimeDep) -> HealthResponse:
    """Health check endpoint.

    Reports patient store connectivity and the number of active monitoring
    sessions. A disconnected store makes the service unhealthy; a stopped
    performance reporter makes it degraded.
    """
    db_health = check_database_health(runtime.store)

    if db_health.status == "disconnected":
        overall_status = "unhealthy"
    elif not runtime.reporter.is_running:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        database=db_health,
        active_sessions=runtime.sessions.active_count(),
    )
