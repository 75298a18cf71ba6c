"""Dashboard Pydantic models."""

from vitalwatch.dashboard.models.health import DatabaseHealth, HealthResponse
from vitalwatch.dashboard.models.sessions import (
    DeviceSampleAccepted,
    OptimizationResponse,
    PerformanceResponse,
    SessionResponse,
    VitalReadingAccepted,
    VitalReadingInput,
)
from vitalwatch.dashboard.models.websocket import (
    AlertMessage,
    ConnectionMessage,
    SystemWarningMessage,
    WebSocketMessage,
)
