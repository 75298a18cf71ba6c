"""WebSocket message models for the alert feed.

This module defines Pydantic models for messages pushed to dashboard clients
connected to the alert WebSocket.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from vitalwatch.domain.models import AlertRecord, PerformanceWarning


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketMessage(BaseModel):
    """Base WebSocket message model."""

    type: str = Field(..., description="Message type identifier")
    timestamp: datetime = Field(default_factory=_now, description="Message timestamp")


class ConnectionMessage(WebSocketMessage):
    """Message sent when WebSocket connection is established."""

    type: Literal["connection"] = "connection"
    message: str = Field(..., description="Connection status message")
    server_time: datetime = Field(default_factory=_now, description="Server timestamp")


class AlertMessage(WebSocketMessage):
    """Clinical alert pushed to clients."""

    type: Literal["alert", "critical_alert"] = "alert"
    data: AlertRecord = Field(..., description="Alert record")


class SystemWarningMessage(WebSocketMessage):
    """Performance warning pushed to clients."""

    type: Literal["system_warning"] = "system_warning"
    data: PerformanceWarning = Field(..., description="Performance warning")
