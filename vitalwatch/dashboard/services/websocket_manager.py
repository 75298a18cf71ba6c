"""WebSocket connection manager and WebSocket notification sink.

``ConnectionManager`` tracks the clients connected to the alert feed and
broadcasts messages to all of them. ``WebSocketNotificationSink`` adapts it
to the NotificationPort so alerts and system warnings reach the dashboard.
"""

import asyncio
import logging
from typing import Set

from fastapi import WebSocket

from vitalwatch.dashboard.models.websocket import AlertMessage, SystemWarningMessage, WebSocketMessage
from vitalwatch.domain.models import AlertRecord, PerformanceWarning
from vitalwatch.domain.ports import NotificationPort
from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and broadcasts messages.

    Thread Safety:
        This class is designed to be used in an async context. All operations
        should be called from async functions.
    """

    def __init__(self):
        """Initialize connection manager."""
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)
        logger.info(f"WebSocket client connected. Total connections: {len(self.active_connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        async with self._lock:
            self.active_connections.discard(websocket)
        logger.info(f"WebSocket client disconnected. Total connections: {len(self.active_connections)}")

    async def send_personal_message(self, message: WebSocketMessage, websocket: WebSocket) -> None:
        """Send a message to a specific WebSocket connection.

        Raises:
            WebSocketDisconnect: If connection is closed
        """
        try:
            await websocket.send_json(message.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Error sending personal message: {str(e)}", exc_info=True)
            raise

    async def broadcast(self, message: WebSocketMessage) -> int:
        """Broadcast a message to all connected clients.

        Dead connections are removed.

        Returns:
            Number of clients that received the message
        """
        async with self._lock:
            connections = list(self.active_connections)
        if not connections:
            return 0

        payload = message.model_dump(mode="json")
        disconnected = []
        sent_count = 0

        for connection in connections:
            try:
                await connection.send_json(payload)
                sent_count += 1
            except Exception as e:
                logger.warning(f"Failed to send message to client: {str(e)}")
                disconnected.append(connection)

        if disconnected:
            async with self._lock:
                for conn in disconnected:
                    self.active_connections.discard(conn)
            logger.info(f"Removed {len(disconnected)} disconnected clients")

        return sent_count

    async def get_connection_count(self) -> int:
        async with self._lock:
            return len(self.active_connections)


class WebSocketNotificationSink(NotificationPort):
    """Pushes alerts and system warnings to every connected dashboard client.

    Having no client connected is not a delivery failure.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def send_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._push(AlertMessage(type="alert", data=alert))

    async def send_critical_alert(self, alert: AlertRecord) -> Result[None]:
        return await self._push(AlertMessage(type="critical_alert", data=alert))

    async def send_system_warning(self, warning: PerformanceWarning) -> Result[None]:
        return await self._push(SystemWarningMessage(data=warning))

    async def _push(self, message: WebSocketMessage) -> Result[None]:
        try:
            sent = await self.manager.broadcast(message)
        except Exception as e:
            logger.error(f"WebSocket broadcast failed: {str(e)}", exc_info=True)
            return Result.failure_result(e, error_type="DispatchError")
        logger.debug(f"Pushed {message.type} to {sent} client(s)")
        return Result.success_result(None)
