"""WebSocket endpoint for the real-time alert feed.

Clients connected to ``/ws/alerts`` receive every alert, critical alert and
system warning pushed through the WebSocket notification sink.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vitalwatch.dashboard.api.dependencies import get_runtime
from vitalwatch.dashboard.models.websocket import ConnectionMessage

router = APIRouter(tags=["websocket"])

logger = logging.getLogger(__name__)


@router.websocket("/ws/alerts")
async def websocket_alerts(websocket: WebSocket):
    """WebSocket endpoint for alert push.

    Message Types:
        - connection: Sent when connection is established
        - alert / critical_alert: Clinical alert
        - system_warning: Performance warning

    Incoming client messages are ignored; the connection stays registered
    until the client disconnects.
    """
    manager = get_runtime(websocket).connections
    await manager.connect(websocket)

    try:
        await manager.send_personal_message(
            ConnectionMessage(message="WebSocket connected. Alert feed enabled."),
            websocket,
        )
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")
    finally:
        await manager.disconnect(websocket)
