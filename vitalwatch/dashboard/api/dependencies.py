"""Dependency injection for the monitoring API.

The runtime is built once per application by ``create_app`` and stored on
``app.state``; route handlers receive it through ``RuntimeDep``.
"""

from typing import Annotated

from fastapi import Depends
from starlette.requests import HTTPConnection

from vitalwatch.dashboard.services.runtime import MonitoringRuntime


def get_runtime(connection: HTTPConnection) -> MonitoringRuntime:
    """Get the monitoring runtime of the application serving this request.

    Works for both HTTP requests and WebSocket connections.
    """
    return connection.app.state.runtime


# Type alias for dependency injection
RuntimeDep = Annotated[MonitoringRuntime, Depends(get_runtime)]
