"""Dashboard module for VitalWatch.

This module provides the FastAPI backend the monitoring UI calls into:
session lifecycle, manual vital entry, alert acknowledgement, performance
reporting and a WebSocket alert feed.
"""

__version__ = "1.0.0"
