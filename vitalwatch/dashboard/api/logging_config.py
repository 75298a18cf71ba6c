"""Structured logging configuration for the monitoring service.

JSON output is meant for log shippers in production; the plain format is
for operators at a terminal. Both carry the monitoring context attached
to a record through ``extra=``:

    - request context from the HTTP middleware (request id, client, endpoint)
    - patient context from sessions and alert sinks (patient, alert,
      severity, session state)

The API process installs this through ``setup_logging`` when the default
application is created.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)

REQUEST_FIELDS = ("request_id", "client_ip", "endpoint")
PATIENT_FIELDS = ("patient_id", "alert_id", "severity", "session_state")

# Access logs duplicate the request middleware
NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "fastapi")

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(patient_tag)s%(message)s"


def patient_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Patient context attached to a record, empty fields omitted."""
    return {
        name: getattr(record, name)
        for name in PATIENT_FIELDS
        if getattr(record, name, None) is not None
    }


class PatientTagFilter(logging.Filter):
    """Adds ``patient_tag`` so the plain format can prefix patient records.

    Records without a patient get an empty tag.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = patient_context(record)
        if "patient_id" in context:
            tag = f"[patient={context['patient_id']}"
            if "alert_id" in context:
                tag += f" alert={context['alert_id']}"
            record.patient_tag = tag + "] "
        else:
            record.patient_tag = ""
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with request and patient context nested."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        request = {name: getattr(record, name) for name in REQUEST_FIELDS if hasattr(record, name)}
        if request:
            log_data["request"] = request
        patient = patient_context(record)
        if patient:
            log_data["patient"] = patient

        return json.dumps(log_data, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO") -> None:
    """Setup application logging.

    Parameters:
        use_json: Use JSON formatting (for production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if use_json:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.addFilter(PatientTagFilter())
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
