"""Mapping of Result failures to HTTP errors."""

import logging

from fastapi import HTTPException

from vitalwatch.domain.result import Result

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_TYPE = {
    "SessionNotFound": 404,
    "AlertNotFound": 404,
    "ValidationError": 422,
    "SessionStateError": 409,
    "SourceError": 502,
    "DispatchError": 502,
}


def raise_for_failure(result: Result, context: str) -> None:
    """Raise an HTTPException when ``result`` is a Failure.

    A failure whose details flag ``not_found`` (unknown patient) maps to 404
    regardless of its error type; unmapped error types map to 500.

    Raises:
        HTTPException: If the result is a Failure
    """
    if not result.is_failure():
        return

    details = result.error_details or {}
    if details.get("not_found"):
        status_code = 404
    else:
        status_code = STATUS_BY_ERROR_TYPE.get(result.error_type, 500)

    log = logger.error if status_code >= 500 else logger.info
    log(f"{context} failed ({result.error_type}): {result.error}")
    raise HTTPException(
        status_code=status_code,
        detail={"error": result.error, "error_type": result.error_type},
    )
