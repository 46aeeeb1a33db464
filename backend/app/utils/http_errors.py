"""
Translate engine errors into HTTP responses.

NotFound -> 404, InvalidTransition -> 409, InsufficientTeams / UnsupportedFormat
/ SchedulingWindowExhausted / bad input -> 422. The JSON detail carries the
error code, message and structured details so callers can explain the
outcome without re-querying.
"""
from fastapi import HTTPException

from app.services.errors import (
    EngineError,
    InsufficientTeamsError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingWindowExhaustedError,
    UnsupportedFormatError,
)

STATUS_BY_ERROR = {
    NotFoundError: 404,
    InvalidTransitionError: 409,
    InsufficientTeamsError: 422,
    UnsupportedFormatError: 422,
    SchedulingWindowExhaustedError: 422,
}


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, EngineError):
        status = next((code for kind, code in STATUS_BY_ERROR.items() if isinstance(exc, kind)), 400)
        return HTTPException(status_code=status, detail=exc.to_dict())
    if isinstance(exc, ValueError):
        return HTTPException(status_code=422, detail={"code": "INVALID_INPUT", "message": str(exc), "details": {}})
    raise exc
