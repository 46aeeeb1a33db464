"""
Engine error kinds.

Scheduling conflicts are not errors: they come back as ScheduleConflict
records next to the write and never abort it.
"""
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base exception for bracket and schedule engine errors"""

    code = "ENGINE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(EngineError):
    """Tournament or match reference does not resolve"""

    code = "NOT_FOUND"


class InsufficientTeamsError(EngineError):
    """Fewer eligible teams than the minimum viable bracket size"""

    code = "INSUFFICIENT_TEAMS"


class InvalidTransitionError(EngineError):
    """Operation not permitted in the current tournament or match state"""

    code = "INVALID_TRANSITION"


class SchedulingWindowExhaustedError(EngineError):
    """Unplaced matches remain after exhausting the date/time window"""

    code = "SCHEDULING_WINDOW_EXHAUSTED"


class UnsupportedFormatError(EngineError):
    """Bracket generation is not available for the requested format"""

    code = "UNSUPPORTED_FORMAT"
