"""
Typed rejection reasons raised by the tracking engine.

All of these are local conditions the caller can recover from; the
transport layer decides how to present them.
"""

from typing import Optional


class TrackingError(Exception):
    """Base class for tracking errors. `code` is stable for transports."""

    code = "tracking_error"

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id


class InvalidCoordinates(TrackingError):
    """Latitude/longitude missing, non-numeric or out of range."""

    code = "invalid_coordinates"


class SessionNotFound(TrackingError):
    code = "session_not_found"


class SessionNotActive(TrackingError):
    """Session is terminal, or (from submit) does not exist at all."""

    code = "session_not_active"


class DuplicateSession(TrackingError):
    code = "duplicate_session"


class InvalidTransition(TrackingError):
    """Attempt to leave a terminal state."""

    code = "invalid_transition"


class ComputationError(TrackingError):
    """Distance/ETA could not be computed from the given input."""

    code = "computation_error"
