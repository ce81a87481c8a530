"""
Exceptions raised by matchsight collaborators.

Nothing here escapes the polling loop: the session engine catches these at
the tick boundary and turns them into a phase decision or a degraded snapshot.
"""


class MatchsightError(Exception):
    """Base exception for matchsight errors."""


class TransportError(MatchsightError):
    """A single request to the game client or its services failed."""

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class TransportDisconnected(TransportError):
    """The local API descriptor is gone, so no authenticated request is possible."""

    def __init__(self, message: str = "Local API descriptor is not available"):
        super().__init__(message)


class DecodeError(MatchsightError):
    """A payload from the client could not be interpreted."""
