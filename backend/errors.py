"""Exception taxonomy shared by the core services and the HTTP boundary."""


class ClipError(Exception):
    """Base class for every expected failure; ``message`` is user-facing."""

    message = "Unexpected error"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NetworkError(ClipError):
    """Discovery send/listen or outbound peer request failure."""
    message = "Network error"
    status_code = 502


class NoActiveSession(ClipError):
    message = "No current session found"
    status_code = 400


class SessionAlreadyAwaiting(ClipError):
    message = "A device is already waiting for content"
    status_code = 409


class SessionTimeout(ClipError):
    message = "Session timed out"
    status_code = 400


class PersistenceError(ClipError):
    """Disk write failure for a relayed file, an upload or the settings file."""
    message = "Failed to save data"
    status_code = 500


class ValidationError(ClipError):
    message = "Invalid payload"
    status_code = 400


class ConfirmationTimeout(ClipError):
    message = "Confirmation timeout or error"
    status_code = 200


class UnknownConfirmation(ClipError):
    message = "Confirmation not found or already resolved"
    status_code = 404


class ClipboardUnavailable(ClipError):
    message = "Clipboard is not available on this system"
    status_code = 500


class SessionInvariantError(ClipError):
    """Raised when a held response would be completed twice."""
    message = "Relay session invariant violated"
    status_code = 500
