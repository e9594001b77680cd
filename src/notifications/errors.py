"""Exception hierarchy for notification delivery.

Store errors are surfaced to callers. Send errors are raised by push
providers and classified per target by the delivery worker; they never
escape a delivery attempt.
"""

from typing import Optional


class NotificationError(Exception):
    """Base exception for the notification delivery subsystem."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StoreUnavailable(NotificationError):
    """Raised when the document store cannot be reached."""

    def __init__(self, message: str = "Document store unavailable"):
        super().__init__(message)


class NotFound(NotificationError):
    """Raised when a requested record does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidTransition(NotificationError):
    """Raised when a status change is not an edge of the state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Transition {current} -> {target} is not allowed")
        self.current = current
        self.target = target


class SendError(NotificationError):
    """A push provider rejected or failed a single send."""

    transient: bool = True

    def __init__(self, token: str, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.token = token
        self.error_code = error_code


class SendTransient(SendError):
    """Provider-side failure that may succeed on a later attempt."""

    transient = True


class SendPermanent(SendError):
    """Token is invalid or unregistered; never retried."""

    transient = False
