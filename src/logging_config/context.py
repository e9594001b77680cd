"""Delivery Log Context.

Binds the notification and user being processed to every log entry
emitted inside the context, using contextvars so concurrent deliveries
on different threads keep separate values.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


_notification_id_var: ContextVar[str] = ContextVar("notification_id", default="")
_user_id_var: ContextVar[str] = ContextVar("user_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def get_notification_id() -> str:
    """Get the notification id bound to the current context."""
    return _notification_id_var.get()


def get_user_id() -> str:
    """Get the user id bound to the current context."""
    return _user_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    notification_id = _notification_id_var.get()
    if notification_id:
        ctx["notification_id"] = notification_id
    user_id = _user_id_var.get()
    if user_id:
        ctx["user_id"] = user_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class LogContext:
    """Context manager binding delivery identifiers to log entries.

    Restores the previous values on exit, so contexts nest.

    Example:
        with LogContext(notification_id="n1", user_id="u1"):
            logger.info("claimed")  # includes notification_id, user_id
    """

    notification_id: str = ""
    user_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _tokens: list = field(default_factory=list, repr=False)

    def __enter__(self) -> "LogContext":
        self._tokens = [
            (_notification_id_var, _notification_id_var.set(self.notification_id)),
            (_user_id_var, _user_id_var.set(self.user_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
