"""Push providers.

A provider sends one payload to one token and either returns a provider
message id or raises ``SendTransient`` / ``SendPermanent``.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from src.notifications.config import DEFAULT_NOTIFICATION_CONFIG, NotificationConfig
from src.notifications.errors import SendPermanent, SendTransient
from src.notifications.models import PushPayload

logger = logging.getLogger(__name__)


class PushProvider(ABC):
    """Remote ``send(token, payload)`` endpoint."""

    name: str = "provider"

    @abstractmethod
    def send(self, token: str, payload: PushPayload) -> str:
        """Send a payload to a single token. Returns the provider message id."""

    def close(self) -> None:
        """Release provider resources."""


class ExpoPushProvider(PushProvider):
    """Expo push service client over HTTP.

    Ticket errors are classified by the Expo error code: rate limiting is
    transient, everything else (DeviceNotRegistered, MessageTooBig, ...)
    is permanent for the token. HTTP 429, 5xx, network failures and
    timeouts are transient.
    """

    name = "expo"
    TRANSIENT_ERRORS = frozenset({"MessageRateExceeded"})

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config or DEFAULT_NOTIFICATION_CONFIG
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.config.send_timeout_seconds)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return headers

    def send(self, token: str, payload: PushPayload) -> str:
        message = payload.to_expo_message(token)
        try:
            resp = self._client.post(self.config.push_url, json=[message], headers=self._headers())
        except httpx.TimeoutException as e:
            raise SendTransient(token, f"Expo request timed out: {e}", "Timeout") from e
        except httpx.HTTPError as e:
            raise SendTransient(token, f"Expo request failed: {e}", type(e).__name__) from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise SendTransient(token, f"Expo returned HTTP {resp.status_code}", f"HTTP{resp.status_code}")
        if resp.status_code >= 400:
            raise SendPermanent(
                token,
                f"Expo rejected request with HTTP {resp.status_code}: {resp.text[:200]}",
                f"HTTP{resp.status_code}",
            )

        try:
            tickets = resp.json().get("data")
        except (ValueError, AttributeError) as e:
            raise SendTransient(token, f"Unreadable Expo response: {e}", "BadResponse") from e

        ticket = tickets[0] if isinstance(tickets, list) and tickets else tickets
        if not isinstance(ticket, dict):
            raise SendTransient(token, "Expo response carried no ticket", "BadResponse")

        if ticket.get("status") == "ok":
            return ticket.get("id", "")

        error_code = (ticket.get("details") or {}).get("error") or "UnknownError"
        error_message = ticket.get("message", "Expo push ticket error")
        if error_code in self.TRANSIENT_ERRORS:
            raise SendTransient(token, error_message, error_code)
        raise SendPermanent(token, error_message, error_code)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class DryRunProvider(PushProvider):
    """Accepts every send without contacting a provider.

    Used by the diagnostic tool to exercise token resolution and the state
    machine without pushing to real devices.
    """

    name = "dry-run"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: list[tuple[str, PushPayload]] = []

    def send(self, token: str, payload: PushPayload) -> str:
        with self._lock:
            self.sent.append((token, payload))
        logger.info("Dry run: would push notification %s to %s", payload.notification_id, token)
        return f"dryrun-{uuid.uuid4().hex[:12]}"
