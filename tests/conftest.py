"""Pytest configuration and shared fixtures."""

import sys
import threading
import time
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.notifications.config import NotificationConfig  # noqa: E402
from src.notifications.devices import DeviceRegistry  # noqa: E402
from src.notifications.documents import InMemoryDocumentStore  # noqa: E402
from src.notifications.errors import SendPermanent, SendTransient  # noqa: E402
from src.notifications.providers import PushProvider  # noqa: E402
from src.notifications.store import NotificationStore  # noqa: E402
from src.notifications.worker import DeliveryWorker  # noqa: E402


def expo_token(name: str) -> str:
    return f"ExponentPushToken[{name}]"


class ScriptedProvider(PushProvider):
    """Push provider whose outcome per token is scripted by the test.

    Outcomes: "ok", "transient", "permanent", "slow" (sleeps past the
    worker deadline, then succeeds) or an exception instance to raise.
    """

    name = "scripted"

    def __init__(self, outcomes=None, slow_seconds: float = 1.0, delay: float = 0.0):
        self.outcomes = outcomes or {}
        self.slow_seconds = slow_seconds
        self.delay = delay
        self.calls: list[str] = []
        self.payloads = []
        self._lock = threading.Lock()

    def send(self, token, payload):
        with self._lock:
            self.calls.append(token)
            self.payloads.append(payload)
        if self.delay:
            time.sleep(self.delay)

        outcome = self.outcomes.get(token, "ok")
        if outcome == "ok":
            return f"msg-{token}"
        if outcome == "transient":
            raise SendTransient(token, "Rate limited", "MessageRateExceeded")
        if outcome == "permanent":
            raise SendPermanent(token, "Device not registered", "DeviceNotRegistered")
        if outcome == "slow":
            time.sleep(self.slow_seconds)
            return f"late-{token}"
        raise outcome


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop cached settings so env changes in one test don't leak."""
    from src.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def registry(documents):
    return DeviceRegistry(documents)


@pytest.fixture
def notification_store(documents):
    return NotificationStore(documents)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def config():
    return NotificationConfig(max_attempts=3, max_concurrent_sends=8, send_timeout_seconds=2.0)


@pytest.fixture
def worker(notification_store, registry, provider, config):
    w = DeliveryWorker(notification_store, registry, provider, config)
    yield w
    w.close()


@pytest.fixture
def add_device(documents):
    """Factory writing a device document under users/{uid}/devices."""

    def _add(user_id: str, token, device_id=None, platform="ios"):
        return documents.add(
            f"users/{user_id}/devices",
            {"userId": user_id, "expoPushToken": token, "platform": platform},
            doc_id=device_id,
        )

    return _add
