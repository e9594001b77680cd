"""Tests for notification records, device lookup, deduplication and the store."""

import threading

import pytest

from conftest import expo_token
from src.notifications.config import (
    ALLOWED_TRANSITIONS,
    DEFAULT_NOTIFICATION_CONFIG,
    EXPO_TOKEN_PREFIX,
    NotificationConfig,
    NotificationStatus,
    TransitionResult,
)
from src.notifications.dedup import dedupe_tokens, is_eligible_token
from src.notifications.documents import InMemoryDocumentStore, join_path, split_path
from src.notifications.errors import InvalidTransition, NotFound, StoreUnavailable
from src.notifications.models import DeviceRecord, NotificationRecord, PushPayload
from src.settings import Settings


A = expo_token("aaaa")
B = expo_token("bbbb")
C = expo_token("cccc")


class TestNotificationConfig:
    """Tests for notification configuration."""

    def test_statuses(self):
        assert NotificationStatus.PENDING.value == "pending"
        assert NotificationStatus.SENDING.value == "sending"
        assert NotificationStatus.SENT.value == "sent"
        assert NotificationStatus.FAILED.value == "failed"

    def test_transition_graph(self):
        assert ALLOWED_TRANSITIONS[NotificationStatus.PENDING] == {NotificationStatus.SENDING}
        assert ALLOWED_TRANSITIONS[NotificationStatus.SENDING] == {
            NotificationStatus.SENT,
            NotificationStatus.FAILED,
        }
        assert not ALLOWED_TRANSITIONS[NotificationStatus.SENT]
        assert not ALLOWED_TRANSITIONS[NotificationStatus.FAILED]

    def test_default_config(self):
        config = DEFAULT_NOTIFICATION_CONFIG
        assert config.max_attempts == 3
        assert config.send_timeout_seconds > 0
        assert config.token_prefix == EXPO_TOKEN_PREFIX

    def test_config_from_settings(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("NOTIFY_SEND_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("NOTIFY_EXPO_ACCESS_TOKEN", "secret")
        config = NotificationConfig.from_settings(Settings())
        assert config.max_attempts == 5
        assert config.send_timeout_seconds == 2.5
        assert config.access_token == "secret"

    def test_empty_access_token_becomes_none(self):
        config = NotificationConfig.from_settings(Settings(expo_access_token=""))
        assert config.access_token is None


class TestNotificationRecord:
    """Tests for the notification record model."""

    def test_defaults(self):
        record = NotificationRecord(user_id="u1", type="new_message", sender_name="Ana", message="Hi")
        assert record.status == NotificationStatus.PENDING
        assert record.attempts == 0
        assert record.pushed is False
        assert record.sent_at is None
        assert record.notification_id

    def test_document_round_trip_keeps_camel_case_fields(self):
        record = NotificationRecord(
            user_id="u1", type="new_message", sender_name="Ana", message="Hi",
            conversation_id="c1",
        )
        doc = record.to_document()
        assert doc["senderName"] == "Ana"
        assert doc["conversationId"] == "c1"
        assert doc["status"] == "pending"

        restored = NotificationRecord.from_document("u1", record.notification_id, doc)
        assert restored == record

    def test_to_dict_accepts_snapshot_timestamps(self):
        record = NotificationRecord.from_document("u1", "n1", {
            "type": "new_message",
            "createdAt": "2026-01-05T10:00:00+00:00",
        })
        assert record.to_dict()["created_at"] == "2026-01-05T10:00:00+00:00"

    def test_push_payload(self):
        record = NotificationRecord(
            user_id="u1", type="new_message", sender_name="Ana", message="Salut",
            auction_id="a9",
        )
        message = record.to_push_payload().to_expo_message(A)
        assert message["to"] == A
        assert message["title"] == "Mesaj nou de la Ana"
        assert message["body"] == "Salut"
        assert message["data"]["notificationId"] == record.notification_id
        assert message["data"]["auctionId"] == "a9"
        assert message["data"]["conversationId"] is None

    def test_payload_fallback_text(self):
        payload = PushPayload(notification_id="n1", type="new_message", sender_name=None, message="")
        assert payload.title == "Mesaj nou"
        assert payload.body == "Ai primit un mesaj nou."


class TestDeviceRecord:
    """Tests for the device record model."""

    def test_from_document(self):
        device = DeviceRecord.from_document("u1", "d1", {"expoPushToken": A, "platform": "android"})
        assert device.device_id == "d1"
        assert device.user_id == "u1"
        assert device.push_token == A
        assert device.platform == "android"

    def test_non_string_token_is_none(self):
        device = DeviceRecord.from_document("u1", "d1", {"expoPushToken": 42})
        assert device.push_token is None

    def test_missing_token(self):
        device = DeviceRecord.from_document("u1", "d1", {})
        assert device.push_token is None
        assert device.last_seen_at is None


class TestInMemoryDocumentStore:
    """Tests for the in-memory document store."""

    def test_add_and_get(self, documents):
        doc_id = documents.add("users/u1/devices", {"expoPushToken": A})
        assert documents.get(f"users/u1/devices/{doc_id}") == {"expoPushToken": A}
        assert documents.get("users/u1/devices/missing") is None

    def test_add_to_nested_collection(self, documents):
        doc_id = documents.add("users/u1/notifications", {"status": "pending"}, doc_id="n1")
        assert doc_id == "n1"
        assert documents.get("users/u1/notifications/n1") == {"status": "pending"}
        assert documents.list("users/u1/notifications") == [("n1", {"status": "pending"})]

    def test_add_rejects_malformed_paths(self, documents):
        with pytest.raises(ValueError):
            documents.add("users//devices", {})
        with pytest.raises(ValueError):
            documents.add("users/u1/devices", {}, doc_id="a/b")

    def test_get_returns_copy(self, documents):
        documents.add("users/u1/devices", {"expoPushToken": A}, doc_id="d1")
        documents.get("users/u1/devices/d1")["expoPushToken"] = B
        assert documents.get("users/u1/devices/d1")["expoPushToken"] == A

    def test_list_keeps_storage_order(self, documents):
        documents.add("users/u1/devices", {"n": 1}, doc_id="z")
        documents.add("users/u1/devices", {"n": 2}, doc_id="a")
        documents.add("users/u2/devices", {"n": 3}, doc_id="m")
        assert [doc_id for doc_id, _ in documents.list("users/u1/devices")] == ["z", "a"]

    def test_list_ids_includes_parent_only_documents(self, documents):
        documents.add("users/u1/devices", {}, doc_id="d1")
        documents.add("users", {"name": "Ana"}, doc_id="u2")
        documents.add("users/u3/notifications", {}, doc_id="n1")
        assert documents.list_ids("users") == ["u1", "u2", "u3"]

    def test_find_in_group(self, documents):
        documents.add("users/u1/notifications", {}, doc_id="n1")
        documents.add("users/u1/devices", {}, doc_id="n2")
        assert documents.find_in_group("notifications", "n1") == "users/u1/notifications/n1"
        assert documents.find_in_group("notifications", "n2") is None

    def test_update_if(self, documents):
        documents.add("users/u1/notifications", {"status": "pending"}, doc_id="n1")
        assert documents.update_if("users/u1/notifications/n1", "status", "sent", {"x": 1}) is False
        assert documents.update_if("users/u1/notifications/n1", "status", "pending", {"x": 1}) is True
        assert documents.get("users/u1/notifications/n1")["x"] == 1
        assert documents.update_if("users/u1/notifications/nope", "status", "pending", {}) is False

    def test_unavailable_raises(self, documents):
        documents.set_available(False)
        with pytest.raises(StoreUnavailable):
            documents.list("users/u1/devices")
        documents.set_available(True)
        assert documents.list("users/u1/devices") == []

    def test_closed_store_raises(self, documents):
        documents.close()
        with pytest.raises(StoreUnavailable):
            documents.get("users/u1")

    def test_from_documents(self):
        store = InMemoryDocumentStore.from_documents({
            "users/u1/devices/d1": {"expoPushToken": A},
            "users/u1/notifications/n1": {"status": "pending"},
        })
        assert store.get("users/u1/devices/d1") == {"expoPushToken": A}
        assert store.find_in_group("notifications", "n1") is not None

    def test_from_documents_rejects_collection_path(self):
        with pytest.raises(ValueError):
            InMemoryDocumentStore.from_documents({"users/u1/devices": {}})

    def test_path_helpers(self):
        assert join_path("users", "u1", "devices") == "users/u1/devices"
        assert split_path("users/u1/devices/d1") == ("users/u1/devices", "d1")
        with pytest.raises(ValueError):
            join_path("users", "", "devices")
        with pytest.raises(ValueError):
            join_path("users", "a/b")


class TestTokenEligibility:
    """Tests for the provider token format predicate."""

    @pytest.mark.parametrize("token", [A, "ExponentPushToken[x]"])
    def test_eligible(self, token):
        assert is_eligible_token(token)

    @pytest.mark.parametrize("token", [
        None,
        "",
        "ExponentPushToken[]",
        "ExponentPushToken[abc",
        "ExpoPushToken[abc]",
        "fcm:abc",
        " ExponentPushToken[abc]",
        42,
    ])
    def test_not_eligible(self, token):
        assert not is_eligible_token(token)

    def test_custom_prefix(self):
        assert is_eligible_token("Custom[abc]", prefix="Custom[")
        assert not is_eligible_token(A, prefix="Custom[")


class TestDedupeTokens:
    """Tests for push-token deduplication."""

    def test_mixed_duplicates_and_malformed(self):
        result = dedupe_tokens([A, B, A, "", B])
        assert result.tokens == (A, B)
        assert result.total_eligible == 4
        assert result.unique_count == 2
        assert result.malformed == 1
        assert result.duplicates == {A: 1, B: 1}
        assert result.has_duplicates

    def test_device_records(self):
        devices = [
            DeviceRecord(device_id="d1", user_id="u1", push_token=B),
            DeviceRecord(device_id="d2", user_id="u1", push_token=None),
            DeviceRecord(device_id="d3", user_id="u1", push_token=A),
            DeviceRecord(device_id="d4", user_id="u1", push_token=B),
        ]
        result = dedupe_tokens(devices)
        assert result.tokens == (B, A)
        assert result.total_eligible == 3
        assert result.malformed == 1

    def test_first_occurrence_order_and_determinism(self):
        items = [C, A, C, B, A]
        first = dedupe_tokens(items)
        second = dedupe_tokens(items)
        assert first.tokens == (C, A, B)
        assert first.tokens == second.tokens

    def test_no_normalization(self):
        upper = "ExponentPushToken[AAAA]"
        result = dedupe_tokens([A, upper])
        assert result.tokens == (A, upper)
        assert not result.has_duplicates

    def test_unique_equals_eligible_without_duplicates(self):
        result = dedupe_tokens([A, B, C, None])
        assert result.unique_count == result.total_eligible == 3
        assert result.duplicates == {}

    def test_empty_input(self):
        result = dedupe_tokens([])
        assert result.tokens == ()
        assert result.total_eligible == 0
        assert result.unique_count == 0

    @pytest.mark.parametrize("items", [
        [A, A, A],
        [A, B, "bad", B, None, C],
        ["bad", "", None],
        [C, B, A, A, B, C],
    ])
    def test_unique_never_exceeds_eligible(self, items):
        result = dedupe_tokens(items)
        assert result.unique_count <= result.total_eligible
        assert (result.unique_count == result.total_eligible) == (not result.duplicates)


class TestDeviceRegistry:
    """Tests for the read-only device registry."""

    def test_list_devices(self, registry, add_device):
        add_device("u1", A, device_id="d1")
        add_device("u1", B, device_id="d2")
        add_device("u2", C, device_id="d3")

        devices = registry.list_devices("u1")
        assert [d.device_id for d in devices] == ["d1", "d2"]
        assert [d.push_token for d in devices] == [A, B]
        assert all(d.user_id == "u1" for d in devices)

    def test_unknown_user_has_no_devices(self, registry):
        assert registry.list_devices("nobody") == []

    def test_list_user_ids(self, registry, add_device):
        add_device("u1", A)
        add_device("u2", B)
        assert registry.list_user_ids() == ["u1", "u2"]

    def test_store_unavailable_propagates(self, registry, documents):
        documents.set_available(False)
        with pytest.raises(StoreUnavailable):
            registry.list_devices("u1")


class TestNotificationStore:
    """Tests for notification persistence and CAS transitions."""

    def test_create(self, notification_store, documents):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut", conversation_id="c1")
        doc = documents.get(f"users/u1/notifications/{nid}")
        assert doc["status"] == "pending"
        assert doc["attempts"] == 0
        assert doc["pushed"] is False
        assert doc["createdAt"] is not None
        assert doc["sentAt"] is None

    def test_get(self, notification_store):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        record = notification_store.get(nid)
        assert record.notification_id == nid
        assert record.user_id == "u1"
        assert record.sender_name == "Ana"
        assert record.status == NotificationStatus.PENDING

    def test_get_missing(self, notification_store):
        with pytest.raises(NotFound) as exc_info:
            notification_store.get("missing")
        assert exc_info.value.resource_id == "missing"

    def test_transition_applies(self, notification_store):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        result = notification_store.transition(
            nid, NotificationStatus.PENDING, NotificationStatus.SENDING,
        )
        assert result is TransitionResult.APPLIED
        assert notification_store.get(nid).status == NotificationStatus.SENDING

    def test_transition_writes_fields(self, notification_store):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        notification_store.transition(nid, NotificationStatus.PENDING, NotificationStatus.SENDING)
        notification_store.transition(
            nid, NotificationStatus.SENDING, NotificationStatus.FAILED,
            {"attempts": 1, "lastError": "all_targets_failed"},
        )
        record = notification_store.get(nid)
        assert record.status == NotificationStatus.FAILED
        assert record.attempts == 1
        assert record.last_error == "all_targets_failed"

    def test_transition_conflict_does_not_write(self, notification_store):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        notification_store.transition(nid, NotificationStatus.PENDING, NotificationStatus.SENDING)

        result = notification_store.transition(
            nid, NotificationStatus.PENDING, NotificationStatus.SENDING, {"attempts": 99},
        )
        assert result is TransitionResult.CONFLICT
        assert notification_store.get(nid).attempts == 0

    def test_transition_on_vanished_record_conflicts(self, notification_store, documents):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        documents.delete(f"users/u1/notifications/{nid}")
        result = notification_store.transition(
            nid, NotificationStatus.PENDING, NotificationStatus.SENDING,
        )
        assert result is TransitionResult.CONFLICT

    @pytest.mark.parametrize("expected,target", [
        (NotificationStatus.PENDING, NotificationStatus.SENT),
        (NotificationStatus.PENDING, NotificationStatus.FAILED),
        (NotificationStatus.FAILED, NotificationStatus.PENDING),
        (NotificationStatus.SENT, NotificationStatus.SENDING),
    ])
    def test_skipped_or_backward_transitions_rejected(self, notification_store, expected, target):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        with pytest.raises(InvalidTransition):
            notification_store.transition(nid, expected, target)
        assert notification_store.get(nid).status == NotificationStatus.PENDING

    def test_two_concurrent_claims(self, notification_store):
        nid = notification_store.create("u1", "new_message", "Ana", "Salut")
        barrier = threading.Barrier(2)
        results = []

        def claim():
            barrier.wait()
            results.append(notification_store.transition(
                nid, NotificationStatus.PENDING, NotificationStatus.SENDING,
            ))

        threads = [threading.Thread(target=claim) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.value for r in results) == ["applied", "conflict"]
        record = notification_store.get(nid)
        assert record.status == NotificationStatus.SENDING
        assert record.attempts == 0

    def test_list_by_status(self, notification_store):
        first = notification_store.create("u1", "new_message", "Ana", "1")
        second = notification_store.create("u1", "new_message", "Ana", "2")
        notification_store.create("u2", "new_message", "Ana", "3")
        notification_store.transition(first, NotificationStatus.PENDING, NotificationStatus.SENDING)

        pending = notification_store.list_by_status("u1", NotificationStatus.PENDING)
        assert [r.notification_id for r in pending] == [second]
