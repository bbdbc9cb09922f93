"""Tests for the in-memory credential registry."""

import threading

import pytest
from keyring.backends import fail
from keyring.errors import KeyringLocked, PasswordSetError

from credential import CredentialRecord
from credential_registry import CredentialRegistry
from otpauth_uri import apply_uri
from secure_store import SecureStore, StoreError


@pytest.fixture
def registry(store):
    return CredentialRegistry(store)


class TestLoad:
    def test_loads_existing_records_in_order(self, store, make_record):
        for name in ("first", "second", "third"):
            store.put(make_record(account=name))
        registry = CredentialRegistry(store)
        assert [r.account for r in registry] == ["first", "second", "third"]
        assert all(r.persisted for r in registry)
        assert registry.load_error is None

    def test_open_failure_starts_empty(self):
        registry = CredentialRegistry(SecureStore(backend=fail.Keyring()))
        assert len(registry) == 0
        assert isinstance(registry.load_error, StoreError)
        assert registry.load_error.kind == StoreError.UNAVAILABLE

    def test_declined_authorization_is_not_fatal(self, store, backend, make_record):
        store.put(make_record())
        backend.fail_with = KeyringLocked("user declined")
        registry = CredentialRegistry(store)
        assert len(registry) == 0
        assert registry.load_error.kind == StoreError.ACCESS_DENIED

    def test_reload_after_failure(self, store, backend, make_record):
        store.put(make_record())
        backend.fail_with = KeyringLocked("user declined")
        registry = CredentialRegistry(store)
        backend.fail_with = None
        registry.reload()
        assert len(registry) == 1
        assert registry.load_error is None


class TestSave:
    def test_save_appends_new_record(self, registry, store, make_record):
        record = make_record()
        registry.save(record)
        assert registry.get_all() == [record]
        assert record.persisted is True
        assert record.refresh == 1
        assert [r.id for r in store.list()] == [record.id]

    def test_save_existing_does_not_duplicate(self, registry, make_record):
        record = make_record()
        registry.save(record)
        record.issuer = "Changed"
        registry.save(record)
        assert len(registry) == 1
        assert record.refresh == 2

    def test_save_edited_copy_updates_listed_record(self, registry, make_record):
        record = make_record()
        registry.save(record)
        copy = CredentialRecord(record_id=record.id)
        copy.replace_fields(record)
        copy.account = "bob@example.com"
        registry.save(copy)
        assert len(registry) == 1
        assert registry.find(record.id) is record
        assert record.account == "bob@example.com"

    def test_save_keeps_insertion_order(self, registry, make_record):
        records = [make_record(account=name) for name in ("z", "a", "m")]
        for record in records:
            registry.save(record)
        registry.save(records[0])
        assert registry.get_all() == records

    def test_failed_save_leaves_collection_alone(self, registry, backend, make_record):
        backend.fail_with = PasswordSetError("denied")
        record = make_record()
        with pytest.raises(StoreError):
            registry.save(record)
        assert len(registry) == 0
        assert record.refresh == 0
        assert record.persisted is False

    def test_invalid_record_not_saved(self, registry, make_record):
        with pytest.raises(StoreError) as exc_info:
            registry.save(make_record(period=15))
        assert exc_info.value.kind == StoreError.INVALID_RECORD
        assert len(registry) == 0

    def test_rescanned_record_keeps_identity(self, registry, make_record):
        record = make_record()
        registry.save(record)
        apply_uri(record, "otpauth://totp/New:bob?secret=JBSWY3DPEHPK3PXP&period=60")
        registry.save(record)
        assert [r.id for r in registry] == [record.id]
        assert registry.find(record.id).period == 60


class TestDelete:
    def test_delete(self, registry, store, make_record):
        keep = make_record(account="keep")
        drop = make_record(account="drop")
        registry.save(keep)
        registry.save(drop)
        registry.delete(drop)
        assert registry.get_all() == [keep]
        assert [r.id for r in store.list()] == [keep.id]

    def test_delete_unknown_record(self, registry, make_record):
        registry.save(make_record())
        registry.delete(make_record())
        assert len(registry) == 1

    def test_failed_delete_keeps_record(self, registry, backend, make_record):
        record = make_record()
        registry.save(record)
        backend.fail_with = KeyringLocked("user declined")
        with pytest.raises(StoreError):
            registry.delete(record)
        assert registry.find(record.id) is record


class TestTouchAndFind:
    def test_touch_increments_every_record(self, registry, make_record):
        records = [make_record(account=name) for name in ("a", "b")]
        for record in records:
            registry.save(record)
        before = [r.refresh for r in records]
        registry.touch()
        registry.touch()
        assert [r.refresh for r in records] == [b + 2 for b in before]

    def test_touch_on_empty_registry(self, registry):
        registry.touch()
        assert len(registry) == 0

    def test_find(self, registry, make_record):
        record = make_record()
        registry.save(record)
        assert registry.find(record.id) is record
        assert registry.find("missing") is None


class TestListeners:
    def test_listeners_notified(self, registry, make_record):
        calls = []
        registry.add_listener(calls.append)
        record = make_record()
        registry.save(record)
        registry.touch()
        registry.delete(record)
        assert calls == [registry, registry, registry]

    def test_no_notification_on_failure(self, registry, backend, make_record):
        calls = []
        registry.add_listener(calls.append)
        backend.fail_with = PasswordSetError("denied")
        with pytest.raises(StoreError):
            registry.save(make_record())
        assert calls == []

    def test_remove_listener(self, registry):
        calls = []
        registry.add_listener(calls.append)
        registry.remove_listener(calls.append)
        registry.touch()
        assert calls == []

    def test_failing_listener_does_not_break_touch(self, registry, caplog):
        calls = []
        registry.add_listener(lambda _: 1 / 0)
        registry.add_listener(calls.append)
        registry.touch()
        assert calls == [registry]
        assert any(r.exc_info for r in caplog.records)


class TestBlockingKeychain:
    def test_touch_runs_while_reload_waits_on_keychain(self, registry, backend, make_record, monkeypatch):
        registry.save(make_record())
        prompting = threading.Event()
        answered = threading.Event()
        get_password = backend.get_password

        def prompt_then_read(service, username):
            prompting.set()
            answered.wait(5)
            return get_password(service, username)

        monkeypatch.setattr(backend, "get_password", prompt_then_read)
        loader = threading.Thread(target=registry.reload)
        loader.start()
        try:
            assert prompting.wait(5)
            ticker = threading.Thread(target=registry.touch)
            ticker.start()
            ticker.join(1)
            assert not ticker.is_alive()
        finally:
            answered.set()
            loader.join(5)
        assert len(registry) == 1
        assert registry.load_error is None
