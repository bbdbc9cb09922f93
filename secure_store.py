"""
Credential persistence in the operating-system keyring.

Every record is one keyring entry (service ``SERVICE_NAME``, username = record
id, password = JSON payload). Keyring backends cannot enumerate their
entries, so the ids are also kept in an index entry under ``INDEX_KEY``.
A payload is written before its id is indexed and unindexed before it is
removed, so ``list()`` never returns a half-written record.

Any call may block while the backend asks the user to unlock the keychain.
"""
from __future__ import annotations

import json
import logging
import threading

import keyring
from keyring.errors import (
    InitError, KeyringError, KeyringLocked, NoKeyringError, PasswordDeleteError,
)

from credential import CredentialRecord

logger = logging.getLogger(__name__)

SERVICE_NAME = "keychain-otp"
INDEX_KEY = "__index__"


class StoreError(Exception):
    UNAVAILABLE = "unavailable"
    ACCESS_DENIED = "access denied"
    SERIALIZATION = "serialization"
    INVALID_RECORD = "invalid record"
    FAILURE = "failure"

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Keychain {kind}: {reason}")


class SecureStore:
    def __init__(self, backend=None, service_name: str = SERVICE_NAME):
        self.service_name = service_name
        self._backend = backend
        self._lock = threading.RLock()

    @property
    def backend(self):
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    # ── Public API ─────────────────────────────────────────────

    def open(self) -> None:
        """Check that the keyring is reachable and the index is readable."""
        with self._lock:
            ids = self._read_index()
        logger.info("Opened keyring %s (%s), %d credential(s) indexed",
                    self.service_name, type(self.backend).__name__, len(ids))

    def list(self) -> list[CredentialRecord]:
        records = []
        with self._lock:
            for record_id in self._read_index():
                try:
                    payload = self._call("read credential", self.backend.get_password,
                                         self.service_name, record_id)
                except StoreError as exc:
                    if exc.kind != StoreError.FAILURE:
                        raise
                    logger.warning("Can't read keyring item %s: %s", record_id, exc.reason)
                    continue
                if payload is None:
                    logger.warning("Keyring item %s is indexed but missing", record_id)
                    continue
                try:
                    record = CredentialRecord.from_payload(payload)
                except ValueError as exc:
                    logger.warning("Can't restore credential %s from stored data: %s", record_id, exc)
                    continue
                if record.id != record_id:
                    logger.warning("Keyring item %s holds credential %s, skipped", record_id, record.id)
                    continue
                records.append(record)
        return records

    def put(self, record: CredentialRecord) -> None:
        """Insert or update ``record`` under its id."""
        try:
            record.validate()
        except ValueError as exc:
            raise StoreError(StoreError.INVALID_RECORD, f"credential {record.id}: {exc}") from exc
        try:
            payload = record.to_payload()
        except (TypeError, ValueError) as exc:
            raise StoreError(StoreError.SERIALIZATION,
                             f"credential {record.id} cannot be serialized") from exc

        with self._lock:
            ids = self._read_index()
            self._call("write credential", self.backend.set_password,
                       self.service_name, record.id, payload)
            if record.id not in ids:
                try:
                    self._write_index(ids + [record.id])
                except StoreError:
                    self._discard_payload(record.id)
                    raise
        record.mark_persisted()
        logger.info("Saved credential %s", record.id)

    def delete(self, record_id: str) -> None:
        """Remove a credential. Deleting an unknown id succeeds."""
        with self._lock:
            ids = self._read_index()
            indexed = record_id in ids
            if indexed:
                self._write_index([i for i in ids if i != record_id])
            try:
                self._remove_payload(record_id)
            except StoreError:
                if indexed:
                    self._restore_index(ids)
                raise
        logger.info("Deleted credential %s", record_id)

    # ── Internal ───────────────────────────────────────────────

    @staticmethod
    def _translate(action: str, exc: Exception) -> StoreError:
        if isinstance(exc, KeyringLocked):
            return StoreError(StoreError.ACCESS_DENIED, f"can't {action}: keyring is locked or access was declined")
        if isinstance(exc, (NoKeyringError, InitError)):
            return StoreError(StoreError.UNAVAILABLE, f"can't {action}: {exc}")
        return StoreError(StoreError.FAILURE, f"can't {action}: {exc}")

    def _call(self, action: str, func, *args):
        try:
            return func(*args)
        except (KeyringError, RuntimeError) as exc:
            raise self._translate(action, exc) from exc

    def _read_index(self) -> list[str]:
        raw = self._call("read credential index", self.backend.get_password,
                         self.service_name, INDEX_KEY)
        if raw is None:
            return []
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(StoreError.SERIALIZATION, "credential index is corrupted") from exc
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise StoreError(StoreError.SERIALIZATION, "credential index is corrupted")
        return ids

    def _write_index(self, ids: list[str]) -> None:
        self._call("write credential index", self.backend.set_password,
                   self.service_name, INDEX_KEY, json.dumps(ids))

    def _remove_payload(self, record_id: str) -> None:
        try:
            self.backend.delete_password(self.service_name, record_id)
        except PasswordDeleteError as exc:
            still_there = self._call("read credential", self.backend.get_password,
                                     self.service_name, record_id)
            if still_there is not None:
                raise StoreError(StoreError.FAILURE,
                                 f"can't delete credential {record_id}: {exc}") from exc
            logger.debug("Credential %s was not in the keyring", record_id)
        except (KeyringError, RuntimeError) as exc:
            raise self._translate(f"delete credential {record_id}", exc) from exc

    def _restore_index(self, ids: list[str]) -> None:
        try:
            self._write_index(ids)
        except StoreError as exc:
            logger.warning("Can't restore credential index after a failed delete: %s", exc.reason)

    def _discard_payload(self, record_id: str) -> None:
        try:
            self.backend.delete_password(self.service_name, record_id)
        except KeyringError as exc:
            logger.warning("Can't roll back unindexed credential %s: %s", record_id, exc)
