import logging
import threading
from typing import Callable

from credential import CredentialRecord
from secure_store import SecureStore, StoreError

logger = logging.getLogger(__name__)


class CredentialRegistry:
    """In-memory list of credentials kept in sync with a ``SecureStore``.

    Items stay in the order they were loaded or added. Listeners registered
    with ``add_listener`` are called with the registry after every change,
    including the periodic ``touch()``.
    """

    def __init__(self, store: SecureStore):
        self.store = store
        self.items: list[CredentialRecord] = []
        self.load_error: StoreError | None = None
        self._listeners: list[Callable[["CredentialRegistry"], None]] = []
        self._lock = threading.RLock()
        self.load()

    def load(self) -> None:
        try:
            self.store.open()
            records = self.store.list()
        except StoreError as exc:
            logger.error("Can't open keychain: %s", exc)
            with self._lock:
                self.load_error = exc
                self.items = []
            return
        for record in records:
            record.touch()
        with self._lock:
            self.load_error = None
            self.items = records
        logger.info("Loaded %d credential(s)", len(records))

    def reload(self) -> None:
        self.load()
        self._notify()

    def add_listener(self, callback: Callable[["CredentialRegistry"], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[["CredentialRegistry"], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ── Queries ────────────────────────────────────────────────

    def find(self, record_id: str) -> CredentialRecord | None:
        for record in self.items:
            if record.id == record_id:
                return record
        return None

    def get_all(self) -> list[CredentialRecord]:
        return list(self.items)

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(list(self.items))

    # ── Mutations ──────────────────────────────────────────────

    def save(self, record: CredentialRecord) -> None:
        """Write ``record`` to the store and add it to the list if it is new.

        A separate object carrying the id of a listed record (an edited copy)
        updates the listed one in place. Raises ``StoreError`` and leaves the
        list untouched when the store refuses the write.
        """
        # The store call may block on a keychain prompt; keep it outside the lock.
        self.store.put(record)
        with self._lock:
            existing = self.find(record.id)
            if existing is None:
                self.items.append(record)
            elif existing is not record:
                existing.replace_fields(record)
            record.touch()
        self._notify()

    def delete(self, record: CredentialRecord) -> None:
        self.store.delete(record.id)
        with self._lock:
            self.items = [item for item in self.items if item.id != record.id]
        self._notify()

    def touch(self) -> None:
        with self._lock:
            for record in self.items:
                record.touch()
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("Credential listener %r failed", callback)
