"""Shared fixtures: an in-memory keyring backend standing in for the OS keychain."""

import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from credential import Algorithm, CredentialRecord
from secure_store import SecureStore

# "12345678901234567890", the RFC 6238 SHA1 test key
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


class MemoryKeyring(KeyringBackend):
    """Keyring backend kept in a dict, with optional failure injection.

    Set ``fail_with`` to an exception instance; ``fail_ops`` limits it to
    some of "get", "set" and "delete", ``fail_users`` to some usernames.
    """

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}
        self.fail_with = None
        self.fail_ops = None
        self.fail_users = None

    def _check(self, op, username):
        if self.fail_with is None:
            return
        if self.fail_ops is not None and op not in self.fail_ops:
            return
        if self.fail_users is not None and username not in self.fail_users:
            return
        raise self.fail_with

    def get_password(self, service, username):
        self._check("get", username)
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        self._check("set", username)
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        self._check("delete", username)
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found") from None


@pytest.fixture
def backend():
    return MemoryKeyring()


@pytest.fixture
def store(backend):
    return SecureStore(backend=backend, service_name="keychain-otp-test")


@pytest.fixture
def make_record():
    def _make(issuer="Example", account="alice@example.com", secret=RFC_SECRET, **kwargs):
        kwargs.setdefault("algorithm", Algorithm.SHA1)
        return CredentialRecord(issuer=issuer, account=account, secret=secret, **kwargs)
    return _make
