import hashlib
import json
import logging
import uuid
from enum import Enum

from base32_codec import Base32Codec, DecodeError

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = 30
DEFAULT_DIGITS = 6
PERIOD_RANGE = (30, 60)
DIGITS_RANGE = (6, 8)


class Algorithm(str, Enum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def digest(self):
        """hashlib constructor used for the HMAC."""
        return {
            Algorithm.SHA1: hashlib.sha1,
            Algorithm.SHA256: hashlib.sha256,
            Algorithm.SHA512: hashlib.sha512,
        }[self]

    @classmethod
    def from_tag(cls, tag: str) -> "Algorithm":
        """Strict lookup by tag. Raises ValueError for anything unknown."""
        for algorithm in cls:
            if algorithm.value == tag:
                return algorithm
        raise ValueError(f"unknown algorithm {tag!r}")


class CredentialRecord:
    """One TOTP credential.

    ``id`` never changes once the record exists. ``secret`` is only checked
    by ``validate()`` so that a half-edited record can live in memory.
    """

    def __init__(self, issuer: str = "", account: str = "", secret: str = "",
                 algorithm: Algorithm = Algorithm.SHA1, start_time: int = 0,
                 period: int = DEFAULT_PERIOD, digits: int = DEFAULT_DIGITS,
                 record_id: str | None = None, persisted: bool = False):
        self._id = record_id or str(uuid.uuid4())
        self.issuer = issuer
        self.account = account
        self.secret = secret
        self.algorithm = algorithm
        self.start_time = start_time
        self.period = period
        self.digits = digits
        self.refresh = 0
        self._persisted = persisted

    @property
    def id(self) -> str:
        return self._id

    @property
    def persisted(self) -> bool:
        return self._persisted

    @property
    def label(self) -> str:
        if self.issuer and self.account:
            return f"{self.issuer} ({self.account})"
        return self.issuer or self.account or self._id

    def __repr__(self):
        return (f"CredentialRecord(id={self._id!r}, issuer={self.issuer!r}, "
                f"account={self.account!r}, algorithm={self.algorithm.value}, "
                f"period={self.period}, digits={self.digits})")

    def mark_persisted(self) -> None:
        self._persisted = True

    def touch(self) -> None:
        self.refresh += 1

    def validate(self) -> None:
        if not PERIOD_RANGE[0] <= self.period <= PERIOD_RANGE[1]:
            raise ValueError(f"period must be between {PERIOD_RANGE[0]} and {PERIOD_RANGE[1]} seconds")
        if not DIGITS_RANGE[0] <= self.digits <= DIGITS_RANGE[1]:
            raise ValueError(f"digits must be between {DIGITS_RANGE[0]} and {DIGITS_RANGE[1]}")
        if not self.secret:
            raise ValueError("secret is empty")
        try:
            Base32Codec.decode(self.secret)
        except DecodeError as exc:
            raise ValueError(f"secret is not valid Base32 ({exc})") from exc

    def replace_fields(self, other: "CredentialRecord") -> None:
        """Take every field of ``other`` except the identity (QR re-scan)."""
        self.issuer = other.issuer
        self.account = other.account
        self.secret = other.secret
        self.algorithm = other.algorithm
        self.start_time = other.start_time
        self.period = other.period
        self.digits = other.digits
        self.touch()

    # ── Serialization ──────────────────────────────────────────

    def to_payload(self) -> str:
        return json.dumps({
            "id": self._id,
            "issuer": self.issuer,
            "account": self.account,
            "secret": self.secret,
            "alg": self.algorithm.value,
            "startTime": self.start_time,
            "period": self.period,
            "digits": self.digits,
        })

    @classmethod
    def from_payload(cls, payload: str) -> "CredentialRecord":
        """Restore a stored record. Raises ValueError on a malformed document."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(f"payload is not JSON: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise ValueError("payload is not a JSON object")
        if not isinstance(data.get("id"), str) or not data["id"]:
            raise ValueError("payload has no id")

        for key in ("issuer", "account", "secret"):
            if not isinstance(data.get(key, ""), str):
                raise ValueError(f"payload field {key!r} is not a string")
        for key in ("startTime", "period", "digits"):
            value = data.get(key, 0)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"payload field {key!r} is not an integer")

        period = data.get("period", DEFAULT_PERIOD)
        digits = data.get("digits", DEFAULT_DIGITS)
        if not PERIOD_RANGE[0] <= period <= PERIOD_RANGE[1]:
            raise ValueError(f"stored period {period} is outside {PERIOD_RANGE[0]}..{PERIOD_RANGE[1]}")
        if not DIGITS_RANGE[0] <= digits <= DIGITS_RANGE[1]:
            raise ValueError(f"stored digits {digits} is outside {DIGITS_RANGE[0]}..{DIGITS_RANGE[1]}")

        issuer = data.get("issuer", "")
        account = data.get("account", "")
        tag = data.get("alg", Algorithm.SHA1.value)
        try:
            algorithm = Algorithm.from_tag(tag)
        except ValueError:
            logger.warning("Account '%s' from '%s': unknown algorithm %r. Defaulting to SHA1.",
                           account, issuer, tag)
            algorithm = Algorithm.SHA1

        return cls(
            issuer=issuer,
            account=account,
            secret=data.get("secret", ""),
            algorithm=algorithm,
            start_time=data.get("startTime", 0),
            period=period,
            digits=digits,
            record_id=data["id"],
            persisted=True,
        )
