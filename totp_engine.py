import logging
import math
import re
import struct
import time

import pyotp

from base32_codec import Base32Codec, DecodeError
from credential import Algorithm, CredentialRecord, DIGITS_RANGE

logger = logging.getLogger(__name__)


class OTPError(ValueError):
    """A passcode cannot be computed for the given key material."""


class TOTPEngine:
    @staticmethod
    def time_counter(now: float, start_time: int, period: int) -> bytes:
        """RFC 6238 time step as an 8-byte big-endian unsigned integer."""
        if period <= 0:
            raise OTPError("period must be positive")
        counter = math.floor((now - start_time) / period)
        if counter < 0:
            raise OTPError("current time is before the credential start time")
        if counter >= 1 << 64:
            raise OTPError("time counter does not fit in 64 bits")
        return struct.pack(">Q", counter)

    @staticmethod
    def compute_totp(key: bytes, counter: bytes, algorithm: Algorithm, digits: int) -> str:
        """HMAC the counter with ``key``, truncate to 31 bits, keep ``digits`` digits."""
        if not key:
            raise OTPError("no key material")
        if len(counter) != 8:
            raise OTPError("time counter must be exactly 8 bytes")
        if not DIGITS_RANGE[0] <= digits <= DIGITS_RANGE[1]:
            raise OTPError(f"digits must be between {DIGITS_RANGE[0]} and {DIGITS_RANGE[1]}")
        try:
            otp = pyotp.OTP(Base32Codec.encode(key), digits=digits, digest=algorithm.digest)
            code = otp.generate_otp(struct.unpack(">Q", counter)[0])
        except (ValueError, TypeError) as exc:
            raise OTPError(f"HMAC computation failed: {exc}") from exc
        if len(code) != digits:
            raise OTPError(f"passcode has {len(code)} digits, expected {digits}")
        return code

    @staticmethod
    def token_age(now: float, start_time: int, period: int) -> float:
        """Fraction of the current period already elapsed, in [0, 1)."""
        age = ((now - start_time) % period) / period
        # float modulo of a tiny negative value can round up to period
        if age >= 1.0:
            return 0.0
        return age

    @staticmethod
    def generate_code(record: CredentialRecord, now: float | None = None) -> str:
        """Return the current TOTP for a stored credential."""
        if now is None:
            now = time.time()
        try:
            key = Base32Codec.decode(record.secret)
        except DecodeError as exc:
            logger.debug("Secret of credential %s does not decode", record.id)
            raise OTPError(f"cannot decode key data: {exc}") from exc
        counter = TOTPEngine.time_counter(now, record.start_time, record.period)
        return TOTPEngine.compute_totp(key, counter, record.algorithm, record.digits)

    @staticmethod
    def generate_hotp(record: CredentialRecord, counter: int) -> str:
        raise OTPError("HOTP is not supported")

    @staticmethod
    def remaining_seconds(record: CredentialRecord, now: float | None = None) -> int:
        """Return whole seconds left in the record's current window."""
        if now is None:
            now = time.time()
        return record.period - int((now - record.start_time) % record.period)

    @staticmethod
    def clean_secret(secret: str) -> str:
        """Strip spaces and uppercase the secret."""
        return re.sub(r"\s+", "", secret).upper()

    @staticmethod
    def generate_secret() -> str:
        """Generate a random base32 TOTP secret."""
        return pyotp.random_base32()
