import base64
import binascii

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

# Remainders of len % 8 that no byte string encodes to.
_IMPOSSIBLE_REMAINDERS = (1, 3, 6)


class DecodeError(ValueError):
    """Secret is not valid RFC 4648 Base32."""


class Base32Codec:
    @staticmethod
    def decode(secret: str) -> bytes:
        """Decode a Base32 secret into raw key bytes.

        Lower case is accepted. Padding may be omitted, but when present it
        has to complete the last 8-character block exactly.
        """
        normalized = secret.upper()
        body = normalized.rstrip("=")
        for pos, ch in enumerate(body):
            if ch not in ALPHABET:
                raise DecodeError(f"invalid Base32 character at position {pos + 1}")

        missing = -len(body) % 8
        given = len(normalized) - len(body)
        if given and given != missing:
            raise DecodeError("malformed Base32 padding")
        if len(body) % 8 in _IMPOSSIBLE_REMAINDERS:
            raise DecodeError("Base32 secret has an invalid length")

        try:
            return base64.b32decode(body + "=" * missing)
        except binascii.Error as exc:
            raise DecodeError(f"malformed Base32 secret: {exc}") from exc

    @staticmethod
    def encode(data: bytes) -> str:
        return base64.b32encode(data).decode("ascii")

    @staticmethod
    def is_valid(secret: str) -> bool:
        try:
            Base32Codec.decode(secret)
        except DecodeError:
            return False
        return True
