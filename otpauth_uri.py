"""
Parsing and export of ``otpauth://`` provisioning URIs, the payload of
authenticator QR codes:

    otpauth://totp/[<issuer>:]<account>?secret=<base32>[&issuer=..][&algorithm=..][&digits=..][&period=..]
"""
import logging
from urllib.parse import parse_qsl, unquote, urlsplit

import pyotp

from credential import (
    Algorithm, CredentialRecord, DEFAULT_DIGITS, DEFAULT_PERIOD, DIGITS_RANGE, PERIOD_RANGE,
)

logger = logging.getLogger(__name__)

SCHEME = "otpauth"
OTP_TYPE = "totp"

UNPARSEABLE = "unparseable URI"
UNSUPPORTED_SCHEME = "unsupported scheme"
UNSUPPORTED_TYPE = "unsupported type"
BAD_LABEL = "bad label"
MISSING_SECRET = "missing secret"
ISSUER_MISMATCH = "issuer mismatch"
UNKNOWN_ALGORITHM = "unknown algorithm"
BAD_DIGITS = "bad digits"
DIGITS_OUT_OF_RANGE = "digits out of range"
BAD_PERIOD = "bad period"
PERIOD_OUT_OF_RANGE = "period out of range"


class ParseError(ValueError):
    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


def _parse_bounded(value: str, bounds: tuple[int, int], bad: str, out_of_range: str) -> int:
    if not value.isdecimal():
        raise ParseError(bad, f"{value!r} is not a number")
    number = int(value)
    if not bounds[0] <= number <= bounds[1]:
        raise ParseError(out_of_range, f"{number} is outside {bounds[0]}..{bounds[1]}")
    return number


def _split_label(path: str) -> tuple[str, str]:
    pieces = [piece.strip() for piece in unquote(path.lstrip("/")).split(":")]
    pieces = [piece for piece in pieces if piece]
    if len(pieces) == 2:
        return pieces[0], pieces[1]
    if len(pieces) == 1:
        return "", pieces[0]
    raise ParseError(BAD_LABEL, f"label has {len(pieces)} segments")


def parse_uri(text: str, record_id: str | None = None) -> CredentialRecord:
    """Turn decoded QR content into a transient ``CredentialRecord``.

    ``record_id`` is reused for the result so that re-scanning a code for a
    record being edited keeps its identity. Raises ``ParseError`` for every
    kind of bad input, never anything else.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError(UNPARSEABLE)
    try:
        parts = urlsplit(text.strip())
        query = parse_qsl(parts.query, keep_blank_values=True)
    except ValueError as exc:
        raise ParseError(UNPARSEABLE, str(exc)) from exc

    # urlsplit lower-cases the scheme; the raw prefix must match exactly.
    if text.strip().partition(":")[0] != SCHEME:
        raise ParseError(UNSUPPORTED_SCHEME, f"only '{SCHEME}' is supported")
    if parts.netloc != OTP_TYPE:
        raise ParseError(UNSUPPORTED_TYPE, "only TOTP is supported")

    label_issuer, account = _split_label(parts.path)
    issuer = label_issuer
    secret = ""
    algorithm = Algorithm.SHA1
    digits = DEFAULT_DIGITS
    period = DEFAULT_PERIOD

    for name, value in query:
        if name == "secret":
            secret = value
        elif name == "issuer":
            if label_issuer and label_issuer != value:
                raise ParseError(ISSUER_MISMATCH, "issuer parameter does not match the label prefix")
            issuer = value
        elif name == "algorithm":
            try:
                algorithm = Algorithm.from_tag(value)
            except ValueError:
                raise ParseError(UNKNOWN_ALGORITHM, repr(value)) from None
        elif name == "digits":
            digits = _parse_bounded(value, DIGITS_RANGE, BAD_DIGITS, DIGITS_OUT_OF_RANGE)
        elif name == "period":
            period = _parse_bounded(value, PERIOD_RANGE, BAD_PERIOD, PERIOD_OUT_OF_RANGE)
        else:
            logger.debug("Ignoring otpauth parameter %r", name)

    if not secret:
        raise ParseError(MISSING_SECRET)

    return CredentialRecord(
        issuer=issuer,
        account=account,
        secret=secret,
        algorithm=algorithm,
        period=period,
        digits=digits,
        record_id=record_id,
    )


def apply_uri(record: CredentialRecord, text: str) -> CredentialRecord:
    """Re-scan: overwrite ``record`` from a URI, keeping its id."""
    scanned = parse_uri(text, record_id=record.id)
    record.replace_fields(scanned)
    return record


def build_uri(record: CredentialRecord) -> str:
    """Export a record as an otpauth URI, the inverse of ``parse_uri``."""
    totp = pyotp.TOTP(
        record.secret,
        digits=record.digits,
        digest=record.algorithm.digest,
        interval=record.period,
    )
    return totp.provisioning_uri(name=record.account or record.label, issuer_name=record.issuer or None)
