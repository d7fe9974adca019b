import base64
import binascii
import datetime as dt
import hashlib
from typing import Optional

# openssl prints e.g. "Jan  2 15:04:05 2026 GMT"
_OPENSSL_DATE_FMT = "%b %d %H:%M:%S %Y GMT"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def days_until(ts: dt.datetime) -> int:
    now = dt.datetime.now(dt.timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    delta = ts - now
    return int(delta.total_seconds() // 86400)


def parse_openssl_date(value: str) -> Optional[dt.datetime]:
    try:
        parsed = dt.datetime.strptime(value.strip(), _OPENSSL_DATE_FMT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=dt.timezone.utc)


def b64decode_std(payload: str) -> bytes:
    """Standard alphabet, with or without padding. Raises ValueError."""
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        pass
    if "=" in payload or len(payload) % 4 == 1:
        raise ValueError("invalid base64 payload")
    try:
        return base64.b64decode(payload + "=" * (-len(payload) % 4), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("invalid base64 payload") from e
