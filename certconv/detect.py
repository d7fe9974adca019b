# certconv/detect.py
"""File type detection by extension hints plus content sniffing."""
from __future__ import annotations

import os
from typing import Iterator, Tuple

from .errors import DetectError, InvalidInputError
from .formats import openssh
from .formats.pem import CERT_MARKER, PRIVATE_KEY_HEADER, PUBLIC_KEY_HEADER
from .models import FileType, KeyType

_EXTENSION_TYPES = {
    ".pfx": FileType.PFX,
    ".p12": FileType.PFX,
    ".pub": FileType.PUBLIC_KEY,
    ".der": FileType.DER,
    ".b64": FileType.BASE64,
    ".base64": FileType.BASE64,
}


def _lines(path: str) -> Iterator[str]:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            yield line.rstrip("\r\n")


def scan_pem_markers(path: str) -> Tuple[bool, bool]:
    """Return ``(has_cert, has_private_key)``; raises OSError if unreadable."""
    has_cert = has_key = False
    for line in _lines(path):
        if CERT_MARKER in line:
            has_cert = True
        if PRIVATE_KEY_HEADER.match(line):
            has_key = True
        if has_cert and has_key:
            break
    return has_cert, has_key


def has_public_key_marker(path: str) -> bool:
    try:
        return any(PUBLIC_KEY_HEADER.match(line.strip()) for line in _lines(path))
    except OSError:
        return False


def read_first_non_empty_line(path: str) -> str:
    for line in _lines(path):
        if line.strip():
            return line.strip()
    raise InvalidInputError(f"empty file: {path}")


def has_openssh_public_key_marker(path: str) -> bool:
    try:
        line = read_first_non_empty_line(path)
    except (OSError, InvalidInputError):
        return False
    return openssh.parse_public_key_line(line) is not None


def detect_type(path: str) -> FileType:
    """Classify ``path``.

    Extension hints win and never touch the file. ``.key`` files default to
    KEY even when unreadable so a later operation can report a better error.
    Any other unreadable file raises :class:`DetectError`.
    """
    ext = os.path.splitext(path)[1].lower()
    if ext in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[ext]

    if ext == ".key":
        try:
            has_cert, has_key = scan_pem_markers(path)
        except OSError:
            return FileType.KEY
        if has_cert and has_key:
            return FileType.COMBINED
        if not has_key and has_public_key_marker(path):
            return FileType.PUBLIC_KEY
        return FileType.KEY

    try:
        has_cert, has_key = scan_pem_markers(path)
    except OSError as e:
        raise DetectError(path, e) from e

    if has_cert and has_key:
        return FileType.COMBINED
    if has_cert:
        return FileType.CERT
    if has_key:
        return FileType.KEY
    if has_public_key_marker(path):
        return FileType.PUBLIC_KEY
    if has_openssh_public_key_marker(path):
        return FileType.PUBLIC_KEY
    return FileType.UNKNOWN


def is_der_encoded(path: str) -> bool:
    """True when the first byte is the ASN.1 SEQUENCE tag.

    Raises EOFError for an empty file.
    """
    with open(path, "rb") as f:
        first = f.read(1)
    if not first:
        raise EOFError(f"empty file: {path}")
    return first[0] == 0x30


def detect_key_type(path: str) -> KeyType:
    try:
        for line in _lines(path):
            if "RSA PRIVATE KEY" in line:
                return KeyType.RSA
            if "EC PRIVATE KEY" in line:
                return KeyType.EC
    except OSError:
        pass
    return KeyType.PKCS8


def validate_pem_cert(path: str) -> None:
    try:
        has_cert, _ = scan_pem_markers(path)
    except OSError as e:
        raise InvalidInputError(f"read certificate: {e}") from e
    if not has_cert:
        raise InvalidInputError(
            f"not a PEM certificate: {path} (expected: -----BEGIN CERTIFICATE-----)"
        )


def validate_pem_key(path: str) -> None:
    try:
        found = any(PRIVATE_KEY_HEADER.match(line) for line in _lines(path))
    except OSError as e:
        raise InvalidInputError(f"read key: {e}") from e
    if not found:
        raise InvalidInputError(f"not a PEM private key: {path}")
