import base64
import hashlib
from dataclasses import dataclass
from typing import Optional, Tuple

from ..common import b64decode_std

_ALGO_PREFIXES = ("ssh-", "ecdsa-sha2-", "sk-")


@dataclass(frozen=True)
class OpenSSHPublicKey:
    algorithm: str
    b64: str
    comment: str
    raw_line: str


def _fp_sha256(blob: bytes) -> str:
    return "SHA256:" + base64.b64encode(hashlib.sha256(blob).digest()).decode(
        "ascii"
    ).rstrip("=")


def looks_like_algo(algo: str) -> bool:
    return algo.startswith(_ALGO_PREFIXES)


def parse_public_key_line(line: str) -> Optional[OpenSSHPublicKey]:
    """Parse ``<algo> <base64> [comment]``; None when the line does not fit."""
    line = line.strip()
    parts = line.split()
    if len(parts) < 2 or not looks_like_algo(parts[0]):
        return None
    try:
        b64decode_std(parts[1])
    except ValueError:
        return None
    return OpenSSHPublicKey(
        algorithm=parts[0],
        b64=parts[1],
        comment=" ".join(parts[2:]),
        raw_line=line,
    )


def sha256_fingerprint(b64: str) -> Tuple[str, int]:
    blob = b64decode_std(b64)
    return _fp_sha256(blob), len(blob)


def render_details(pk: OpenSSHPublicKey) -> str:
    try:
        fp, size = sha256_fingerprint(pk.b64)
    except ValueError:
        fp, size = "SHA256:<unavailable>", None

    lines = ["Public key (OpenSSH)", "", f"Algorithm: {pk.algorithm}"]
    if pk.comment.strip():
        lines.append(f"Comment: {pk.comment}")
    if size is not None:
        lines.append(f"Size: {size} bytes")
    lines += [f"Fingerprint: {fp}", "", "Line:", pk.raw_line, ""]
    return "\n".join(lines)
