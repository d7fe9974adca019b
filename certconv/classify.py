# certconv/classify.py
"""Turn openssl failure text into typed errors.

openssl has no structured error output, so this is substring matching on
stderr. Everything above this module branches on ``ErrorKind`` only.
"""
from __future__ import annotations

from .errors import CertconvError, ErrorKind, NotRSAError, PFXError, ToolError
from .executor import ToolResult

LEGACY_FINGERPRINTS = (
    "inner_evp_generic_fetch:unsupported",
    "inner_evp_generic_fetch:unsup",
)


def is_legacy_provider_error(stderr: str) -> bool:
    lower = stderr.lower()
    return any(fp in lower for fp in LEGACY_FINGERPRINTS)


def _is_incorrect_password(lower: str) -> bool:
    return (
        "mac verify failure" in lower
        or "mac verify error" in lower
        or "invalid password" in lower
        or "bad decrypt" in lower
        or ("password" in lower and "incorrect" in lower)
    )


def _is_not_pkcs12(lower: str) -> bool:
    if "expecting an asn1 sequence" in lower or "not a pkcs12" in lower or "not a pkcs#12" in lower:
        return True
    # generic ASN.1 decode errors for non-PKCS12 input
    return "asn1" in lower and (
        "wrong tag" in lower
        or "nested asn1 error" in lower
        or "not enough data" in lower
        or "type=pkcs12" in lower
    )


def prefer_stderr(result: ToolResult, context: str = "") -> ToolError:
    """Residual error whose message is stderr, never a bare exit status."""
    msg = result.stderr_text or f"exit status {result.returncode}"
    if context:
        msg = f"{context}: {msg}"
    return ToolError(msg, stderr=result.stderr_text, returncode=result.returncode)


def classify_pfx_error(result: ToolResult, context: str = "") -> CertconvError:
    msg = result.stderr_text
    lower = msg.lower()

    if is_legacy_provider_error(lower):
        return PFXError(ErrorKind.LEGACY_UNSUPPORTED, msg)
    if _is_incorrect_password(lower):
        return PFXError(ErrorKind.INCORRECT_PASSWORD, msg)
    if _is_not_pkcs12(lower):
        return PFXError(ErrorKind.NOT_PKCS12, msg)
    return prefer_stderr(result, context)


def classify_modulus_error(result: ToolResult) -> CertconvError:
    lower = result.stderr_text.lower()
    if (
        "non-rsa" in lower
        or "not rsa" in lower
        or "not an rsa key" in lower
        or "expecting an rsa key" in lower
        or "can't use -modulus" in lower
        or "unknown option -modulus" in lower
        or ("expecting:" in lower and "rsa" in lower)
    ):
        return NotRSAError()
    return prefer_stderr(result)
