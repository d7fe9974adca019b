# certconv/errors.py
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    OUTPUT_EXISTS = "output-exists"
    INCORRECT_PASSWORD = "incorrect-password"
    NOT_PKCS12 = "not-pkcs12"
    LEGACY_UNSUPPORTED = "legacy-unsupported"
    NOT_RSA = "not-rsa"
    CANCELED = "canceled"
    KEY_MISMATCH = "key-mismatch"
    INVALID_INPUT = "invalid-input"
    TOOL_FAILURE = "tool-failure"


class CertconvError(Exception):
    """Base error type for certificate operations."""

    kind: ErrorKind = ErrorKind.TOOL_FAILURE


class OutputExistsError(CertconvError):
    """The destination already exists. Outputs are never overwritten."""

    kind = ErrorKind.OUTPUT_EXISTS

    def __init__(self, path: str, suggest: str = "") -> None:
        self.path = path
        self.suggest = suggest
        if suggest.strip() and suggest != path:
            msg = f"output already exists: {path} (try: {suggest})"
        else:
            msg = f"output already exists: {path}"
        super().__init__(msg)


_PFX_MESSAGES = {
    ErrorKind.INCORRECT_PASSWORD: "incorrect password",
    ErrorKind.NOT_PKCS12: "file is not a valid PKCS#12/PFX file",
    ErrorKind.LEGACY_UNSUPPORTED: "legacy PFX encryption unsupported by OpenSSL",
}


class PFXError(CertconvError):
    """openssl could not read a PKCS#12 container.

    ``kind`` is one of INCORRECT_PASSWORD, NOT_PKCS12 or LEGACY_UNSUPPORTED;
    ``stderr`` keeps the tool output for diagnostics.
    """

    def __init__(self, kind: ErrorKind, stderr: str = "", message: Optional[str] = None) -> None:
        if kind not in _PFX_MESSAGES:
            raise ValueError(f"not a PFX error kind: {kind}")
        self.kind = kind
        self.stderr = stderr
        if message is None:
            message = _PFX_MESSAGES[kind]
            if stderr:
                message = f"{message}: {stderr}"
        super().__init__(message)


class NotRSAError(CertconvError):
    kind = ErrorKind.NOT_RSA

    def __init__(self, message: str = "not an RSA key/certificate (no modulus)") -> None:
        super().__init__(message)


class Canceled(CertconvError):
    """The caller's CancelToken fired; never folded into another kind."""

    kind = ErrorKind.CANCELED

    def __init__(self, reason: str = "operation canceled") -> None:
        self.reason = reason
        super().__init__(reason)


class KeyMismatchError(CertconvError):
    kind = ErrorKind.KEY_MISMATCH

    def __init__(self, message: str = "private key does NOT match certificate") -> None:
        super().__init__(message)


class InvalidInputError(CertconvError):
    """The input file is not what the operation expects."""

    kind = ErrorKind.INVALID_INPUT


class DetectError(InvalidInputError):
    """Content sniffing was needed but the file could not be read."""

    def __init__(self, path: str, cause: BaseException) -> None:
        from .models import FileType

        self.path = path
        self.file_type = FileType.UNKNOWN
        super().__init__(f"detect type: {path}: {cause}")


class ToolError(CertconvError):
    """Residual failure reported by the external tool, message is its stderr."""

    kind = ErrorKind.TOOL_FAILURE

    def __init__(self, message: str, stderr: str = "", returncode: Optional[int] = None) -> None:
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)


def error_kind(err: BaseException) -> Optional[ErrorKind]:
    if isinstance(err, CertconvError):
        return err.kind
    return None


def is_output_exists(err: BaseException) -> bool:
    return isinstance(err, OutputExistsError)


def is_pfx_incorrect_password(err: BaseException) -> bool:
    return error_kind(err) is ErrorKind.INCORRECT_PASSWORD


def is_pfx_not_pkcs12(err: BaseException) -> bool:
    return error_kind(err) is ErrorKind.NOT_PKCS12


def is_pfx_legacy_unsupported(err: BaseException) -> bool:
    return error_kind(err) is ErrorKind.LEGACY_UNSUPPORTED


def is_not_rsa(err: BaseException) -> bool:
    return error_kind(err) is ErrorKind.NOT_RSA


def is_canceled(err: BaseException) -> bool:
    return error_kind(err) is ErrorKind.CANCELED
