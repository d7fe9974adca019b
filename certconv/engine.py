# certconv/engine.py
"""Certificate/key inspection and conversion on top of openssl.

Every operation is a short synchronous pipeline: detect or validate the
input, run openssl (PKCS#12 calls through the legacy-retry wrapper),
classify failures, and commit file outputs through the no-clobber layer.
Passwords are always handed to openssl through ``fd:`` placeholders.
"""
from __future__ import annotations

import base64
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .cancel import CancelToken, check
from .classify import classify_modulus_error, classify_pfx_error, prefer_stderr
from .common import b64decode_std, days_until, md5_hex, parse_openssl_date, sha256_hex
from .detect import (
    detect_key_type,
    detect_type,
    has_public_key_marker,
    is_der_encoded,
    read_first_non_empty_line,
    validate_pem_cert,
    validate_pem_key,
)
from .errors import (
    CertconvError,
    DetectError,
    ErrorKind,
    InvalidInputError,
    KeyMismatchError,
    NotRSAError,
    PFXError,
    ToolError,
)
from .executor import Executor, ExtraFile, OSExecutor, ToolResult, fd_arg
from .formats import openssh
from .formats.pem import normalize_payload
from .models import (
    CertDetails,
    CertSummary,
    ExpiryResult,
    FileType,
    FromPFXResult,
    KeyType,
    MatchResult,
    VerifyResult,
)
from .output import commit_temp_file, ensure_not_exists, new_temp_path, remove_quietly, write_exclusive
from .pkcs12 import run_pkcs12
from .settings import Settings
from .x509meta import enrich_fields, parse_cert_bytes, parse_cert_file

logger = logging.getLogger(__name__)

_SUMMARY_FLAGS = ("-noout", "-subject", "-issuer", "-dates", "-serial")
_SUMMARY_PREFIXES = {
    "subject=": "subject",
    "issuer=": "issuer",
    "notBefore=": "not_before",
    "notAfter=": "not_after",
    "serial=": "serial",
}

_HEX = re.compile(r"[0-9A-Fa-f]+")

CERT_MODE = 0o644
KEY_MODE = 0o600


def _secrets(*passwords: str) -> Tuple[ExtraFile, ...]:
    return tuple(ExtraFile(p.encode("utf-8")) for p in passwords)


def parse_summary_fields(text: str) -> Dict[str, str]:
    """Map ``openssl x509 -subject -issuer -dates -serial`` output to fields."""
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        for prefix, name in _SUMMARY_PREFIXES.items():
            if line.startswith(prefix):
                out[name] = line[len(prefix):].strip()
    return out


def parse_modulus(stdout: str) -> Optional[str]:
    for line in stdout.splitlines():
        line = line.strip()
        if line.startswith("Modulus="):
            value = line[len("Modulus="):].strip()
            # OpenSSL 3 prints "Modulus=No modulus for this public key type" for EC
            return value if _HEX.fullmatch(value) else None
    return None


def modulus_digests(modulus_hex: str) -> Tuple[str, str]:
    """(sha256, md5) hex digests of the modulus text, for quick comparison."""
    b = modulus_hex.strip().encode("ascii")
    return sha256_hex(b), md5_hex(b)


@contextmanager
def _temp_pem(data: bytes) -> Iterator[str]:
    fd, path = tempfile.mkstemp(prefix="certconv-", suffix=".pem")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        yield path
    finally:
        remove_quietly(path)


def _from_pfx_error(err: CertconvError) -> CertconvError:
    if err.kind is ErrorKind.INCORRECT_PASSWORD:
        return PFXError(err.kind, err.stderr, "invalid PFX or wrong password: incorrect password")
    if err.kind is ErrorKind.NOT_PKCS12:
        return PFXError(err.kind, err.stderr, "file is not a valid PKCS#12/PFX file")
    if err.kind is ErrorKind.LEGACY_UNSUPPORTED:
        return PFXError(
            err.kind,
            err.stderr,
            "cannot read PFX: uses legacy encryption unsupported by OpenSSL "
            "(try enabling the legacy provider)",
        )
    return ToolError(f"invalid PFX: {err}", stderr=getattr(err, "stderr", ""))


def _read_input(path: str, what: str = "input") -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise InvalidInputError(f"read {what}: {e}") from e


def _non_empty(path: str) -> bool:
    try:
        return os.path.getsize(path) > 0
    except OSError:
        return False


class Engine:
    """All certificate operations, bound to one :class:`Executor`."""

    def __init__(self, executor: Executor) -> None:
        self.executor = executor

    @classmethod
    def default(cls, settings: Optional[Settings] = None) -> "Engine":
        return cls(OSExecutor.from_settings(settings or Settings.from_env()))

    # --- running openssl -------------------------------------------------

    def _run(self, *args: str, cancel: Optional[CancelToken] = None) -> ToolResult:
        return self.executor.run(*args, cancel=cancel)

    def _run_secret(
        self, passwords: Sequence[str], *args: str, cancel: Optional[CancelToken] = None
    ) -> ToolResult:
        return self.executor.run_with_extra_files(_secrets(*passwords), *args, cancel=cancel)

    def _pkcs12(
        self, args: List[str], passwords: Sequence[str], cancel: Optional[CancelToken] = None
    ) -> ToolResult:
        return run_pkcs12(self.executor, args, files=_secrets(*passwords), cancel=cancel)

    def _pfx_certs(self, path: str, password: str, cancel: Optional[CancelToken]) -> bytes:
        res = self._pkcs12(
            ["pkcs12", "-in", path, "-nokeys", "-passin", fd_arg(0)], [password], cancel
        )
        if not res.ok:
            raise classify_pfx_error(res, "read pfx")
        return res.stdout

    # --- inspection ------------------------------------------------------

    def summary(self, path: str, password: str = "", cancel: Optional[CancelToken] = None) -> CertSummary:
        ft = detect_type(path)
        fields: Dict[str, Any] = {"file": path, "file_type": ft}
        cert = None

        if ft is FileType.PFX:
            pem = self._pfx_certs(path, password, cancel)
            with _temp_pem(pem) as tmp:
                res = self._run("x509", "-in", tmp, *_SUMMARY_FLAGS, cancel=cancel)
            if not res.ok:
                raise prefer_stderr(res, "read pfx certificate")
            fields.update(parse_summary_fields(res.stdout_text))
            cert = parse_cert_bytes(pem)

        elif ft in (FileType.DER, FileType.CERT, FileType.COMBINED):
            inform = ("-inform", "DER") if ft is FileType.DER else ()
            res = self._run("x509", "-in", path, *inform, *_SUMMARY_FLAGS, cancel=cancel)
            if not res.ok:
                raise prefer_stderr(res, "read der cert" if inform else "read pem cert")
            fields.update(parse_summary_fields(res.stdout_text))
            cert = parse_cert_file(path)

        elif ft is FileType.KEY:
            fields["key_type"] = detect_key_type(path)

        elif ft is FileType.PUBLIC_KEY:
            try:
                pk = openssh.parse_public_key_line(read_first_non_empty_line(path))
            except (OSError, InvalidInputError):
                pk = None
            if pk is not None:
                fields["public_key_algorithm"] = pk.algorithm
                fields["public_key_comment"] = pk.comment
            elif has_public_key_marker(path):
                fields["public_key_algorithm"] = "PEM"

        if cert is not None:
            fields.update(enrich_fields(cert))
        return CertSummary(**fields)

    def details(self, path: str, password: str = "", cancel: Optional[CancelToken] = None) -> CertDetails:
        ft = detect_type(path)

        if ft is FileType.PFX:
            pem = self._pfx_certs(path, password, cancel)
            with _temp_pem(pem) as tmp:
                res = self._run("x509", "-in", tmp, "-text", "-noout", cancel=cancel)
        elif ft is FileType.DER:
            res = self._run("x509", "-in", path, "-inform", "DER", "-text", "-noout", cancel=cancel)
        elif ft in (FileType.CERT, FileType.COMBINED):
            res = self._run("x509", "-in", path, "-text", "-noout", cancel=cancel)
        elif ft is FileType.PUBLIC_KEY:
            try:
                pk = openssh.parse_public_key_line(read_first_non_empty_line(path))
            except (OSError, InvalidInputError):
                pk = None
            if pk is not None:
                return CertDetails(file=path, file_type=ft, raw_text=openssh.render_details(pk))
            if not has_public_key_marker(path):
                raise InvalidInputError("unrecognised public key format")
            res = self._run("pkey", "-pubin", "-in", path, "-text", "-noout", cancel=cancel)
        else:
            raise InvalidInputError(f"cannot show full details for file type: {ft.value}")

        if not res.ok:
            raise prefer_stderr(res, "details")
        return CertDetails(file=path, file_type=ft, raw_text=res.stdout_text)

    def expiry(self, path: str, days: int, cancel: Optional[CancelToken] = None) -> ExpiryResult:
        """Expiry date plus whether the certificate stays valid for ``days``.

        ``days_left`` is the true remaining count and may be negative; it is
        independent of the ``days`` window.
        """
        ft = detect_type(path)
        inform = ("-inform", "DER") if ft is FileType.DER else ()

        res = self._run("x509", "-in", path, *inform, "-noout", "-enddate", cancel=cancel)
        if not res.ok:
            raise prefer_stderr(res, "read certificate expiry")

        _, _, expiry_date = res.stdout_text.strip().partition("=")
        expiry_date = expiry_date.strip()
        expires_at = parse_openssl_date(expiry_date) if expiry_date else None

        check = self._run(
            "x509", "-in", path, *inform, "-checkend", str(days * 86400), "-noout", cancel=cancel
        )
        return ExpiryResult(
            expiry_date=expiry_date,
            expires_at=expires_at,
            days_left=days_until(expires_at) if expires_at else 0,
            valid=check.ok,
        )

    def verify_chain(self, cert_path: str, ca_path: str, cancel: Optional[CancelToken] = None) -> VerifyResult:
        res = self._run("verify", "-CAfile", ca_path, cert_path, cancel=cancel)
        output = res.stdout_text
        if res.stderr:
            output += res.stderr.decode("utf-8", "replace")

        if res.ok and ": OK" in output:
            return VerifyResult(valid=True, output=output.strip())

        details: List[str] = []
        if "expired" in output or "Expire" in output:
            details.append("Certificate or CA has expired")
        if "unable to get local issuer" in output:
            details.append("Certificate issuer not found in CA bundle")
        if "self" in output and "signed" in output:
            details.append("Certificate is self-signed")
        return VerifyResult(valid=False, output=output.strip(), details="; ".join(details))

    def match_key_to_cert(
        self,
        cert_path: str,
        key_path: str,
        key_password: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> MatchResult:
        """Compare the key's derived public key with the certificate's (RSA and EC)."""
        try:
            ft = detect_type(cert_path)
        except DetectError:
            ft = FileType.UNKNOWN
        inform = ("-inform", "DER") if ft is FileType.DER else ()

        cert_pub = self._run("x509", "-in", cert_path, *inform, "-pubkey", "-noout", cancel=cancel)
        if not cert_pub.ok:
            raise prefer_stderr(cert_pub, "read certificate public key")

        key_pub = self._run_secret(
            [key_password], "pkey", "-in", key_path, "-pubout", "-passin", fd_arg(0), cancel=cancel
        )
        if not key_pub.ok:
            raise prefer_stderr(key_pub, "read key public key")

        cert_norm = normalize_payload(cert_pub.stdout_text)
        key_norm = normalize_payload(key_pub.stdout_text)
        if not cert_norm or not key_norm:
            raise ToolError("failed to normalize public keys for comparison")
        return MatchResult(match=cert_norm == key_norm)

    def _require_match(
        self, cert_path: str, key_path: str, key_password: str, cancel: Optional[CancelToken]
    ) -> None:
        if not self.match_key_to_cert(cert_path, key_path, key_password, cancel=cancel).match:
            raise KeyMismatchError()

    def rsa_modulus(self, path: str, cancel: Optional[CancelToken] = None) -> str:
        """Hex RSA modulus of a certificate, key or PEM public key.

        Anything that is not RSA raises :class:`NotRSAError`.
        """
        ft = detect_type(path)
        if ft in (FileType.CERT, FileType.COMBINED):
            args: Tuple[str, ...] = ("x509", "-in", path, "-noout", "-modulus")
        elif ft is FileType.DER:
            args = ("x509", "-in", path, "-inform", "DER", "-noout", "-modulus")
        elif ft is FileType.KEY:
            args = ("rsa", "-in", path, "-noout", "-modulus")
        elif ft is FileType.PUBLIC_KEY:
            # OpenSSH keys have no modulus in this form
            if not has_public_key_marker(path):
                raise NotRSAError()
            args = ("rsa", "-pubin", "-in", path, "-noout", "-modulus")
        else:
            raise InvalidInputError(f"unsupported file type: {ft.value}")

        res = self._run(*args, cancel=cancel)
        if not res.ok:
            raise classify_modulus_error(res)

        mod = parse_modulus(res.stdout_text)
        if not mod:
            raise NotRSAError()
        return mod

    # --- conversions -----------------------------------------------------

    def to_pfx(
        self,
        cert_path: str,
        key_path: str,
        output_path: str,
        password: str,
        ca_path: str = "",
        key_password: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> None:
        ensure_not_exists(output_path)
        validate_pem_cert(cert_path)
        validate_pem_key(key_path)
        self._require_match(cert_path, key_path, key_password, cancel)

        tmp = new_temp_path(output_path)
        try:
            self._export_pfx(cert_path, key_path, tmp, password, ca_path, key_password, cancel)
            commit_temp_file(tmp, output_path, KEY_MODE)
        finally:
            remove_quietly(tmp)
        logger.debug("wrote %s", output_path)

    def _export_pfx(
        self,
        cert_path: str,
        key_path: str,
        out: str,
        password: str,
        ca_path: str,
        key_password: str,
        cancel: Optional[CancelToken],
    ) -> None:
        args = ["pkcs12", "-export", "-out", out, "-inkey", key_path, "-in", cert_path]
        if ca_path:
            args += ["-certfile", ca_path]
        args += ["-passin", fd_arg(0), "-passout", fd_arg(1)]

        res = self._pkcs12(args, [key_password, password], cancel)
        if not res.ok:
            raise classify_pfx_error(res, "create PFX")
        if not _non_empty(out):
            raise ToolError("create PFX: no output")

    def from_pfx(
        self,
        input_path: str,
        output_dir: str,
        password: str,
        cancel: Optional[CancelToken] = None,
    ) -> FromPFXResult:
        """Extract certificate, key and (if present) CA bundle from a PFX.

        Nothing is written unless certificate and key both extract; CA
        extraction is best-effort.
        """
        base = os.path.splitext(os.path.basename(input_path))[0]
        cert_file = os.path.join(output_dir, base + ".crt")
        key_file = os.path.join(output_dir, base + ".key")
        ca_file = os.path.join(output_dir, base + "-ca.crt")
        ensure_not_exists(cert_file)
        ensure_not_exists(key_file)
        ensure_not_exists(ca_file)

        res = self._pkcs12(["pkcs12", "-in", input_path, "-noout", "-passin", fd_arg(0)], [password], cancel)
        if not res.ok:
            raise _from_pfx_error(classify_pfx_error(res))

        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise InvalidInputError(f"create output directory: {e}") from e

        temps = [new_temp_path(p) for p in (cert_file, key_file, ca_file)]
        tmp_cert, tmp_key, tmp_ca = temps
        committed: List[str] = []
        try:
            for extra, tmp, what in (
                (["-clcerts", "-nokeys"], tmp_cert, "extract certificate"),
                (["-nocerts", "-nodes"], tmp_key, "extract private key"),
            ):
                res = self._pkcs12(
                    ["pkcs12", "-in", input_path, *extra, "-passin", fd_arg(0), "-out", tmp],
                    [password],
                    cancel,
                )
                if not res.ok:
                    raise classify_pfx_error(res, what)

            res = self._pkcs12(
                ["pkcs12", "-in", input_path, "-cacerts", "-nokeys", "-passin", fd_arg(0), "-out", tmp_ca],
                [password],
                cancel,
            )
            if not res.ok:
                logger.warning("CA extraction from %s failed: %s", input_path, res.stderr_text)
            has_ca = _non_empty(tmp_ca) and b"BEGIN CERTIFICATE" in _read_input(tmp_ca)

            try:
                commit_temp_file(tmp_cert, cert_file, CERT_MODE)
                committed.append(cert_file)
                commit_temp_file(tmp_key, key_file, KEY_MODE)
                committed.append(key_file)
                if has_ca:
                    commit_temp_file(tmp_ca, ca_file, CERT_MODE)
                    committed.append(ca_file)
            except BaseException:
                for p in committed:
                    remove_quietly(p)
                raise
        finally:
            for t in temps:
                remove_quietly(t)

        return FromPFXResult(cert_file=cert_file, key_file=key_file, ca_file=ca_file if has_ca else "")

    def to_der(
        self,
        input_path: str,
        output_path: str,
        is_key: bool = False,
        key_password: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> None:
        ensure_not_exists(output_path)
        if is_key:
            validate_pem_key(input_path)
        else:
            validate_pem_cert(input_path)

        tmp = new_temp_path(output_path)
        try:
            if is_key:
                cmd = "rsa" if detect_key_type(input_path) is KeyType.RSA else "pkey"
                res = self._run_secret(
                    [key_password],
                    cmd, "-in", input_path, "-inform", "PEM", "-out", tmp, "-outform", "DER",
                    "-passin", fd_arg(0),
                    cancel=cancel,
                )
                what, mode = "convert key to DER", KEY_MODE
            else:
                res = self._run(
                    "x509", "-in", input_path, "-inform", "PEM", "-out", tmp, "-outform", "DER",
                    cancel=cancel,
                )
                what, mode = "convert cert to DER", CERT_MODE
            if not res.ok:
                raise prefer_stderr(res, what)
            if not _non_empty(tmp):
                raise ToolError("conversion to DER failed: output file is empty or missing")
            commit_temp_file(tmp, output_path, mode)
        finally:
            remove_quietly(tmp)

    def from_der(
        self,
        input_path: str,
        output_path: str,
        is_key: bool = False,
        key_password: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> None:
        ensure_not_exists(output_path)
        try:
            is_der = is_der_encoded(input_path)
        except (OSError, EOFError) as e:
            raise InvalidInputError(f"check DER encoding: {e}") from e
        if not is_der:
            raise InvalidInputError("file may not be DER encoded (doesn't start with ASN.1 SEQUENCE tag)")

        tmp = new_temp_path(output_path)
        try:
            if is_key:
                res = self._run_secret(
                    [key_password],
                    "pkey", "-in", input_path, "-inform", "DER", "-out", tmp, "-outform", "PEM",
                    "-passin", fd_arg(0),
                    cancel=cancel,
                )
                mode = KEY_MODE
                hint = "convert DER to key PEM: {} (try without is_key if this is a certificate)"
            else:
                res = self._run(
                    "x509", "-in", input_path, "-inform", "DER", "-out", tmp, "-outform", "PEM",
                    cancel=cancel,
                )
                mode = CERT_MODE
                hint = "convert DER to cert PEM: {} (try with is_key if this is a private key)"
            if not res.ok:
                err = prefer_stderr(res)
                raise ToolError(hint.format(err), stderr=err.stderr, returncode=err.returncode)
            if not _non_empty(tmp):
                raise ToolError("conversion from DER failed: output file is empty or missing")
            commit_temp_file(tmp, output_path, mode)
        finally:
            remove_quietly(tmp)

    def to_base64(self, input_path: str, output_path: str, cancel: Optional[CancelToken] = None) -> None:
        """Raw standard base64 of the file, single line, no trailing newline."""
        ensure_not_exists(output_path)
        data = _read_input(input_path)
        check(cancel)
        write_exclusive(output_path, base64.b64encode(data), CERT_MODE)

    def from_base64(self, input_path: str, output_path: str, cancel: Optional[CancelToken] = None) -> None:
        ensure_not_exists(output_path)
        check(cancel)
        content = _read_input(input_path).decode("utf-8", "replace").strip()
        # line breaks inside the payload are allowed
        content = content.replace("\r", "").replace("\n", "")

        if "-----BEGIN" in content:
            raise InvalidInputError(
                "file appears to be PEM format, not raw Base64 "
                "(PEM files are already text - no decoding needed)"
            )
        try:
            decoded = b64decode_std(content)
        except ValueError:
            raise InvalidInputError(
                "base64 decoding failed: file may contain invalid Base64 characters"
            ) from None
        write_exclusive(output_path, decoded, CERT_MODE)

    def combine_pem(
        self,
        cert_path: str,
        key_path: str,
        output_path: str,
        ca_path: str = "",
        key_password: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> None:
        """Certificate, key and optional CA bundle in one mode-0600 PEM file."""
        ensure_not_exists(output_path)
        validate_pem_cert(cert_path)
        validate_pem_key(key_path)
        self._require_match(cert_path, key_path, key_password, cancel)

        parts = [_read_input(cert_path, "cert"), _read_input(key_path, "key")]
        if ca_path:
            parts.append(_read_input(ca_path, "CA"))

        combined = b""
        for part in parts:
            if combined and not combined.endswith(b"\n"):
                combined += b"\n"
            combined += part
        write_exclusive(output_path, combined, KEY_MODE)

    # --- previews (no files written) -------------------------------------

    def cert_der(self, pem_cert_path: str, cancel: Optional[CancelToken] = None) -> bytes:
        validate_pem_cert(pem_cert_path)
        res = self._run("x509", "-in", pem_cert_path, "-outform", "DER", cancel=cancel)
        if not res.ok:
            raise prefer_stderr(res, "convert to DER")
        if not res.stdout:
            raise ToolError("convert to DER: no output")
        return res.stdout

    def pfx_bytes(
        self,
        cert_path: str,
        key_path: str,
        password: str,
        ca_path: str = "",
        key_password: str = "",
        cancel: Optional[CancelToken] = None,
    ) -> bytes:
        validate_pem_cert(cert_path)
        validate_pem_key(key_path)
        self._require_match(cert_path, key_path, key_password, cancel)

        fd, tmp = tempfile.mkstemp(prefix="certconv-preview-", suffix=".pfx")
        os.close(fd)
        try:
            self._export_pfx(cert_path, key_path, tmp, password, ca_path, key_password, cancel)
            return _read_input(tmp, "temp PFX")
        finally:
            remove_quietly(tmp)

    def pfx_certs_pem(self, path: str, password: str, cancel: Optional[CancelToken] = None) -> bytes:
        """Every certificate in a PFX (leaf and chain) as PEM."""
        return self._pfx_certs(path, password, cancel)
