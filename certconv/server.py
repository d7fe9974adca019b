import logging
from typing import Annotated, Any, Callable, Optional, TypeVar

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from .cancel import CancelToken
from .detect import detect_type as _detect_type
from .engine import Engine, modulus_digests
from .errors import CertconvError, OutputExistsError
from .logging_conf import setup_logging
from .path_utils import resolve_optional, resolve_path
from .settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

INSTRUCTIONS = (
    "Purpose: inspect and convert X.509 certificates and private keys with the local openssl binary.\n\n"
    "Use me when: you need a certificate summary, full text details, expiry checks, chain verification, "
    "key/certificate matching, or conversions between PEM, DER, PFX/PKCS#12 and Base64.\n"
    "Do NOT use me for: key generation, CSR signing, revocation checks or network fetches.\n\n"
    "Conversions never overwrite existing files. When an output exists the error names a free "
    "alternative path. Private key outputs are written with mode 0600.\n\n"
    "Safety: passwords are handed to openssl through inherited file descriptors, never on the "
    "command line, and are never logged."
)

_Path = Annotated[str, Field(description="Local path (or file:// URI) to the input file.")]
_OutPath = Annotated[str, Field(description="Destination path. Must not exist yet.")]
_Password = Annotated[str, Field(description="Password for the PFX/PKCS#12 container; empty string if none.")]
_KeyPassword = Annotated[
    str, Field(description="Passphrase of an encrypted private key; empty string if not encrypted.")
]
_CAPath = Annotated[str, Field(description="Optional CA bundle path; empty string to omit.")]


def _tool_error(err: CertconvError) -> ToolError:
    msg = f"{err.kind.value}: {err}"
    if isinstance(err, OutputExistsError):
        msg += f" [suggested: {err.suggest}]"
    return ToolError(msg)


def create_server(engine: Optional[Engine] = None, settings: Optional[Settings] = None) -> FastMCP:
    """Build the MCP server around ``engine`` (default: openssl from settings)."""
    settings = settings or Settings.from_env()
    engine = engine or Engine.default(settings)

    mcp = FastMCP(name="certconv", instructions=INSTRUCTIONS)

    def call(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        cancel = CancelToken.with_timeout(settings.TIMEOUT_SEC)
        try:
            return fn(*args, cancel=cancel, **kwargs)
        except CertconvError as e:
            logger.debug("%s failed: %s", getattr(fn, "__name__", fn), e)
            raise _tool_error(e) from e

    def p(path: str) -> str:
        try:
            return str(resolve_path(path))
        except CertconvError as e:
            raise _tool_error(e) from e

    def opt(path: str) -> str:
        try:
            return resolve_optional(path)
        except CertconvError as e:
            raise _tool_error(e) from e

    read_only = {"readOnlyHint": True, "idempotentHint": True, "openWorldHint": False}
    writes = {"readOnlyHint": False, "destructiveHint": False, "idempotentHint": False, "openWorldHint": False}

    @mcp.tool(description="Health check. Returns 'pong'.", tags={"certconv", "health"})
    def ping() -> str:
        return "pong"

    @mcp.tool(
        description="Detect a file's type: cert, key, public-key, combined, pfx, der, base64 or unknown.",
        tags={"certconv", "inspect"},
        annotations={"title": "Detect file type", **read_only},
    )
    def detect_type(path: _Path) -> dict:
        resolved = p(path)
        try:
            ft = _detect_type(resolved)
        except CertconvError as e:
            raise _tool_error(e) from e
        return {"path": resolved, "file_type": ft.value}

    @mcp.tool(
        description=(
            "Structured summary: subject, issuer, validity dates, serial, SANs, signature and public key "
            "algorithms, key usages, CA flag and SHA-256 fingerprint."
        ),
        tags={"certconv", "inspect", "x509"},
        annotations={"title": "Certificate summary", **read_only},
    )
    def summary(path: _Path, password: _Password = "") -> dict:
        return call(engine.summary, p(path), password).model_dump(mode="json")

    @mcp.tool(
        description="Full openssl text dump of a certificate or public key.",
        tags={"certconv", "inspect", "x509"},
        annotations={"title": "Certificate details", **read_only},
    )
    def details(path: _Path, password: _Password = "") -> dict:
        return call(engine.details, p(path), password).model_dump(mode="json")

    @mcp.tool(
        description=(
            "Expiry date, days left (negative once expired) and whether the certificate is still valid "
            "`days` days from now."
        ),
        tags={"certconv", "inspect", "x509"},
        annotations={"title": "Expiry check", **read_only},
    )
    def expiry(
        path: _Path,
        days: Annotated[int, Field(ge=0, description="Validity window in days.")] = 30,
    ) -> dict:
        return call(engine.expiry, p(path), days).model_dump(mode="json")

    @mcp.tool(
        description="Verify a certificate against a CA bundle with `openssl verify`.",
        tags={"certconv", "inspect", "x509"},
        annotations={"title": "Verify chain", **read_only},
    )
    def verify_chain(
        cert_path: _Path,
        ca_path: Annotated[str, Field(description="CA bundle (PEM) to verify against.")],
    ) -> dict:
        return call(engine.verify_chain, p(cert_path), p(ca_path)).model_dump(mode="json")

    @mcp.tool(
        description="Check whether a private key belongs to a certificate (RSA and EC).",
        tags={"certconv", "inspect"},
        annotations={"title": "Match key to certificate", **read_only},
    )
    def match_key_to_cert(cert_path: _Path, key_path: _Path, key_password: _KeyPassword = "") -> dict:
        return call(engine.match_key_to_cert, p(cert_path), p(key_path), key_password).model_dump(mode="json")

    @mcp.tool(
        description="RSA modulus (hex) of a certificate, key or PEM public key, with SHA-256 and MD5 digests.",
        tags={"certconv", "inspect", "rsa"},
        annotations={"title": "RSA modulus", **read_only},
    )
    def rsa_modulus(path: _Path) -> dict:
        modulus = call(engine.rsa_modulus, p(path))
        sha256, md5 = modulus_digests(modulus)
        return {"modulus": modulus, "sha256": sha256, "md5": md5}

    @mcp.tool(
        description="Bundle a PEM certificate and matching key (plus optional CA bundle) into a PFX.",
        tags={"certconv", "convert", "pkcs12"},
        annotations={"title": "PEM to PFX", **writes},
    )
    def to_pfx(
        cert_path: _Path,
        key_path: _Path,
        output_path: _OutPath,
        password: Annotated[str, Field(description="Export password for the new PFX.")],
        ca_path: _CAPath = "",
        key_password: _KeyPassword = "",
    ) -> dict:
        out = p(output_path)
        call(engine.to_pfx, p(cert_path), p(key_path), out, password, opt(ca_path), key_password)
        return {"output": out}

    @mcp.tool(
        description=(
            "Extract certificate (<name>.crt), private key (<name>.key, mode 0600) and CA bundle "
            "(<name>-ca.crt, when present) from a PFX into `output_dir`."
        ),
        tags={"certconv", "convert", "pkcs12"},
        annotations={"title": "PFX to PEM", **writes},
    )
    def from_pfx(
        input_path: _Path,
        output_dir: Annotated[str, Field(description="Directory for the extracted files.")],
        password: _Password = "",
    ) -> dict:
        return call(engine.from_pfx, p(input_path), p(output_dir), password).model_dump(mode="json")

    @mcp.tool(
        description="Convert a PEM certificate (or, with is_key, a PEM private key) to DER.",
        tags={"certconv", "convert", "der"},
        annotations={"title": "PEM to DER", **writes},
    )
    def to_der(
        input_path: _Path,
        output_path: _OutPath,
        is_key: Annotated[bool, Field(description="Input is a private key rather than a certificate.")] = False,
        key_password: _KeyPassword = "",
    ) -> dict:
        out = p(output_path)
        call(engine.to_der, p(input_path), out, is_key, key_password)
        return {"output": out}

    @mcp.tool(
        description="Convert a DER certificate (or, with is_key, a DER private key) to PEM.",
        tags={"certconv", "convert", "der"},
        annotations={"title": "DER to PEM", **writes},
    )
    def from_der(
        input_path: _Path,
        output_path: _OutPath,
        is_key: Annotated[bool, Field(description="Input is a private key rather than a certificate.")] = False,
        key_password: _KeyPassword = "",
    ) -> dict:
        out = p(output_path)
        call(engine.from_der, p(input_path), out, is_key, key_password)
        return {"output": out}

    @mcp.tool(
        description="Write the raw bytes of a file as a single line of standard Base64.",
        tags={"certconv", "convert", "base64"},
        annotations={"title": "Encode Base64", **writes},
    )
    def to_base64(input_path: _Path, output_path: _OutPath) -> dict:
        out = p(output_path)
        call(engine.to_base64, p(input_path), out)
        return {"output": out}

    @mcp.tool(
        description="Decode a raw Base64 file (padded or unpadded). PEM input is rejected.",
        tags={"certconv", "convert", "base64"},
        annotations={"title": "Decode Base64", **writes},
    )
    def from_base64(input_path: _Path, output_path: _OutPath) -> dict:
        out = p(output_path)
        call(engine.from_base64, p(input_path), out)
        return {"output": out}

    @mcp.tool(
        description="Concatenate certificate, matching key and optional CA bundle into one PEM (mode 0600).",
        tags={"certconv", "convert", "pem"},
        annotations={"title": "Combine PEM", **writes},
    )
    def combine_pem(
        cert_path: _Path,
        key_path: _Path,
        output_path: _OutPath,
        ca_path: _CAPath = "",
        key_password: _KeyPassword = "",
    ) -> dict:
        out = p(output_path)
        call(engine.combine_pem, p(cert_path), p(key_path), out, opt(ca_path), key_password)
        return {"output": out}

    return mcp


def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings)
    create_server(settings=settings).run()


if __name__ == "__main__":
    main()
