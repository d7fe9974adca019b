# certconv/x509meta.py
"""Summary enrichment from the cryptography X.509 decoder.

Only used to describe bytes already in hand; conversions are always done by
openssl.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, cast

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID as EKUOID
from cryptography.x509.oid import SignatureAlgorithmOID as SigOID

from .formats.pem import BEGIN_CERT, END_CERT, iter_blocks

_SIG_NAMES = {
    SigOID.RSA_WITH_MD5: "MD5-RSA",
    SigOID.RSA_WITH_SHA1: "SHA1-RSA",
    SigOID.RSA_WITH_SHA256: "SHA256-RSA",
    SigOID.RSA_WITH_SHA384: "SHA384-RSA",
    SigOID.RSA_WITH_SHA512: "SHA512-RSA",
    SigOID.RSASSA_PSS: "RSASSA-PSS",
    SigOID.ECDSA_WITH_SHA1: "ECDSA-SHA1",
    SigOID.ECDSA_WITH_SHA256: "ECDSA-SHA256",
    SigOID.ECDSA_WITH_SHA384: "ECDSA-SHA384",
    SigOID.ECDSA_WITH_SHA512: "ECDSA-SHA512",
    SigOID.DSA_WITH_SHA1: "DSA-SHA1",
    SigOID.DSA_WITH_SHA256: "DSA-SHA256",
    SigOID.ED25519: "Ed25519",
    SigOID.ED448: "Ed448",
}

_EKU_NAMES = {
    EKUOID.SERVER_AUTH: "serverAuth",
    EKUOID.CLIENT_AUTH: "clientAuth",
    EKUOID.CODE_SIGNING: "codeSigning",
    EKUOID.EMAIL_PROTECTION: "emailProtection",
    EKUOID.TIME_STAMPING: "timeStamping",
    EKUOID.OCSP_SIGNING: "OCSPSigning",
}


def parse_cert_bytes(data: bytes) -> Optional[x509.Certificate]:
    """First CERTIFICATE block of PEM data, else the bytes as DER."""
    for block in iter_blocks(data, BEGIN_CERT, END_CERT):
        try:
            return x509.load_pem_x509_certificate(block)
        except ValueError:
            return None
    try:
        return x509.load_der_x509_certificate(data)
    except ValueError:
        return None


def parse_cert_file(path: str) -> Optional[x509.Certificate]:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError:
        return None
    return parse_cert_bytes(data)


def _san_list(cert: x509.Certificate) -> List[str]:
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    san = ext.value
    out: List[str] = []
    out.extend(san.get_values_for_type(x509.DNSName))
    out.extend(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
    out.extend(san.get_values_for_type(x509.RFC822Name))
    out.extend(san.get_values_for_type(x509.UniformResourceIdentifier))
    return out


def _public_key_info(cert: x509.Certificate) -> str:
    pk = cert.public_key()
    if isinstance(pk, rsa.RSAPublicKey):
        return f"RSA {pk.key_size}"
    if isinstance(pk, ec.EllipticCurvePublicKey):
        return f"ECDSA {getattr(pk.curve, 'name', 'unknown')}"
    if isinstance(pk, ed25519.Ed25519PublicKey):
        return "Ed25519"
    if isinstance(pk, ed448.Ed448PublicKey):
        return "Ed448"
    if isinstance(pk, dsa.DSAPublicKey):
        return f"DSA {pk.key_size}"
    return pk.__class__.__name__


def _signature_algorithm(cert: x509.Certificate) -> str:
    oid = cert.signature_algorithm_oid
    return _SIG_NAMES.get(oid, oid.dotted_string)


def _key_usage(cert: x509.Certificate) -> List[str]:
    try:
        ext = cert.extensions.get_extension_for_oid(x509.oid.ExtensionOID.KEY_USAGE)
        ku = cast(x509.KeyUsage, ext.value)
    except x509.ExtensionNotFound:
        return []
    names: List[str] = []
    if ku.digital_signature: names.append("digitalSignature")
    if ku.content_commitment: names.append("contentCommitment")
    if ku.key_encipherment: names.append("keyEncipherment")
    if ku.data_encipherment: names.append("dataEncipherment")
    if ku.key_agreement:
        names.append("keyAgreement")
        if ku.encipher_only: names.append("encipherOnly")
        if ku.decipher_only: names.append("decipherOnly")
    if ku.key_cert_sign: names.append("keyCertSign")
    if ku.crl_sign: names.append("cRLSign")
    return names


def _eku_list(cert: x509.Certificate) -> List[str]:
    try:
        ext = cert.extensions.get_extension_for_oid(x509.oid.ExtensionOID.EXTENDED_KEY_USAGE)
        eku = cast(x509.ExtendedKeyUsage, ext.value)
    except x509.ExtensionNotFound:
        return []
    return [_EKU_NAMES.get(oid, oid.dotted_string) for oid in eku]


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        ext = cert.extensions.get_extension_for_oid(x509.oid.ExtensionOID.BASIC_CONSTRAINTS)
    except x509.ExtensionNotFound:
        return False
    return bool(cast(x509.BasicConstraints, ext.value).ca)


def format_fingerprint(digest: bytes) -> str:
    return ":".join(f"{b:02X}" for b in digest)


def enrich_fields(cert: x509.Certificate) -> Dict[str, Any]:
    """Summary fields derived from a decoded certificate."""
    return {
        "sans": _san_list(cert),
        "signature_algorithm": _signature_algorithm(cert),
        "public_key_info": _public_key_info(cert),
        "key_usage": _key_usage(cert),
        "ext_key_usage": _eku_list(cert),
        "is_ca": _is_ca(cert),
        "is_self_signed": cert.subject == cert.issuer,
        "fingerprint": format_fingerprint(cert.fingerprint(hashes.SHA256())),
    }
