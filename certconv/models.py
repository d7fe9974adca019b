# certconv/models.py
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileType(str, Enum):
    CERT = "cert"
    KEY = "key"
    PUBLIC_KEY = "public-key"
    COMBINED = "combined"
    PFX = "pfx"
    DER = "der"
    BASE64 = "base64"
    UNKNOWN = "unknown"


class KeyType(str, Enum):
    RSA = "RSA"
    EC = "EC"
    PKCS8 = "PKCS#8"


class _Result(BaseModel):
    model_config = ConfigDict(frozen=True)


class CertSummary(_Result):
    """Basic properties of one file, built fresh for every inspection."""

    file: str
    file_type: FileType
    subject: str = ""
    issuer: str = ""
    not_before: str = ""
    not_after: str = ""
    serial: str = ""
    # key files
    key_type: Optional[KeyType] = None
    # public key files (PEM or OpenSSH)
    public_key_algorithm: str = ""
    public_key_comment: str = ""
    # decoded with cryptography when the certificate parses
    sans: List[str] = Field(default_factory=list)
    signature_algorithm: str = ""
    public_key_info: str = ""
    key_usage: List[str] = Field(default_factory=list)
    ext_key_usage: List[str] = Field(default_factory=list)
    is_ca: bool = False
    is_self_signed: bool = False
    fingerprint: str = ""


class CertDetails(_Result):
    file: str
    file_type: FileType
    raw_text: str = ""


class ExpiryResult(_Result):
    expiry_date: str = ""
    expires_at: Optional[dt.datetime] = None
    # negative once the certificate has expired
    days_left: int = 0
    valid: bool = False


class VerifyResult(_Result):
    valid: bool
    output: str = ""
    details: str = ""


class MatchResult(_Result):
    match: bool


class FromPFXResult(_Result):
    cert_file: str
    key_file: str
    ca_file: str = ""
