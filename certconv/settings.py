import os
from dataclasses import dataclass, field

DEFAULT_TIMEOUT_SEC = 60


@dataclass(frozen=True)
class Settings:
    LOG_LEVEL: str = field(default="INFO")
    OPENSSL_BIN: str = field(default="openssl")
    TIMEOUT_SEC: int = field(default=DEFAULT_TIMEOUT_SEC)

    @staticmethod
    def from_env() -> "Settings":
        log_level = os.getenv("CERTCONV_LOG_LEVEL", "INFO").upper()
        openssl_bin = os.getenv("CERTCONV_OPENSSL", "").strip() or "openssl"
        try:
            timeout = int(os.getenv("CERTCONV_TIMEOUT_SEC", str(DEFAULT_TIMEOUT_SEC)))
            if timeout <= 0:
                raise ValueError
        except ValueError:
            timeout = DEFAULT_TIMEOUT_SEC
        return Settings(LOG_LEVEL=log_level, OPENSSL_BIN=openssl_bin, TIMEOUT_SEC=timeout)
