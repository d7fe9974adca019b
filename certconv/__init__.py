from .cancel import CancelToken
from .engine import Engine, modulus_digests
from .errors import (
    Canceled,
    CertconvError,
    DetectError,
    ErrorKind,
    InvalidInputError,
    KeyMismatchError,
    NotRSAError,
    OutputExistsError,
    PFXError,
    ToolError,
    error_kind,
    is_canceled,
    is_not_rsa,
    is_output_exists,
    is_pfx_incorrect_password,
    is_pfx_legacy_unsupported,
    is_pfx_not_pkcs12,
)
from .executor import Executor, ExtraFile, OSExecutor, ToolResult
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
from .settings import Settings

__version__ = "0.1.0"
