# certconv/pkcs12.py
from __future__ import annotations

import logging
from typing import Optional, Sequence

from .cancel import CancelToken
from .classify import is_legacy_provider_error
from .executor import Executor, ExtraFile, ToolResult

logger = logging.getLogger(__name__)

LEGACY_FLAG = "-legacy"


def run_pkcs12(
    executor: Executor,
    args: Sequence[str],
    files: Sequence[ExtraFile] = (),
    cancel: Optional[CancelToken] = None,
) -> ToolResult:
    """Run ``openssl pkcs12 ...``, retrying once with ``-legacy``.

    OpenSSL 3 refuses older PKCS#12 ciphers unless the legacy provider is
    requested. The retry only happens on that specific fetch failure and only
    when the caller did not already ask for legacy mode. Non-pkcs12 argument
    lists pass through untouched.
    """
    args = list(args)
    res = executor.run_with_extra_files(files, *args, cancel=cancel)
    if res.ok or not args or args[0] != "pkcs12":
        return res
    if LEGACY_FLAG in args or not is_legacy_provider_error(res.stderr_text):
        return res

    logger.info("pkcs12: legacy cipher refused, retrying with %s", LEGACY_FLAG)
    legacy_args = [args[0], LEGACY_FLAG, *args[1:]]
    return executor.run_with_extra_files(files, *legacy_args, cancel=cancel)
