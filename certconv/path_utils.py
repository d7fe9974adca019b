import os
import pathlib
import re
from urllib.parse import unquote, urlparse

from .errors import InvalidInputError

_WIN_DRIVE = re.compile(r"^/([A-Za-z]:/.*)$")


def parse_file_uri(uri_or_path: str) -> pathlib.Path:
    """``file://`` URIs become local paths; anything else is taken as a path."""
    if not uri_or_path.startswith("file://"):
        return pathlib.Path(uri_or_path)
    parsed = urlparse(uri_or_path)
    if parsed.netloc not in ("", "localhost"):
        raise InvalidInputError(f"remote file URI not supported: {uri_or_path}")
    path = parsed.path or ""
    if os.name == "nt":
        m = _WIN_DRIVE.match(path)
        if m:
            path = m.group(1)
    return pathlib.Path(unquote(path))


def resolve_path(path_like: str | os.PathLike[str]) -> pathlib.Path:
    raw = str(path_like).strip()
    if not raw:
        raise InvalidInputError("path is required")
    return parse_file_uri(raw).expanduser().resolve(strict=False)


def resolve_optional(path_like: str | None) -> str:
    """Resolved path as a string; empty input stays empty."""
    if not path_like or not str(path_like).strip():
        return ""
    return str(resolve_path(path_like))
