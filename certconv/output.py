# certconv/output.py
"""No-clobber output handling.

Outputs are never overwritten. Large outputs are produced in a temp file in
the destination directory and hard-linked into place; ``os.link`` refuses an
existing destination, which closes the race between the existence check and
the write.
"""
from __future__ import annotations

import os
import tempfile

from .errors import InvalidInputError, OutputExistsError

MAX_SUGGEST_ATTEMPTS = 10_000


def _incremented(dest: str, n: int) -> str:
    directory, base = os.path.split(dest)
    name, ext = os.path.splitext(base)
    return os.path.join(directory, f"{name}-{n}{ext}")


def next_available_path(dest: str) -> str:
    """``dest`` if free, else the first free ``name-1.ext``, ``name-2.ext``..."""
    if not os.path.lexists(dest):
        return dest
    for i in range(1, MAX_SUGGEST_ATTEMPTS):
        candidate = _incremented(dest, i)
        if not os.path.lexists(candidate):
            return candidate
    return _incremented(dest, MAX_SUGGEST_ATTEMPTS)


def _exists_error(dest: str) -> OutputExistsError:
    return OutputExistsError(dest, next_available_path(dest))


def ensure_not_exists(dest: str) -> None:
    if os.path.lexists(dest):
        raise _exists_error(dest)


def write_exclusive(dest: str, data: bytes, mode: int = 0o644) -> None:
    ensure_not_exists(dest)
    try:
        fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0), mode)
    except FileExistsError:
        raise _exists_error(dest) from None
    except OSError as e:
        raise InvalidInputError(f"cannot create {dest}: {e}") from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except BaseException:
        os.remove(dest)
        raise


def new_temp_path(dest: str) -> str:
    """Create an empty hidden temp file next to ``dest`` and return its path."""
    directory = os.path.dirname(dest) or "."
    try:
        fd, path = tempfile.mkstemp(prefix=".certconv-", dir=directory)
    except OSError as e:
        raise InvalidInputError(f"cannot write to {directory}: {e}") from e
    os.close(fd)
    return path


def remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def commit_temp_file(tmp: str, dest: str, mode: int = 0o644) -> None:
    """Link ``tmp`` to ``dest`` and drop ``tmp``; both must share a filesystem."""
    try:
        ensure_not_exists(dest)
        try:
            os.link(tmp, dest)
        except FileExistsError:
            raise _exists_error(dest) from None
        os.chmod(dest, mode)
    finally:
        remove_quietly(tmp)
