# certconv/executor.py
"""Running the openssl binary.

Secrets (passwords) never appear on the command line. Callers put ``fd:3``,
``fd:4``... placeholders (see :func:`fd_arg`) where openssl expects a
passphrase source, and hand the secret bytes over as :class:`ExtraFile`
objects in the same order. A :class:`SecretChannel` turns those into
something the child process can read:

- :class:`PipeSecretChannel` (POSIX): one anonymous pipe per secret, the read
  end inherited by the child.
- :class:`TempFileSecretChannel`: one mode-0600 temp file per secret,
  placeholders rewritten to ``file:<path>``, files deleted afterwards.
"""
from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

from .cancel import CancelToken, check
from .errors import Canceled, ToolError

logger = logging.getLogger(__name__)

FD_BASE = 3


def fd_arg(index: int) -> str:
    return f"fd:{FD_BASE + index}"


@dataclass(frozen=True)
class ExtraFile:
    data: bytes

    def payload(self) -> bytes:
        # passphrase-file convention: one newline-terminated line
        if not self.data.endswith(b"\n"):
            return self.data + b"\n"
        return self.data


@dataclass(frozen=True)
class ToolResult:
    stdout: bytes = b""
    stderr: bytes = b""
    returncode: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", "replace").strip()

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", "replace")


class Executor(Protocol):
    def run(self, *args: str, cancel: Optional[CancelToken] = None) -> ToolResult: ...

    def run_with_extra_files(
        self,
        files: Sequence[ExtraFile],
        *args: str,
        cancel: Optional[CancelToken] = None,
    ) -> ToolResult: ...


def _rewrite(args: Sequence[str], replacements: Sequence[str]) -> List[str]:
    # single pass: a replacement may itself look like a later placeholder
    mapping = {fd_arg(i): repl for i, repl in enumerate(replacements)}
    return [mapping.get(a.strip(), a) for a in args]


class SecretChannel(ABC):
    @abstractmethod
    @contextmanager
    def prepare(
        self, files: Sequence[ExtraFile], args: Sequence[str]
    ) -> Iterator[Tuple[List[str], Tuple[int, ...]]]:
        """Yield ``(args, pass_fds)`` ready for the child process.

        Everything created here is released when the context exits.
        """


class PipeSecretChannel(SecretChannel):
    """Inherited pipe descriptors, the secret never touches disk.

    The child inherits each read end under its own descriptor number, so the
    ``fd:<3+i>`` placeholders are rewritten to the actual numbers.
    """

    @contextmanager
    def prepare(self, files, args):
        read_fds: List[int] = []
        try:
            for ef in files:
                r, w = os.pipe()
                read_fds.append(r)
                try:
                    os.write(w, ef.payload())
                finally:
                    # closing the write end lets openssl see EOF
                    os.close(w)
            yield _rewrite(args, [f"fd:{r}" for r in read_fds]), tuple(read_fds)
        finally:
            for r in read_fds:
                os.close(r)


class TempFileSecretChannel(SecretChannel):
    """Fallback for platforms without descriptor inheritance."""

    def __init__(self, tmp_dir: Optional[str] = None) -> None:
        self._tmp_dir = tmp_dir

    @contextmanager
    def prepare(self, files, args):
        paths: List[str] = []
        try:
            for ef in files:
                fd, path = tempfile.mkstemp(prefix="certconv-secret-", dir=self._tmp_dir)
                paths.append(path)
                with os.fdopen(fd, "wb") as f:
                    f.write(ef.payload())
                os.chmod(path, 0o600)
            yield _rewrite(args, [f"file:{p}" for p in paths]), ()
        finally:
            for p in paths:
                try:
                    os.remove(p)
                except FileNotFoundError:
                    pass


def default_secret_channel() -> SecretChannel:
    if os.name == "posix":
        return PipeSecretChannel()
    return TempFileSecretChannel()


class OSExecutor:
    """Runs the real openssl binary."""

    def __init__(
        self,
        binary: str = "openssl",
        secret_channel: Optional[SecretChannel] = None,
        poll_interval: float = 0.05,
    ) -> None:
        self.binary = binary
        self.secret_channel = secret_channel or default_secret_channel()
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(cls, settings) -> "OSExecutor":
        return cls(binary=settings.OPENSSL_BIN)

    def run(self, *args: str, cancel: Optional[CancelToken] = None) -> ToolResult:
        return self.run_with_extra_files((), *args, cancel=cancel)

    def run_with_extra_files(
        self,
        files: Sequence[ExtraFile],
        *args: str,
        cancel: Optional[CancelToken] = None,
    ) -> ToolResult:
        check(cancel)
        with self.secret_channel.prepare(files, args) as (argv, pass_fds):
            logger.debug("exec %s %s", self.binary, " ".join(argv))
            try:
                proc = subprocess.Popen(
                    [self.binary, *argv],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    pass_fds=pass_fds,
                )
            except OSError as e:
                raise ToolError(f"cannot run {self.binary}: {e}") from e
            stdout, stderr = self._wait(proc, cancel)
        return ToolResult(stdout=stdout, stderr=stderr, returncode=proc.returncode)

    def _wait(self, proc: subprocess.Popen, cancel: Optional[CancelToken]) -> Tuple[bytes, bytes]:
        if cancel is None:
            return proc.communicate()
        while True:
            try:
                return proc.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                if cancel.cancelled:
                    proc.kill()
                    proc.communicate()
                    logger.debug("killed pid %s: %s", proc.pid, cancel.reason())
                    raise Canceled(cancel.reason())
