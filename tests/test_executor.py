import os
import sys
import time

import pytest

from _util import require_openssl
from certconv.cancel import CancelToken
from certconv.errors import Canceled, ToolError, is_canceled
from certconv.executor import (
    ExtraFile,
    OSExecutor,
    PipeSecretChannel,
    TempFileSecretChannel,
    _rewrite,
    fd_arg,
)

READ_FD = (
    "import os, sys\n"
    "src = sys.argv[1]\n"
    "if src.startswith('fd:'):\n"
    "    data = os.read(int(src[3:]), 1024)\n"
    "else:\n"
    "    data = open(src[5:], 'rb').read()\n"
    "sys.stdout.write(repr(data) + ' ' + src.split(':')[0])\n"
)


def test_fd_arg_numbering():
    assert fd_arg(0) == "fd:3"
    assert fd_arg(1) == "fd:4"


def test_extra_file_payload_is_newline_terminated():
    assert ExtraFile(b"pw").payload() == b"pw\n"
    assert ExtraFile(b"pw\n").payload() == b"pw\n"
    assert ExtraFile(b"").payload() == b"\n"


@pytest.mark.skipif(os.name != "posix", reason="descriptor inheritance is POSIX only")
def test_pipe_channel_hands_secret_to_child():
    ex = OSExecutor(binary=sys.executable, secret_channel=PipeSecretChannel())
    res = ex.run_with_extra_files([ExtraFile(b"s3cret")], "-c", READ_FD, fd_arg(0))
    assert res.ok, res.stderr_text
    assert res.stdout_text == "b's3cret\\n' fd"


READ_TWO = (
    "import os, sys\n"
    "out = [os.read(int(a[3:]), 1024) for a in sys.argv[1:]]\n"
    "sys.stdout.write(repr(out))\n"
)


def test_rewrite_is_positional_when_real_fds_overlap_placeholders():
    args = ["-passin", "fd:3", "-passout", "fd:4"]
    assert _rewrite(args, ["fd:4", "fd:5"]) == ["-passin", "fd:4", "-passout", "fd:5"]
    assert _rewrite(args, ["fd:5", "fd:3"]) == ["-passin", "fd:5", "-passout", "fd:3"]


@pytest.mark.skipif(os.name != "posix", reason="descriptor inheritance is POSIX only")
def test_pipe_channel_keeps_secret_order():
    # hold a low descriptor so the pipes land on numbers that collide with placeholders
    held = os.open(os.devnull, os.O_RDONLY)
    try:
        ex = OSExecutor(binary=sys.executable, secret_channel=PipeSecretChannel())
        res = ex.run_with_extra_files(
            [ExtraFile(b"keypw"), ExtraFile(b"exportpw")], "-c", READ_TWO, fd_arg(0), fd_arg(1)
        )
    finally:
        os.close(held)
    assert res.ok, res.stderr_text
    assert res.stdout_text == "[b'keypw\\n', b'exportpw\\n']"


def test_temp_file_channel_rewrites_and_cleans_up(tmp_path):
    ex = OSExecutor(binary=sys.executable, secret_channel=TempFileSecretChannel(str(tmp_path)))
    res = ex.run_with_extra_files([ExtraFile(b"s3cret")], "-c", READ_FD, fd_arg(0))
    assert res.ok, res.stderr_text
    assert res.stdout_text == "b's3cret\\n' file"
    assert list(tmp_path.iterdir()) == []


def test_secret_never_on_command_line(tmp_path, caplog):
    ex = OSExecutor(binary=sys.executable, secret_channel=TempFileSecretChannel(str(tmp_path)))
    with caplog.at_level("DEBUG", logger="certconv.executor"):
        ex.run_with_extra_files([ExtraFile(b"hunter2")], "-c", READ_FD, fd_arg(0))
    assert "hunter2" not in caplog.text


def test_missing_binary_is_tool_error():
    ex = OSExecutor(binary="/nonexistent/certconv-openssl")
    with pytest.raises(ToolError, match="cannot run"):
        ex.run("version")


def test_cancel_before_start_does_not_spawn():
    token = CancelToken()
    token.cancel()
    ex = OSExecutor(binary="/nonexistent/certconv-openssl")
    with pytest.raises(Canceled) as ei:
        ex.run("version", cancel=token)
    assert is_canceled(ei.value)
    assert str(ei.value) == "operation canceled"


def test_deadline_kills_running_child():
    ex = OSExecutor(binary=sys.executable, poll_interval=0.02)
    start = time.monotonic()
    with pytest.raises(Canceled, match="deadline exceeded"):
        ex.run("-c", "import time; time.sleep(30)", cancel=CancelToken.with_timeout(0.3))
    assert time.monotonic() - start < 10


def test_nonzero_exit_is_a_result_not_an_error():
    ex = OSExecutor(binary=sys.executable)
    res = ex.run("-c", "import sys; sys.stderr.write('boom\\n'); sys.exit(3)")
    assert not res.ok
    assert res.returncode == 3
    assert res.stderr_text == "boom"


def test_real_openssl_version():
    ex = OSExecutor(binary=require_openssl())
    res = ex.run("version")
    assert res.ok
    assert "SSL" in res.stdout_text
