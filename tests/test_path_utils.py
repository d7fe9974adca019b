import os

import pytest

from certconv.errors import InvalidInputError
from certconv.path_utils import parse_file_uri, resolve_optional, resolve_path


def test_parse_file_uri(tmp_path):
    p = tmp_path / "a b.txt"
    got = parse_file_uri(f"file://{str(p).replace(' ', '%20')}")
    assert got == p


def test_resolve_expands_user(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert resolve_path("~/x.pem") == (tmp_path / "x.pem").resolve()


def test_resolve_optional():
    assert resolve_optional("") == ""
    assert resolve_optional(None) == ""
    assert os.path.isabs(resolve_optional("ca.pem"))


def test_empty_and_remote_rejected():
    with pytest.raises(InvalidInputError, match="path is required"):
        resolve_path("  ")
    with pytest.raises(InvalidInputError, match="remote file URI"):
        parse_file_uri("file://fileserver/share/cert.pem")
