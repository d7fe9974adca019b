import pytest

from _util import fail
from certconv.classify import (
    classify_modulus_error,
    classify_pfx_error,
    is_legacy_provider_error,
    prefer_stderr,
)
from certconv.errors import (
    ErrorKind,
    NotRSAError,
    PFXError,
    ToolError,
    error_kind,
    is_not_rsa,
    is_pfx_incorrect_password,
    is_pfx_legacy_unsupported,
    is_pfx_not_pkcs12,
)


@pytest.mark.parametrize(
    "stderr",
    [
        "Mac verify error: invalid password?",
        "MAC verify failure",
        "error:1C800064:Provider routines::bad decrypt",
        "Password is incorrect",
    ],
)
def test_incorrect_password(stderr):
    err = classify_pfx_error(fail(stderr))
    assert isinstance(err, PFXError)
    assert is_pfx_incorrect_password(err)
    assert err.stderr == stderr


@pytest.mark.parametrize(
    "stderr",
    [
        "error:0680007B:asn1 encoding routines::header too long expecting an asn1 sequence",
        "not a PKCS#12 file",
        "asn1 encoding routines:ASN1_item_embed_d2i:nested asn1 error:Type=PKCS12",
        "ASN1 wrong tag",
    ],
)
def test_not_pkcs12(stderr):
    assert is_pfx_not_pkcs12(classify_pfx_error(fail(stderr)))


def test_legacy_wins_over_password_text():
    stderr = "inner_evp_generic_fetch:unsupported ... mac verify failure"
    err = classify_pfx_error(fail(stderr))
    assert is_pfx_legacy_unsupported(err)
    assert is_legacy_provider_error("INNER_EVP_GENERIC_FETCH:UNSUP")


def test_unclassified_keeps_stderr_verbatim():
    err = classify_pfx_error(fail("something odd happened"), "create PFX")
    assert type(err) is ToolError
    assert error_kind(err) is ErrorKind.TOOL_FAILURE
    assert str(err) == "create PFX: something odd happened"
    assert err.stderr == "something odd happened"


def test_exit_status_only_without_stderr():
    err = prefer_stderr(fail("", code=2))
    assert str(err) == "exit status 2"
    assert err.returncode == 2


def test_pfx_error_rejects_other_kinds():
    with pytest.raises(ValueError):
        PFXError(ErrorKind.NOT_RSA)


@pytest.mark.parametrize(
    "stderr",
    [
        "modulus: non-RSA key",
        "Not an RSA key",
        "Not RSA key",
        "pkey: Can't use -modulus with non-RSA keys",
        "unknown option -modulus",
        "Expecting: ANY RSA PRIVATE KEY",
    ],
)
def test_modulus_not_rsa(stderr):
    err = classify_modulus_error(fail(stderr))
    assert isinstance(err, NotRSAError)
    assert is_not_rsa(err)


def test_modulus_other_failure():
    err = classify_modulus_error(fail("No such file or directory"))
    assert type(err) is ToolError
