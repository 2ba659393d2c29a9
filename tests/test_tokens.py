from __future__ import annotations

import time

import pytest

from messagely import tokens as tokens_module
from messagely.errors import InvalidToken, ValidationError
from messagely.tokens import TokenIssuer


def test_issued_token_verifies_to_identity() -> None:
    issuer = TokenIssuer("tests-secret")
    token = issuer.issue("alice")

    assert token != "alice"
    assert issuer.verify(token) == "alice"


def test_token_signed_with_other_secret_is_rejected() -> None:
    token = TokenIssuer("first-secret").issue("alice")

    with pytest.raises(InvalidToken):
        TokenIssuer("second-secret").verify(token)


@pytest.mark.parametrize("token", ["", "garbage", "gAAAAABnot-a-real-token", "ünïcode"])
def test_malformed_tokens_are_rejected(token: str) -> None:
    with pytest.raises(InvalidToken):
        TokenIssuer("tests-secret").verify(token)


def test_tampered_token_is_rejected() -> None:
    issuer = TokenIssuer("tests-secret")
    token = issuer.issue("alice")
    tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")

    with pytest.raises(InvalidToken):
        issuer.verify(tampered)


def test_tokens_do_not_expire_without_ttl() -> None:
    cipher = tokens_module._build_cipher("tests-secret")
    old = cipher.encrypt_at_time(b"alice", int(time.time()) - 10 * 365 * 24 * 3600).decode("ascii")

    assert TokenIssuer("tests-secret").verify(old) == "alice"


def test_ttl_rejects_old_tokens() -> None:
    cipher = tokens_module._build_cipher("tests-secret")
    old = cipher.encrypt_at_time(b"alice", int(time.time()) - 120).decode("ascii")
    issuer = TokenIssuer("tests-secret", ttl=60)

    with pytest.raises(InvalidToken):
        issuer.verify(old)
    assert issuer.verify(issuer.issue("alice")) == "alice"


def test_issuer_requires_secret_and_identity() -> None:
    with pytest.raises(ValueError):
        TokenIssuer("")
    with pytest.raises(ValidationError):
        TokenIssuer("tests-secret").issue("")
