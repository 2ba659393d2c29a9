"""Signed identity tokens for authenticated sessions."""
from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet
from cryptography.fernet import InvalidToken as FernetInvalidToken

from .config import Settings
from .errors import InvalidToken, ValidationError


def _build_cipher(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    key = base64.urlsafe_b64encode(digest)
    return Fernet(key)


class TokenIssuer:
    """Issue and verify bearer tokens that bind a username.

    Tokens are Fernet tokens keyed from the process secret, so they are both
    authenticated and opaque. Tokens never expire unless ``ttl`` is set.
    """

    def __init__(self, secret_key: str, *, ttl: Optional[int] = None) -> None:
        if not secret_key:
            raise ValueError("A secret key is required to issue tokens")
        self._cipher = _build_cipher(secret_key)
        self._ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(settings.secret_key, ttl=settings.token_ttl)

    def issue(self, identity: str) -> str:
        if not identity:
            raise ValidationError("Cannot issue a token for an empty identity")
        token = self._cipher.encrypt(identity.encode("utf-8"))
        return token.decode("ascii")

    def verify(self, token: str) -> str:
        if not token:
            raise InvalidToken("Missing token")
        try:
            payload = self._cipher.decrypt(token.encode("utf-8"), ttl=self._ttl)
            identity = payload.decode("utf-8")
        except (FernetInvalidToken, UnicodeDecodeError) as exc:
            raise InvalidToken("Invalid or expired token") from exc
        if not identity:
            raise InvalidToken("Invalid or expired token")
        return identity


__all__ = ["TokenIssuer"]
