"""Password hashing for stored user credentials."""
from __future__ import annotations

from passlib.context import CryptContext

from .config import DEFAULT_WORK_FACTOR, Settings
from .errors import ValidationError


class CredentialStore:
    """Hash and verify passwords with salted bcrypt.

    The work factor is the bcrypt cost (log2 of the number of rounds) and is
    fixed for the lifetime of the store.
    """

    def __init__(self, *, work_factor: int = DEFAULT_WORK_FACTOR) -> None:
        self._work_factor = work_factor
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=work_factor,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        return cls(work_factor=settings.bcrypt_work_factor)

    @property
    def work_factor(self) -> int:
        return self._work_factor

    def hash(self, plaintext: str) -> str:
        if not plaintext:
            raise ValidationError("Password must not be empty")
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return ``True`` if *plaintext* matches *hashed*; never raises on mismatch."""

        if not plaintext or not hashed:
            return False
        try:
            return self._context.verify(plaintext, hashed)
        except (TypeError, ValueError):
            return False


__all__ = ["CredentialStore"]
