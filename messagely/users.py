"""Registration, authentication and per-user queries."""
from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

from .credentials import CredentialStore
from .database import Database
from .errors import Forbidden, NotFound, ValidationError
from .models import IncomingMessage, OutgoingMessage, UserProfile, UserSummary
from .tokens import TokenIssuer

logger = logging.getLogger("messagely.users")

REGISTRATION_FIELDS = ("username", "password", "first_name", "last_name", "phone")


def normalize_username(value: object) -> str:
    """Usernames are compared and stored without surrounding whitespace."""

    if value is None:
        return ""
    return str(value).strip()


def _is_present(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def require_fields(fields: Mapping[str, object], names: Sequence[str], message: str) -> None:
    """Raise :class:`ValidationError` unless every named field is a non-blank string."""

    if not all(_is_present(fields.get(name)) for name in names):
        raise ValidationError(message)


class UserService:
    """Stateless operations on user accounts.

    Authorization rules take the caller's verified identity as an explicit
    argument so they can be exercised without an HTTP request.
    """

    def __init__(
        self,
        database: Database,
        credentials: CredentialStore,
        tokens: Optional[TokenIssuer] = None,
    ) -> None:
        self._database = database
        self._credentials = credentials
        self._tokens = tokens

    def register(self, fields: Mapping[str, object]) -> UserSummary:
        """Create a user and return its public profile.

        The password is hashed before it reaches the store and is never part
        of the returned value.
        """

        require_fields(
            fields,
            REGISTRATION_FIELDS,
            "Please provide username, password, first name, last name and phone number",
        )
        username = normalize_username(fields["username"])
        password_hash = self._credentials.hash(str(fields["password"]))
        profile = self._database.create_user(
            username,
            password_hash,
            first_name=str(fields["first_name"]).strip(),
            last_name=str(fields["last_name"]).strip(),
            phone=str(fields["phone"]).strip(),
        )
        logger.info("Registered user %s", username)
        return profile.summary()

    def authenticate(self, username: str, password: str) -> bool:
        username = normalize_username(username)
        if not username or not password:
            raise ValidationError("Please provide a username and password")

        stored_hash = self._database.get_password_hash(username)
        if stored_hash is None:
            raise NotFound("User not found")
        return self._credentials.verify(password, stored_hash)

    def touch_login(self, username: str) -> None:
        username = normalize_username(username)
        if not username:
            raise ValidationError("Please provide a username")
        if self._database.update_last_login(username) is None:
            raise NotFound("User not found")

    def login(self, username: str, password: str) -> str:
        """Authenticate, record the login and return a bearer token."""

        username = normalize_username(username)
        if not self.authenticate(username, password):
            logger.warning("Failed login attempt for %s", username)
            raise ValidationError("Invalid username or password")
        self.touch_login(username)
        logger.info("User %s logged in", username)
        return self._issue_token(username)

    def register_and_login(self, fields: Mapping[str, object]) -> str:
        user = self.register(fields)
        return self._issue_token(user.username)

    def list_all(self) -> List[UserSummary]:
        return self._database.list_users()

    def get_profile(self, username: str, caller: str) -> UserProfile:
        username = normalize_username(username)
        if not username:
            raise ValidationError("Please provide a username")
        self._ensure_self(username, caller, "You may only view your own profile")

        profile = self._database.get_user(username)
        if profile is None:
            raise NotFound("User not found")
        return profile

    def messages_from(self, username: str, caller: str) -> List[OutgoingMessage]:
        username = normalize_username(username)
        self._ensure_self(username, caller, "You may only list your own sent messages")
        self._ensure_exists(username)
        return self._database.list_messages_from(username)

    def messages_to(self, username: str, caller: str) -> List[IncomingMessage]:
        username = normalize_username(username)
        self._ensure_self(username, caller, "You may only list your own received messages")
        self._ensure_exists(username)
        return self._database.list_messages_to(username)

    def _ensure_self(self, username: str, caller: str, message: str) -> None:
        if not caller or caller != username:
            logger.warning("User %s denied access to data of %s", caller, username)
            raise Forbidden(message)

    def _ensure_exists(self, username: str) -> None:
        if not self._database.user_exists(username):
            raise NotFound("User not found")

    def _issue_token(self, username: str) -> str:
        if self._tokens is None:
            raise RuntimeError("UserService was created without a token issuer")
        return self._tokens.issue(username)


__all__ = ["REGISTRATION_FIELDS", "UserService", "normalize_username", "require_fields"]
