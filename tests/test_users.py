"""Tests for registration, authentication and per-user queries."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import pytest

from messagely.credentials import CredentialStore
from messagely.database import Database
from messagely.errors import Conflict, Forbidden, NotFound, ValidationError
from messagely.tokens import TokenIssuer
from messagely.users import UserService


ALICE = {
    "username": "alice",
    "password": "pw1",
    "first_name": "A",
    "last_name": "A",
    "phone": "555-0001",
}
BOB = {
    "username": "bob",
    "password": "pw2",
    "first_name": "B",
    "last_name": "B",
    "phone": "555-0002",
}


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "messagely.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def tokens() -> TokenIssuer:
    return TokenIssuer("tests-secret")


@pytest.fixture()
def users(database: Database, tokens: TokenIssuer) -> UserService:
    return UserService(database, CredentialStore(work_factor=4), tokens)


def test_register_then_authenticate(users: UserService) -> None:
    users.register(ALICE)

    assert users.authenticate("alice", "pw1") is True
    assert users.authenticate("alice", "pw2") is False
    assert users.authenticate("alice", "PW1") is False


def test_register_returns_profile_without_credentials(users: UserService, database: Database) -> None:
    summary = users.register(ALICE)

    payload = asdict(summary)
    assert payload == {"username": "alice", "first_name": "A", "last_name": "A", "phone": "555-0001"}
    assert "pw1" not in payload.values()
    assert database.get_password_hash("alice") != "pw1"


def test_register_sets_join_and_login_timestamps(users: UserService) -> None:
    users.register(ALICE)

    profile = users.get_profile("alice", "alice")
    assert profile.joined_at is not None
    assert profile.last_login_at == profile.joined_at


def test_duplicate_registration_conflicts(users: UserService) -> None:
    users.register(ALICE)

    with pytest.raises(Conflict):
        users.register({**ALICE, "password": "different"})


@pytest.mark.parametrize("missing", ["username", "password", "first_name", "last_name", "phone"])
def test_register_requires_every_field(users: UserService, missing: str) -> None:
    incomplete = {key: value for key, value in ALICE.items() if key != missing}

    with pytest.raises(ValidationError):
        users.register(incomplete)
    with pytest.raises(ValidationError):
        users.register({**ALICE, missing: "   "})


def test_authenticate_validates_and_reports_unknown_users(users: UserService) -> None:
    with pytest.raises(ValidationError):
        users.authenticate("", "pw1")
    with pytest.raises(ValidationError):
        users.authenticate("alice", "")
    with pytest.raises(NotFound):
        users.authenticate("ghost", "pw1")


def test_touch_login_strictly_increases_last_login(users: UserService) -> None:
    users.register(ALICE)
    before = users.get_profile("alice", "alice").last_login_at

    users.touch_login("alice")
    after = users.get_profile("alice", "alice").last_login_at

    assert after > before
    with pytest.raises(NotFound):
        users.touch_login("ghost")


def test_login_issues_token_for_identity(users: UserService, tokens: TokenIssuer) -> None:
    users.register(ALICE)

    token = users.login("alice", "pw1")

    assert tokens.verify(token) == "alice"
    with pytest.raises(ValidationError, match="Invalid username or password"):
        users.login("alice", "wrong")


def test_usernames_are_trimmed_everywhere(users: UserService, tokens: TokenIssuer) -> None:
    summary = users.register({**ALICE, "username": " alice "})

    assert summary.username == "alice"
    assert users.authenticate(" alice ", "pw1") is True
    assert users.authenticate("alice", "pw1") is True

    users.touch_login("  alice")
    assert tokens.verify(users.login("alice\t", "pw1")) == "alice"
    assert users.get_profile(" alice ", "alice").username == "alice"
    assert users.messages_from("alice ", "alice") == []
    assert users.messages_to(" alice", "alice") == []


def test_register_and_login_returns_token(users: UserService, tokens: TokenIssuer) -> None:
    token = users.register_and_login(BOB)

    assert tokens.verify(token) == "bob"


def test_login_requires_token_issuer(database: Database) -> None:
    service = UserService(database, CredentialStore(work_factor=4))
    service.register(ALICE)

    with pytest.raises(RuntimeError):
        service.login("alice", "pw1")


def test_list_all_returns_public_profiles(users: UserService) -> None:
    assert users.list_all() == []

    users.register(BOB)
    users.register(ALICE)

    listed = users.list_all()
    assert [user.username for user in listed] == ["alice", "bob"]
    assert all(not hasattr(user, "joined_at") for user in listed)


def test_get_profile_rules(users: UserService) -> None:
    users.register(ALICE)
    users.register(BOB)

    assert users.get_profile("alice", "alice").phone == "555-0001"
    with pytest.raises(ValidationError):
        users.get_profile("", "alice")
    with pytest.raises(Forbidden):
        users.get_profile("alice", "bob")
    with pytest.raises(NotFound):
        users.get_profile("ghost", "ghost")


def test_message_lists_are_scoped_to_the_caller(users: UserService, database: Database) -> None:
    users.register(ALICE)
    users.register(BOB)
    message = database.create_message("alice", "bob", "hi")

    sent = users.messages_from("alice", "alice")
    received = users.messages_to("bob", "bob")

    assert [item.id for item in sent] == [message.id]
    assert sent[0].to_user.username == "bob"
    assert sent[0].to_user.phone == "555-0002"
    assert [item.id for item in received] == [message.id]
    assert received[0].from_user.username == "alice"
    assert received[0].read_at is None

    assert users.messages_to("alice", "alice") == []
    assert users.messages_from("bob", "bob") == []

    with pytest.raises(Forbidden):
        users.messages_from("alice", "bob")
    with pytest.raises(Forbidden):
        users.messages_to("bob", "alice")
    with pytest.raises(NotFound):
        users.messages_to("ghost", "ghost")
