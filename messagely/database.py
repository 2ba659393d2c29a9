"""SQLite-backed persistence for users and messages."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .errors import Conflict, NotFound
from .models import (
    IncomingMessage,
    Message,
    MessageDetail,
    OutgoingMessage,
    ReadReceipt,
    UserProfile,
    UserSummary,
)


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "messagely.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc)


def _is_foreign_key_violation(exc: sqlite3.IntegrityError) -> bool:
    return "FOREIGN KEY constraint failed" in str(exc)


# SQLite INTEGER columns hold signed 64-bit values; sqlite3 raises
# OverflowError when binding anything wider.
_MIN_ROW_ID = -(2**63)
_MAX_ROW_ID = 2**63 - 1


def _is_storable_id(value: int) -> bool:
    return _MIN_ROW_ID <= value <= _MAX_ROW_ID


_MESSAGE_DETAIL_QUERY = """
    SELECT m.id, m.body, m.sent_at, m.read_at,
           f.username AS from_username, f.first_name AS from_first_name,
           f.last_name AS from_last_name, f.phone AS from_phone,
           t.username AS to_username, t.first_name AS to_first_name,
           t.last_name AS to_last_name, t.phone AS to_phone
      FROM messages AS m
      JOIN users AS f ON m.from_username = f.username
      JOIN users AS t ON m.to_username = t.username
     WHERE m.id = ?
"""


class Database:
    """Simple wrapper around SQLite for persisting users and messages.

    Every method opens its own connection and commits when it returns, so no
    state is shared between calls.
    """

    def __init__(self, path: Path, *, clock: Callable[[], datetime] | None = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._clock = clock or _current_timestamp

    @property
    def path(self) -> Path:
        return self._path

    def now(self) -> datetime:
        return self._clock()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    username TEXT PRIMARY KEY,
                    password_hash TEXT NOT NULL,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    joined_at TEXT NOT NULL,
                    last_login_at TEXT
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    from_username TEXT NOT NULL REFERENCES users(username) ON DELETE CASCADE,
                    to_username TEXT NOT NULL REFERENCES users(username) ON DELETE CASCADE,
                    body TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    read_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_messages_from_username ON messages(from_username);
                CREATE INDEX IF NOT EXISTS idx_messages_to_username ON messages(to_username);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        first_name: str,
        last_name: str,
        phone: str,
    ) -> UserProfile:
        """Insert a new user; the unique key on ``username`` reports duplicates."""

        joined_at = self.now()
        serialized = _serialize_datetime(joined_at)

        with self._connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (
                        username, password_hash, first_name, last_name, phone, joined_at, last_login_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (username, password_hash, first_name, last_name, phone, serialized, serialized),
                )
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise Conflict("Username already taken. Please select a different username") from exc
                raise

        return UserProfile(
            username=username,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            joined_at=joined_at,
            last_login_at=joined_at,
        )

    def get_user(self, username: str) -> Optional[UserProfile]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def user_exists(self, username: str) -> bool:
        with self._connection() as conn:
            row = conn.execute("SELECT 1 FROM users WHERE username = ?", (username,)).fetchone()
        return row is not None

    def get_password_hash(self, username: str) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT password_hash FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None:
            return None
        return str(row["password_hash"])

    def list_users(self) -> List[UserSummary]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT username, first_name, last_name, phone FROM users ORDER BY username"
            ).fetchall()
        return [self._row_to_summary(row) for row in rows]

    def update_last_login(self, username: str) -> Optional[datetime]:
        """Advance ``last_login_at`` and return the new value.

        The stored timestamp always moves forward, even when the clock has not
        ticked since the previous login. The write lock is taken before the
        previous value is read so concurrent logins are serialised.
        """

        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT last_login_at FROM users WHERE username = ?",
                (username,),
            ).fetchone()
            if row is None:
                return None

            logged_in_at = self.now()
            previous = _parse_datetime(row["last_login_at"])
            if previous is not None and logged_in_at <= previous:
                logged_in_at = previous + timedelta(microseconds=1)

            conn.execute(
                "UPDATE users SET last_login_at = ? WHERE username = ?",
                (_serialize_datetime(logged_in_at), username),
            )
        return logged_in_at

    # ------------------------------------------------------------------
    # Message management
    # ------------------------------------------------------------------
    def create_message(self, from_username: str, to_username: str, body: str) -> Message:
        sent_at = self.now()
        with self._connection() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO messages (from_username, to_username, body, sent_at, read_at)
                    VALUES (?, ?, ?, ?, NULL)
                    """,
                    (from_username, to_username, body, _serialize_datetime(sent_at)),
                )
            except sqlite3.IntegrityError as exc:
                if _is_foreign_key_violation(exc):
                    raise NotFound("Sender and recipient must be registered users") from exc
                raise
            message_id = cursor.lastrowid

        return Message(
            id=int(message_id),
            from_username=from_username,
            to_username=to_username,
            body=body,
            sent_at=sent_at,
            read_at=None,
        )

    def get_message(self, message_id: int) -> Optional[Message]:
        if not _is_storable_id(message_id):
            return None
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_message(row)

    def get_message_detail(self, message_id: int) -> Optional[MessageDetail]:
        if not _is_storable_id(message_id):
            return None
        with self._connection() as conn:
            row = conn.execute(_MESSAGE_DETAIL_QUERY, (message_id,)).fetchone()
        if row is None:
            return None
        return MessageDetail(
            id=int(row["id"]),
            body=str(row["body"]),
            sent_at=_parse_datetime(row["sent_at"]),  # type: ignore[arg-type]
            read_at=_parse_datetime(row["read_at"]),
            from_user=self._row_to_summary(row, prefix="from_"),
            to_user=self._row_to_summary(row, prefix="to_"),
        )

    def mark_message_read(self, message_id: int) -> Optional[ReadReceipt]:
        """Set ``read_at`` once; later calls leave the first timestamp in place."""

        if not _is_storable_id(message_id):
            return None
        read_at = _serialize_datetime(self.now())
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE messages SET read_at = COALESCE(read_at, ?) WHERE id = ?",
                (read_at, message_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT id, read_at FROM messages WHERE id = ?", (message_id,)).fetchone()

        return ReadReceipt(id=int(row["id"]), read_at=_parse_datetime(row["read_at"]))  # type: ignore[arg-type]

    def list_messages_from(self, username: str) -> List[OutgoingMessage]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT m.id, m.body, m.sent_at, m.read_at,
                       u.username, u.first_name, u.last_name, u.phone
                  FROM messages AS m
                  JOIN users AS u ON m.to_username = u.username
                 WHERE m.from_username = ?
                 ORDER BY m.id
                """,
                (username,),
            ).fetchall()
        return [
            OutgoingMessage(
                id=int(row["id"]),
                to_user=self._row_to_summary(row),
                body=str(row["body"]),
                sent_at=_parse_datetime(row["sent_at"]),  # type: ignore[arg-type]
                read_at=_parse_datetime(row["read_at"]),
            )
            for row in rows
        ]

    def list_messages_to(self, username: str) -> List[IncomingMessage]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT m.id, m.body, m.sent_at, m.read_at,
                       u.username, u.first_name, u.last_name, u.phone
                  FROM messages AS m
                  JOIN users AS u ON m.from_username = u.username
                 WHERE m.to_username = ?
                 ORDER BY m.id
                """,
                (username,),
            ).fetchall()
        return [
            IncomingMessage(
                id=int(row["id"]),
                from_user=self._row_to_summary(row),
                body=str(row["body"]),
                sent_at=_parse_datetime(row["sent_at"]),  # type: ignore[arg-type]
                read_at=_parse_datetime(row["read_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_summary(self, row: sqlite3.Row, prefix: str = "") -> UserSummary:
        return UserSummary(
            username=str(row[f"{prefix}username"]),
            first_name=str(row[f"{prefix}first_name"]),
            last_name=str(row[f"{prefix}last_name"]),
            phone=str(row[f"{prefix}phone"]),
        )

    def _row_to_profile(self, row: sqlite3.Row) -> UserProfile:
        return UserProfile(
            username=str(row["username"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
            phone=str(row["phone"]),
            joined_at=_parse_datetime(str(row["joined_at"])),  # type: ignore[arg-type]
            last_login_at=_parse_datetime(row["last_login_at"]),
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=int(row["id"]),
            from_username=str(row["from_username"]),
            to_username=str(row["to_username"]),
            body=str(row["body"]),
            sent_at=_parse_datetime(str(row["sent_at"])),  # type: ignore[arg-type]
            read_at=_parse_datetime(row["read_at"]),
        )


__all__ = ["Database", "resolve_database_path"]
