"""Domain models returned by the messaging services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UserSummary:
    """Public profile fields shared with other users."""

    username: str
    first_name: str
    last_name: str
    phone: str


@dataclass(frozen=True)
class UserProfile(UserSummary):
    """Full profile, only visible to the user it describes."""

    joined_at: datetime
    last_login_at: Optional[datetime]

    def summary(self) -> UserSummary:
        return UserSummary(
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
        )


@dataclass(frozen=True)
class Message:
    """A stored message as written by its sender."""

    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


@dataclass(frozen=True)
class MessageDetail:
    """A message with both participants' public profiles embedded."""

    id: int
    body: str
    sent_at: datetime
    read_at: Optional[datetime]
    from_user: UserSummary
    to_user: UserSummary


@dataclass(frozen=True)
class OutgoingMessage:
    id: int
    to_user: UserSummary
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


@dataclass(frozen=True)
class IncomingMessage:
    id: int
    from_user: UserSummary
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


@dataclass(frozen=True)
class ReadReceipt:
    id: int
    read_at: datetime


__all__ = [
    "IncomingMessage",
    "Message",
    "MessageDetail",
    "OutgoingMessage",
    "ReadReceipt",
    "UserProfile",
    "UserSummary",
]
