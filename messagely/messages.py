"""Message creation, retrieval and read receipts."""
from __future__ import annotations

import logging
from typing import Mapping

from .database import Database
from .errors import Forbidden, NotFound
from .models import Message, MessageDetail, ReadReceipt
from .users import normalize_username, require_fields

logger = logging.getLogger("messagely.messages")


class MessageService:
    """Stateless message operations, each checked against the caller's identity.

    A message moves from *created* to *read* exactly once, and only its
    recipient can trigger that transition.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def create(self, fields: Mapping[str, object], caller: str) -> Message:
        require_fields(
            fields,
            ("from_username", "to_username", "body"),
            "Please provide a FROM user, a TO user and a message body",
        )
        from_username = normalize_username(fields["from_username"])
        if not caller or caller != from_username:
            logger.warning("User %s tried to send a message as %s", caller, from_username)
            raise Forbidden("You can not create a message from a user that isn't you")

        message = self._database.create_message(
            from_username,
            normalize_username(fields["to_username"]),
            str(fields["body"]),
        )
        logger.info("Message %s sent from %s to %s", message.id, message.from_username, message.to_username)
        return message

    def get(self, message_id: int, caller: str) -> MessageDetail:
        message = self._database.get_message_detail(message_id)
        if message is None:
            raise NotFound("Message not found")
        if caller not in (message.from_user.username, message.to_user.username):
            logger.warning("User %s denied access to message %s", caller, message_id)
            raise Forbidden("You are not allowed to view this message")
        return message

    def mark_read(self, message_id: int, caller: str) -> ReadReceipt:
        """Mark a message read on behalf of its recipient.

        Marking an already read message is a no-op that returns the first
        ``read_at``. The recipient of a message never changes, so checking it
        before the update cannot be invalidated by a concurrent request.
        """

        message = self._database.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")
        if caller != message.to_username:
            logger.warning("User %s tried to mark message %s as read", caller, message_id)
            raise Forbidden("You are not authorized to mark this message as read")

        receipt = self._database.mark_message_read(message_id)
        if receipt is None:
            raise NotFound("Message not found")
        if not message.is_read:
            logger.info("Message %s read by %s", message_id, caller)
        return receipt


__all__ = ["MessageService"]
