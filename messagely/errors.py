"""Error kinds raised by the messaging core.

Every error carries a ``kind`` and a human readable message. The HTTP layer
maps ``status_code`` onto the response and returns the message as the
``detail`` of the body.
"""
from __future__ import annotations


class MessagelyError(Exception):
    """Base class for request-terminal failures caused by caller input."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "kind": self.kind}


class ValidationError(MessagelyError):
    kind = "validation_error"
    status_code = 400


class NotFound(MessagelyError):
    kind = "not_found"
    status_code = 404


class Conflict(MessagelyError):
    kind = "conflict"
    status_code = 400


class Forbidden(MessagelyError):
    kind = "forbidden"
    status_code = 401


class InvalidToken(MessagelyError):
    kind = "invalid_token"
    status_code = 401


__all__ = [
    "Conflict",
    "Forbidden",
    "InvalidToken",
    "MessagelyError",
    "NotFound",
    "ValidationError",
]
