"""Bearer token authentication for the messaging API."""
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import InvalidToken
from .tokens import TokenIssuer

logger = logging.getLogger("messagely.security")


class TokenAuth:
    """Resolve the caller's username from the ``Authorization`` header."""

    def __init__(self, issuer: TokenIssuer) -> None:
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> str:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise InvalidToken("Missing bearer token")

        try:
            return self._issuer.verify(credentials.credentials)
        except InvalidToken:
            logger.warning("Rejected invalid bearer token for %s", request.url.path)
            raise


__all__ = ["TokenAuth"]
