"""FastAPI application exposing the messaging service over HTTP."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, load_settings
from .credentials import CredentialStore
from .database import Database
from .errors import InvalidToken, MessagelyError, ValidationError
from .messages import MessageService
from .models import (
    IncomingMessage,
    Message,
    MessageDetail,
    OutgoingMessage,
    ReadReceipt,
    UserProfile,
    UserSummary,
)
from .security import TokenAuth
from .tokens import TokenIssuer
from .users import UserService

logger = logging.getLogger("messagely.api")

# SQLite stores ids as signed 64-bit integers.
MAX_MESSAGE_ID = 2**63 - 1


class RegisterRequest(BaseModel):
    username: Optional[str] = Field(default=None, max_length=64)
    password: Optional[str] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class TokenResponse(BaseModel):
    token: str


class CreateMessageRequest(BaseModel):
    to_username: Optional[str] = None
    body: Optional[str] = None
    from_username: Optional[str] = Field(
        default=None,
        description="Defaults to the authenticated user",
    )


class UserSummaryView(BaseModel):
    username: str
    first_name: str
    last_name: str
    phone: str


class UserProfileView(UserSummaryView):
    joined_at: datetime
    last_login_at: Optional[datetime]


class UserListResponse(BaseModel):
    users: List[UserSummaryView]


class UserProfileResponse(BaseModel):
    user: UserProfileView


class MessageView(BaseModel):
    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


class MessageDetailView(BaseModel):
    id: int
    body: str
    sent_at: datetime
    read_at: Optional[datetime]
    from_user: UserSummaryView
    to_user: UserSummaryView


class OutgoingMessageView(BaseModel):
    id: int
    to_user: UserSummaryView
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


class IncomingMessageView(BaseModel):
    id: int
    from_user: UserSummaryView
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


class ReadReceiptView(BaseModel):
    id: int
    read_at: datetime


class MessageResponse(BaseModel):
    message: MessageView


class MessageDetailResponse(BaseModel):
    message: MessageDetailView


class ReadReceiptResponse(BaseModel):
    message: ReadReceiptView


class OutgoingMessagesResponse(BaseModel):
    messages: List[OutgoingMessageView]


class IncomingMessagesResponse(BaseModel):
    messages: List[IncomingMessageView]


def _summary_to_view(user: UserSummary) -> UserSummaryView:
    return UserSummaryView(
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
    )


def _profile_to_view(user: UserProfile) -> UserProfileView:
    return UserProfileView(
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        joined_at=user.joined_at,
        last_login_at=user.last_login_at,
    )


def _message_to_view(message: Message) -> MessageView:
    return MessageView(
        id=message.id,
        from_username=message.from_username,
        to_username=message.to_username,
        body=message.body,
        sent_at=message.sent_at,
        read_at=message.read_at,
    )


def _detail_to_view(message: MessageDetail) -> MessageDetailView:
    return MessageDetailView(
        id=message.id,
        body=message.body,
        sent_at=message.sent_at,
        read_at=message.read_at,
        from_user=_summary_to_view(message.from_user),
        to_user=_summary_to_view(message.to_user),
    )


def _outgoing_to_view(message: OutgoingMessage) -> OutgoingMessageView:
    return OutgoingMessageView(
        id=message.id,
        to_user=_summary_to_view(message.to_user),
        body=message.body,
        sent_at=message.sent_at,
        read_at=message.read_at,
    )


def _incoming_to_view(message: IncomingMessage) -> IncomingMessageView:
    return IncomingMessageView(
        id=message.id,
        from_user=_summary_to_view(message.from_user),
        body=message.body,
        sent_at=message.sent_at,
        read_at=message.read_at,
    )


def _receipt_to_view(receipt: ReadReceipt) -> ReadReceiptView:
    return ReadReceiptView(id=receipt.id, read_at=receipt.read_at)


def _describe_validation_errors(exc: RequestValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "invalid value"))
        problems.append(f"{location}: {message}" if location else message)
    return "Invalid request: " + ("; ".join(problems) or "malformed input")


def register_routes(
    app: FastAPI,
    users: UserService,
    messages: MessageService,
    *,
    auth: TokenAuth,
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    async def current_user(request: Request) -> str:
        return await auth(request)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/auth/register", response_model=TokenResponse)
    def register(request: RegisterRequest) -> TokenResponse:
        return TokenResponse(token=users.register_and_login(request.model_dump()))

    @app.post("/auth/login", response_model=TokenResponse)
    def login(request: LoginRequest) -> TokenResponse:
        return TokenResponse(token=users.login(request.username or "", request.password or ""))

    @app.get("/users", response_model=UserListResponse)
    def list_users(caller: str = Depends(current_user)) -> UserListResponse:
        return UserListResponse(users=[_summary_to_view(user) for user in users.list_all()])

    @app.get("/users/{username}", response_model=UserProfileResponse)
    def get_user(username: str, caller: str = Depends(current_user)) -> UserProfileResponse:
        return UserProfileResponse(user=_profile_to_view(users.get_profile(username, caller)))

    @app.get("/users/{username}/to", response_model=IncomingMessagesResponse)
    def messages_to(username: str, caller: str = Depends(current_user)) -> IncomingMessagesResponse:
        received = users.messages_to(username, caller)
        return IncomingMessagesResponse(messages=[_incoming_to_view(message) for message in received])

    @app.get("/users/{username}/from", response_model=OutgoingMessagesResponse)
    def messages_from(username: str, caller: str = Depends(current_user)) -> OutgoingMessagesResponse:
        sent = users.messages_from(username, caller)
        return OutgoingMessagesResponse(messages=[_outgoing_to_view(message) for message in sent])

    @app.get("/messages/{message_id}", response_model=MessageDetailResponse)
    def get_message(
        message_id: int = Path(..., ge=1, le=MAX_MESSAGE_ID),
        caller: str = Depends(current_user),
    ) -> MessageDetailResponse:
        return MessageDetailResponse(message=_detail_to_view(messages.get(message_id, caller)))

    @app.post("/messages", response_model=MessageResponse)
    def create_message(
        request: CreateMessageRequest,
        caller: str = Depends(current_user),
    ) -> MessageResponse:
        fields = request.model_dump()
        if fields.get("from_username") is None:
            fields["from_username"] = caller
        return MessageResponse(message=_message_to_view(messages.create(fields, caller)))

    @app.post("/messages/{message_id}/read", response_model=ReadReceiptResponse)
    def mark_read(
        message_id: int = Path(..., ge=1, le=MAX_MESSAGE_ID),
        caller: str = Depends(current_user),
    ) -> ReadReceiptResponse:
        return ReadReceiptResponse(message=_receipt_to_view(messages.mark_read(message_id, caller)))


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the messaging service."""

    settings = settings or load_settings()
    db = database or Database(settings.database_path)
    db.initialize()

    tokens = TokenIssuer.from_settings(settings)
    users = UserService(db, CredentialStore.from_settings(settings), tokens)
    messages = MessageService(db)

    app = FastAPI(
        title="Messagely",
        version="1.0.0",
        description="Users register, log in and exchange short messages.",
    )
    app.state.settings = settings
    app.state.database = db

    register_routes(app, users, messages, auth=TokenAuth(tokens))

    @app.exception_handler(MessagelyError)
    async def handle_messagely_error(_: Request, exc: MessagelyError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidToken) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        error = ValidationError(_describe_validation_errors(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


__all__ = ["create_app", "register_routes"]
