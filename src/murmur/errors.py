"""Error taxonomy and the handlers that turn it into HTTP responses.

Services raise ChatError subclasses; routes never build HTTP errors
themselves. Every failure reaches the client as

    {"detail": "<human-readable message>", "kind": "<kind>"}

with the status code that belongs to the kind.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger()


class ChatError(Exception):
    """Base class for every error a client may see."""

    kind: str = "internal"
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


class Unauthenticated(ChatError):
    kind = "unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class Forbidden(ChatError):
    kind = "forbidden"
    status_code = 403
    default_message = "You don't have access to this conversation"


class NotAMember(Forbidden):
    """The acting user is not (or no longer) in the conversation."""

    kind = "not_a_member"
    default_message = "You are not a member of this conversation"


class NotFound(ChatError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class InvalidInput(ChatError):
    kind = "invalid_input"
    status_code = 422
    default_message = "Invalid input"


class Conflict(ChatError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class Internal(ChatError):
    pass


def register_error_handlers(app: FastAPI) -> None:
    """Attach the ChatError and storage-failure handlers to the app."""

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        headers = None
        if isinstance(exc, Unauthenticated):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(
        request: Request, exc: SQLAlchemyError
    ) -> JSONResponse:
        logger.exception(
            "murmur.storage_error",
            path=request.url.path,
            error=str(exc),
        )
        err = Internal("Storage failure")
        return JSONResponse(status_code=err.status_code, content=err.to_dict())
