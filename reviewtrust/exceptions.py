"""Domain errors raised by the service layer and their HTTP rendering."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

logger = structlog.get_logger(__name__)


class ReviewTrustError(Exception):
    """Base class for errors the API knows how to render."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ReviewTrustError):
    status_code = 404


class ConflictError(ReviewTrustError):
    status_code = 409


class ValidationError(ReviewTrustError):
    status_code = 422


class InvalidTransitionError(ConflictError):
    """A moderation action that the current status does not allow."""

    def __init__(self, current: str, action: str):
        super().__init__(f"Cannot {action} a post that is {current}")
        self.current = current
        self.action = action


class PermissionDeniedError(ReviewTrustError):
    status_code = 403


def error_body(message) -> dict:
    return {"error": message}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach handlers so every failure leaves the API as `{"error": ...}`.

    Args:
        app: the FastAPI application.
    """

    @app.exception_handler(ReviewTrustError)
    async def handle_domain_error(request: Request, exc: ReviewTrustError):
        logger.info(
            "request_rejected",
            path=request.url.path,
            error=exc.message,
            status_code=exc.status_code,
        )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(HTTPException)
    async def handle_http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return JSONResponse(status_code=422, content=error_body("; ".join(messages)))

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.error("database_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
