from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from .retry import ChatError, ErrorCategory, DEFAULT_USER_MESSAGES, classify_error

logger = logging.getLogger(__name__)

CATEGORY_STATUS_CODES = {
    ErrorCategory.VALIDATION: 422,
    ErrorCategory.AUTHENTICATION: 401,
    ErrorCategory.NETWORK: 503,
    ErrorCategory.REALTIME: 503,
    ErrorCategory.DATABASE: 500,
    ErrorCategory.GENERIC: 500,
}


def error_body(message: str, errors: list = None) -> dict:
    body = {"status": "error", "message": message or DEFAULT_USER_MESSAGES[ErrorCategory.GENERIC]}
    if errors:
        body["errors"] = errors
    return body


def _field_name(loc) -> str:
    parts = [str(part) for part in loc]
    if parts and parts[0] in ("body", "query", "path", "header"):
        parts = parts[1:]
    return ".".join(parts) or "body"


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors with the standard envelope"""
    fields = getattr(exc, "fields", None)
    errors = [{"field": field, "message": str(exc.detail)} for field in fields] if fields else None
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail} - Path: {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), errors),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report which request fields were invalid"""
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    fields = ", ".join(sorted({e["field"] for e in errors}))
    logger.info(f"Validation failed on {request.url.path}: {fields}")
    return JSONResponse(
        status_code=422,
        content=error_body(f"Validation failed: {fields}", errors),
    )


async def chat_error_handler(request: Request, exc: ChatError):
    """Handle categorized errors that escaped the retry helper"""
    status_code = exc.status_code or CATEGORY_STATUS_CODES[exc.category]
    logger.error(f"{exc.category.value} error: {exc.message} - Path: {request.url.path}")
    errors = [{"field": field, "message": exc.user_message} for field in exc.fields] or None
    return JSONResponse(status_code=status_code, content=error_body(exc.user_message, errors))


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Database failures: schema mismatches and lost connections get their own messages"""
    error = classify_error(exc)
    logger.error(f"Database error ({error.category.value}): {error.message} - Path: {request.url.path}")
    return JSONResponse(
        status_code=CATEGORY_STATUS_CODES[error.category],
        content=error_body(error.user_message),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error. Please try again later."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
