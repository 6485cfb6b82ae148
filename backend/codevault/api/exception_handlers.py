"""
Centralized exception handlers for consistent error responses

Every error, from either service, leaves as {"success": false, "error": message}.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from codevault.storage import StorageError, InvalidPathError
from codevault.services.ledger import LedgerError
from codevault.services.storage_client import StorageServiceError

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI):
    """
    Register all exception handlers on the FastAPI app.

    Call this after creating the FastAPI app instance:
        app = FastAPI()
        setup_exception_handlers(app)
    """

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        """Storage library errors carry their own status code"""
        if isinstance(exc, InvalidPathError):
            logger.warning(f"Rejected path {exc.path!r}: {exc.reason}")
        elif exc.status_code >= 500:
            logger.error(f"Storage error on {request.url.path}: {exc.message}")
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StorageServiceError)
    async def storage_service_exception_handler(request: Request, exc: StorageServiceError):
        """Errors relayed from (or about) the storage tier"""
        if exc.status_code >= 500:
            logger.error(f"Storage service error on {request.url.path}: {exc.message}")
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError):
        logger.error(f"Ledger error on {request.url.path}: {exc}")
        return error_response(500, "Failed to save codebase metadata")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with the first field's message"""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(f"{field}: {error['msg']}")

        return error_response(422, "Request validation failed: " + "; ".join(errors))

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        """Handle database integrity errors (unique constraints, foreign keys)"""
        logger.error(f"Database integrity error: {exc}")

        error_str = str(exc.orig) if exc.orig else str(exc)

        if "UNIQUE constraint failed" in error_str or "duplicate key" in error_str:
            return error_response(409, "A record with this identifier already exists")

        if "FOREIGN KEY constraint failed" in error_str or "foreign key" in error_str:
            return error_response(400, "Referenced resource does not exist")

        return error_response(500, "A database error occurred")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all handler for unhandled exceptions"""
        logger.exception(f"Unhandled exception: {exc}")

        # Don't expose internal details in production
        from codevault.core.config import settings

        if settings.DEBUG:
            return error_response(500, f"{type(exc).__name__}: {exc}")

        return error_response(500, "An unexpected error occurred")
