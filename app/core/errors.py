import logging
from typing import Dict, List, Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

_REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")


class AppError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "An internal server error has occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Validation failed"

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationFailed":
        errors: Dict[str, List[str]] = {}
        for err in exc.errors():
            loc = list(err["loc"])
            # FastAPI prefixes where the value came from
            if len(loc) > 1 and loc[0] in _REQUEST_LOCATIONS:
                loc = loc[1:]
            field = ".".join(str(part) for part in loc) or "__root__"
            errors.setdefault(field, []).append(err["msg"])
        return cls(errors)


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Could not validate credentials"


class InvalidCredentials(Unauthorized):
    message = "Incorrect email or password"


class DuplicateIdentity(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Email already registered"


class InfrastructureError(AppError):
    """The persistence or file store failed; detail stays in the server log."""


async def app_error_handler(request: Request, exc: AppError):
    body = {"detail": exc.message}
    headers = None
    if isinstance(exc, ValidationFailed):
        body["errors"] = exc.errors
    if isinstance(exc, Unauthorized):
        headers = {"WWW-Authenticate": "Bearer"}
    if isinstance(exc, InfrastructureError):
        # The underlying exception was logged where it was caught
        body = {"detail": AppError.message}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return await app_error_handler(request, ValidationFailed.from_pydantic(exc))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": AppError.message},
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
