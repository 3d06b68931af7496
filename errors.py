"""
Error taxonomy shared by the stores, the auth gate and the routers, and the
FastAPI handlers that turn it into JSON responses.

Every response body has the shape {"message": ...}; validation failures also
carry field-level "errors". Store failures are logged with their traceback and
reach the client only as a generic 500.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger('uvicorn.error')


class BlogError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(BlogError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, detail: str) -> "ValidationError":
        return cls(detail, errors=[{"field": field, "message": detail}])


class AuthenticationError(BlogError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Not authenticated"


class InvalidCredentials(AuthenticationError):
    message = "Invalid username or password"


class AuthorizationError(BlogError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Forbidden"


class NotFoundError(BlogError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class ConflictError(BlogError):
    status_code = status.HTTP_409_CONFLICT
    message = "Already exists"


class DuplicateUsername(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Username already exists"


class StoreUnavailable(BlogError):
    """The backing store could not be reached or failed mid-operation."""


async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    if isinstance(exc, StoreUnavailable):
        logger.error(f"Store unavailable during {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"message": BlogError.message})
    content: Dict[str, Any] = {"message": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({"message": ValidationError.message, "errors": errors}),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogError, blog_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
