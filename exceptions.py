from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logging_config import get_logger

logger = get_logger(__name__)


def error_payload(*, error: str, type_: str, code: Optional[str] = None, details: Any = None) -> dict:
    payload = {"error": error, "code": code, "type": type_}
    if details is not None:
        payload["details"] = details
    return payload


class RelayError(Exception):
    """Base class for failures of a single relay operation.

    Raised by the backend and translated into HTTP responses by the handlers
    registered in `register_exception_handlers`.
    """

    status_code: int = 400
    default_code: str = "relay_error"

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, details: Any = None):
        self.message = message
        self.code = code if code is not None else self.default_code
        self.status_code = status_code if status_code is not None else self.status_code
        self.details = details
        super().__init__(message)


class RoomNotFoundError(RelayError):
    status_code = 404
    default_code = "not_found"


class BadRequestError(RelayError):
    status_code = 400
    default_code = "bad_request"


class RoomFullError(RelayError):
    status_code = 409
    default_code = "room_full"


class SubscriberDeliveryError(RelayError):
    """Raised by a subscriber that can no longer accept messages."""

    status_code = 500
    default_code = "delivery_failed"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def _relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(error=exc.message, code=exc.code, type_=exc.__class__.__name__, details=exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path} rejected: invalid request body")
        return JSONResponse(
            status_code=400,
            content=error_payload(
                error="Invalid request",
                code="bad_request",
                type_=exc.__class__.__name__,
                details=jsonable_errors(exc),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = getattr(exc, "detail", None)
        if isinstance(detail, str):
            error, details = detail, None
        else:
            error, details = "Request failed", detail
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(error=error, code="http_exception", type_=exc.__class__.__name__, details=details),
            headers=getattr(exc, "headers", None),
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic may put exception instances in "ctx"
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        err.pop("input", None)
        err.pop("url", None)
        errors.append(err)
    return errors
