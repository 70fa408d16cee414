"""Error kinds raised by the invoicing core and their HTTP mapping."""

import logging
from typing import cast

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class InvoicingError(Exception):
    """Base exception for invoicing errors."""

    code = "invoicing_error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(InvoicingError):
    """A referenced invoice or line item does not exist."""

    code = "not_found"
    status_code = 404


class InvalidDataError(InvoicingError):
    """Validation failure: malformed input or a violated precondition."""

    code = "invalid_data"
    status_code = 400


class InvalidStateError(InvalidDataError):
    """The invoice's status does not allow the requested operation."""

    code = "invalid_state"


class InvalidTransitionError(InvalidDataError):
    """The requested status change is not allowed from the current status."""

    code = "invalid_transition"


class UnexpectedStateError(InvoicingError):
    """A step failed for an infrastructure reason, e.g. a persistence write."""

    code = "unexpected_state"


def error_body(code: str, detail: str) -> dict[str, str]:
    return {"error": code, "detail": detail}


async def invoicing_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Registered for InvoicingError only
    error = cast(InvoicingError, exc)
    if error.status_code >= 500:
        logger.error(
            "Request %s %s failed: %s", request.method, request.url.path, error.message
        )
        return JSONResponse(
            status_code=error.status_code,
            content=error_body(error.code, "Internal server error"),
        )
    return JSONResponse(
        status_code=error.status_code, content=error_body(error.code, error.message)
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body("unexpected_state", "Internal server error"),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvoicingError, invoicing_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
