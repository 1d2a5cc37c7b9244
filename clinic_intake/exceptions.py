"""Domain exceptions and their HTTP translation."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ClinicError(Exception):
    """Base class for application errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InputValidationError(ClinicError):
    """Input with a bad shape or out-of-range value."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidAmountError(InputValidationError):
    """Payment amounts must be positive integers."""


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND


class PatientNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Patient not found") -> None:
        super().__init__(detail)


class PaymentNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Payment not found") -> None:
        super().__init__(detail)


class PersistenceError(ClinicError):
    """The store failed to persist a change; the session was rolled back."""


class IntegrationError(ClinicError):
    """A chat or spreadsheet call failed. Never surfaced to API callers."""

    def __init__(self, target: str, detail: str) -> None:
        super().__init__(f"{target}: {detail}")
        self.target = target


class OfflineError(ClinicError):
    """Raised by the offline client when a write cannot reach the server."""


async def clinic_error_handler(request: Request, exc: ClinicError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("unhandled application error", extra={"error": exc.detail})
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": "Internal server error"},
        )
    logger.info(
        "request rejected",
        extra={"error": exc.detail, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    fields = [".".join(str(part) for part in error.get("loc", ())[1:]) for error in errors]
    detail = "Invalid field(s): " + ", ".join(field for field in fields if field)
    logger.info("validation error", extra={"errors": errors})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": detail, "errors": errors},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database error", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    app.add_exception_handler(ClinicError, clinic_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
