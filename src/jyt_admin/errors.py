"""
jyt_admin.errors

Application error taxonomy.

Responsibilities:
- Define the fixed set of error types raised by routes and workflow steps.
- Map each type to an HTTP status code.
- Register FastAPI exception handlers that render `{"type", "message"}` bodies.
"""

from __future__ import annotations

import enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from jyt_admin.observability.logging import get_logger

log = get_logger(__name__)


class ErrorType(enum.StrEnum):
    invalid_data = "invalid_data"
    not_allowed = "not_allowed"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    conflict = "conflict"
    duplicate_error = "duplicate_error"
    unexpected_state = "unexpected_state"


STATUS_BY_TYPE: dict[ErrorType, int] = {
    ErrorType.invalid_data: HTTP_400_BAD_REQUEST,
    ErrorType.not_allowed: HTTP_400_BAD_REQUEST,
    ErrorType.unauthorized: HTTP_401_UNAUTHORIZED,
    ErrorType.forbidden: HTTP_403_FORBIDDEN,
    ErrorType.not_found: HTTP_404_NOT_FOUND,
    ErrorType.conflict: HTTP_409_CONFLICT,
    ErrorType.duplicate_error: HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorType.unexpected_state: HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(Exception):
    """
    Domain error carrying a taxonomy type and a human readable message.
    """

    def __init__(
        self,
        type: ErrorType,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.type = ErrorType(type)
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_BY_TYPE[self.type]

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"type": str(self.type), "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"AppError({self.type!s}, {self.message!r})"


def not_found(entity: str, id: Any) -> AppError:
    return AppError(ErrorType.not_found, f"{entity} with id: {id} was not found")


def invalid_data(message: str, **details: Any) -> AppError:
    return AppError(ErrorType.invalid_data, message, details=details or None)


def not_allowed(message: str) -> AppError:
    return AppError(ErrorType.not_allowed, message)


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("app_error", type=str(exc.type), message=exc.message)
    else:
        log.info("app_error", type=str(exc.type), message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)


# --- Module Notes -----------------------------------------------------------
# Request validation errors (pydantic) keep FastAPI's default 422 shape; everything raised
# deliberately by handlers, workflows and steps goes through `AppError`.
