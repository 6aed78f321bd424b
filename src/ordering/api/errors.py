"""Translate engine failures and storage errors into HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ordering.order.failures import (
    Conflict,
    Forbidden,
    InsufficientStock,
    InvalidItems,
    InvalidState,
    InvalidTransition,
    NotFound,
    OrderFailure,
    PaymentDeclined,
)
from ordering.store.port import StorageError

logger = structlog.get_logger(__name__)

STATUS_CODES: dict[type[OrderFailure], int] = {
    InvalidItems: 400,
    InvalidTransition: 400,
    PaymentDeclined: 402,
    Forbidden: 403,
    NotFound: 404,
    Conflict: 409,
    InsufficientStock: 422,
    InvalidState: 422,
}


def failure_response(failure: OrderFailure) -> JSONResponse:
    return JSONResponse(status_code=STATUS_CODES.get(type(failure), 400), content=failure.to_dict())


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Order store unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"error": "storage_unavailable", "detail": str(exc)})


def register_failure_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorageError, storage_error_handler)
