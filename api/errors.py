"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import CrediarioError, TransactionFailedError

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.INVALID_AMOUNT: 400,
    ErrorCodes.INSTALLMENT_LIMIT_EXCEEDED: 400,
    ErrorCodes.INVALID_STATUS_TRANSITION: 409,
    ErrorCodes.TRANSACTION_FAILED: 503,
}


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(CrediarioError)
    async def crediario_error_handler(request: Request, exc: CrediarioError):
        if isinstance(exc, TransactionFailedError) and exc.cause is not None:
            logger.warning("Transaction failed: %s (cause: %r)", exc, exc.cause)
        return JSONResponse(
            status_code=_STATUS_BY_CODE.get(exc.code, 400),
            content=error_response(exc.code, str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(ErrorCodes.INVALID_REQUEST, str(exc)).model_dump(mode="json"),
        )

    @app.exception_handler(ValidationError)
    async def model_validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors(include_url=False)),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
            ).model_dump(mode="json"),
        )
