"""HTTP mapping for checkout errors.

Protean's own handlers cover ``ValidationError`` (400) and
``ObjectNotFoundError`` (404); everything deriving from ``CheckoutError``
answers with its own status code and a ``retryable`` flag.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from checkout.errors import CheckoutError

logger = structlog.get_logger(__name__)


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            path=request.url.path,
            error=exc.code,
            detail=exc.message,
            retryable=exc.retryable,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "detail": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")} for error in exc.errors()
            ],
            "retryable": False,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(CheckoutError, checkout_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
