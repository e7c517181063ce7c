"""Map checkout errors to HTTP responses.

Buyer-recoverable stock problems come back as 409 with the lines to fix,
payment failures as 402 and commit failures as a retryable 503.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from checkout.errors import HoldExpired, OrderCommitFailure, PaymentFailure, QuantityUnavailable


async def quantity_unavailable_handler(request: Request, exc: QuantityUnavailable) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "error": "quantity_unavailable",
            "messages": exc.messages,
            "issues": [issue.to_dict() for issue in exc.issues],
        },
    )


async def hold_expired_handler(request: Request, exc: HoldExpired) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": "hold_expired", "messages": exc.messages, "unit_ids": exc.unit_ids},
    )


async def payment_failure_handler(request: Request, exc: PaymentFailure) -> JSONResponse:
    return JSONResponse(
        status_code=402,
        content={
            "error": "payment_failed",
            "reason": exc.reason,
            "order_id": exc.order_id,
            "order_number": exc.order_number,
        },
    )


async def order_commit_failure_handler(request: Request, exc: OrderCommitFailure) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "order_commit_failed", "detail": str(exc), "retryable": True},
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "invalid_request", "messages": exc.messages})


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "not_found", "detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuantityUnavailable, quantity_unavailable_handler)
    app.add_exception_handler(HoldExpired, hold_expired_handler)
    app.add_exception_handler(PaymentFailure, payment_failure_handler)
    app.add_exception_handler(OrderCommitFailure, order_commit_failure_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
