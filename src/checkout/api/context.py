"""Request-scoped logging context for the checkout API."""

import uuid

from fastapi import Request

from checkout.utils.logging import add_context, clear_context

REQUEST_ID_HEADER = "X-Request-ID"


async def request_context_middleware(request: Request, call_next):
    """Bind a request id, method and path to every log line written while serving the request.

    The caller's ``X-Request-ID`` is reused when present and echoed back either way.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    clear_context()
    add_context(request_id=request_id, method=request.method, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
