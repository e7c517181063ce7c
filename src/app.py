"""Checkout FastAPI application.

Serves the stock ledger, cart, checkout and order endpoints. Commands are
processed synchronously; each request runs inside the checkout domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
from checkout.domain import checkout  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

checkout.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout API",
    description="Inventory reservation and order commit — stock ledger, holds, discounts and checkout",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_UNSCOPED_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the checkout domain context for each API request."""
    if request.url.path.startswith(_UNSCOPED_PATHS):
        return await call_next(request)
    with checkout.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api import (  # noqa: E402
    cart_router,
    checkout_router,
    hold_router,
    maintenance_router,
    order_router,
    register_error_handlers,
    request_context_middleware,
    stock_router,
)

app.include_router(stock_router)
app.include_router(hold_router)
app.include_router(maintenance_router)
app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(order_router)
register_error_handlers(app)

# Outermost, around the domain context
app.middleware("http")(request_context_middleware)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domains": {"checkout": {"name": checkout.name}}})
