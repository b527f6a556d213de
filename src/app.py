"""Checkout FastAPI application.

Web server for the order payment lifecycle. Commands are processed
synchronously per request inside the checkout domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from [tool.protean] in pyproject.toml.
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from checkout.domain import checkout
from checkout.utils.logging import configure_logging

configure_logging(json=os.environ.get("PROTEAN_ENV") == "production")
checkout.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout API",
    description="Storefront order payment lifecycle — orders, payment sessions, gateway notifications",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_DOMAIN_PREFIXES = ("/orders", "/payments")


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the checkout domain context for domain routes."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with checkout.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api import gateway_router, order_router, register_error_handlers  # noqa: E402

register_error_handlers(app)
app.include_router(order_router)
app.include_router(gateway_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    from checkout.gateway import get_gateway

    return JSONResponse(
        content={
            "status": "ok",
            "domain": checkout.name,
            "gateway": get_gateway().name,
        }
    )
