"""Marketplace FastAPI application.

Processes commands synchronously over HTTP. Every request under a
marketplace prefix runs inside the marketplace domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.domain import marketplace
from marketplace.utils.logging import bind_request_context, clear_request_context, configure_logging

configure_logging()
marketplace.init()

_DOMAIN_PREFIXES = ("/carts", "/checkout", "/orders", "/payments", "/coupons", "/vendors", "/addresses")


def _in_domain(path: str) -> bool:
    return path.startswith(_DOMAIN_PREFIXES)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Marketplace API",
    description="Multi-vendor carts, checkout, payments and orders",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context for marketplace routes."""
    if not _in_domain(request.url.path):
        return await call_next(request)

    bind_request_context(method=request.method, path=request.url.path)
    try:
        with marketplace.domain_context():
            return await call_next(request)
    finally:
        clear_request_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketplace.api.errors import register_error_handlers  # noqa: E402
from marketplace.api.routes import (  # noqa: E402
    address_router,
    cart_router,
    checkout_router,
    coupon_router,
    order_router,
    payment_router,
    vendor_router,
)

for router in (
    cart_router,
    checkout_router,
    order_router,
    payment_router,
    coupon_router,
    vendor_router,
    address_router,
):
    app.include_router(router)

register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": marketplace.name})
