"""Marketplace FastAPI application.

``create_app`` wires routers and error mapping onto an already-initialized
domain; ``application`` is the uvicorn factory that also configures logging
and initializes the domain.

Usage:
    uvicorn marketplace.api.app:application --factory --host 0.0.0.0 --port 8000
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.domain import marketplace
from marketplace.errors import PaymentGatewayError, PaymentNotSucceeded

logger = structlog.get_logger(__name__)


def create_app(domain=marketplace) -> FastAPI:
    from marketplace.api.routes import cart_router, checkout_router, order_router, shop_router, webhook_router
    from marketplace.utils.logging import bind_request_context, clear_request_context

    app = FastAPI(
        title="Marketplace API",
        description="Multi-vendor checkout and order settlement",
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
        """Push the marketplace domain context for each request."""
        bind_request_context(method=request.method, path=request.url.path)
        try:
            with domain.domain_context():
                return await call_next(request)
        finally:
            clear_request_context()

    register_exception_handlers(app)

    @app.exception_handler(PaymentGatewayError)
    async def payment_gateway_error(request: Request, exc: PaymentGatewayError):
        logger.error("Payment processor error", path=request.url.path, code=exc.code, error=str(exc))
        return JSONResponse(
            status_code=502,
            content={"error": str(exc), "code": exc.code, "retryable": exc.retryable},
        )

    @app.exception_handler(PaymentNotSucceeded)
    async def payment_not_succeeded(request: Request, exc: PaymentNotSucceeded):
        return JSONResponse(
            status_code=409,
            content={"error": str(exc), "authorization_id": exc.authorization_id, "status": exc.status},
        )

    app.include_router(cart_router)
    app.include_router(checkout_router)
    app.include_router(order_router)
    app.include_router(webhook_router)
    app.include_router(shop_router)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domain": {"name": domain.name}})

    return app


def application() -> FastAPI:
    from marketplace.utils.logging import configure_logging

    configure_logging()
    marketplace.init()
    return create_app()
