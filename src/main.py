"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.request_size import request_size_limit_middleware
from src.api.routes import cron, health, offers, payments, wallet, webhooks
from src.core.config import get_settings
from src.core.database import dispose_engine
from src.services.errors import StatusCatalogNotReadyError
from src.services.status_catalog import get_status_catalog

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Warms the order status catalog on startup and releases database
    connections on shutdown. A catalog that cannot be loaded yet is not
    fatal: payment routes answer 503 until it loads.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    if not settings.paystack_secret_key:
        logger.warning("PAYSTACK_SECRET_KEY is not set; payment endpoints will refuse requests")

    try:
        await get_status_catalog().ensure_loaded()
    except StatusCatalogNotReadyError as e:
        logger.warning("Order status catalog not loaded at startup: %s", e.message)

    yield

    await dispose_engine()
    logger.info("Database engine disposed")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Billing API",
        description="Payment reconciliation for orders, courses, rentals, and custom offers",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (formats errors raised by routes)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Add request size limit middleware (rejects oversized requests early)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    # Mount health routes at root level (no prefix)
    app.include_router(health.router)

    # Create API v1 router for versioned endpoints
    api_v1_router = APIRouter(prefix="/api/v1")

    # Payment entry points
    api_v1_router.include_router(payments.router)
    api_v1_router.include_router(webhooks.router)

    # Wallet and offer routes
    api_v1_router.include_router(wallet.router)
    api_v1_router.include_router(offers.router)

    # Scheduled jobs
    api_v1_router.include_router(cron.router)

    app.include_router(api_v1_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
