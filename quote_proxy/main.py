"""
Main FastAPI application for Quote Proxy Service.
Includes lifespan management for provider connections and the optional background refresh.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time

from .core.config import Settings, settings
from .core.logging_config import setup_logging, create_logger
from .api.dependencies import get_price_cache
from .api.endpoints import router as api_router
from .api.schemas import ErrorResponse
from .providers.binance_provider import BinanceProvider
from .providers.metaapi_provider import MetaApiProvider
from .services.cache import PriceCache
from .services.price_aggregator import PriceAggregator

# Setup logging first
setup_logging()
logger = create_logger(__name__)


def build_aggregator(config: Optional[Settings] = None) -> PriceAggregator:
    """Create the price cache, providers and aggregator for one application instance."""
    config = config or settings
    return PriceAggregator(
        cache=PriceCache(),
        metaapi=MetaApiProvider(config),
        binance=BinanceProvider(config),
        config=config
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.
    Handles startup and shutdown of providers and background refresh.
    """
    logger.info("Starting Quote Proxy Service", extra={
        "version": settings.app_version,
        "debug": settings.debug
    })

    if not settings.meta_api_token or not settings.meta_api_account_id:
        logger.warning("MetaAPI credentials are not configured; forex and metals prices will be unavailable")

    aggregator = build_aggregator(settings)
    await aggregator.metaapi.connect()
    await aggregator.binance.connect()

    app.state.aggregator = aggregator
    app.state.price_cache = aggregator.cache
    app.state.startup_time = datetime.utcnow()

    if settings.background_refresh_enabled:
        await aggregator.start_background_refresh()
    else:
        logger.info("Background price refresh disabled - using on-demand fetching")

    yield  # Application is running

    logger.info("Shutting down Quote Proxy Service")
    try:
        await aggregator.shutdown()
        logger.info("Quote Proxy Service shutdown completed")
    except Exception as e:
        logger.error("Error during service shutdown", extra={"error": str(e)})


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Bid/ask quote proxy for forex, metals and crypto with rate-limit aware caching",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else ["http://localhost:3000"],  # Configure as needed
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests and responses."""
    start_time = time.time()

    try:
        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info("Request completed", extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "process_time": round(process_time, 4),
            "client_ip": request.client.host if request.client else None
        })

        response.headers["X-Process-Time"] = str(process_time)
        return response

    except Exception as e:
        process_time = time.time() - start_time
        logger.error("Request failed", extra={
            "method": request.method,
            "path": request.url.path,
            "error": str(e),
            "process_time": round(process_time, 4),
            "client_ip": request.client.host if request.client else None
        })

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message="Internal server error").dict()
        )


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix, tags=["Prices"])


# Health check endpoint (for load balancers)
@app.get("/healthz", include_in_schema=False)
async def healthz():
    """Simple health check endpoint for load balancers."""
    return {"status": "healthy"}


# Application information endpoint
@app.get("/info", include_in_schema=False)
async def info(request: Request, cache: PriceCache = Depends(get_price_cache)):
    """Get service, cache and refresh information."""
    aggregator: PriceAggregator = request.app.state.aggregator
    startup_time = request.app.state.startup_time

    return {
        "service": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
            "uptime_seconds": (datetime.utcnow() - startup_time).total_seconds(),
            "startup_time": startup_time
        },
        "cache": {
            "cached_symbols": len(cache),
            "refresh_ttl": settings.refresh_cache_ttl,
            "batch_ttl": settings.batch_cache_ttl
        },
        "refresh": {
            "background_enabled": settings.background_refresh_enabled,
            "background_running": aggregator.are_background_tasks_running(),
            "in_progress": aggregator.is_refreshing(),
            "last_refresh": aggregator.get_last_refresh_time()
        },
        "timestamp": datetime.utcnow()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "quote_proxy.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True
    )
