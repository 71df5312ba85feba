"""Binify - Main FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from binify import __version__
from binify.api import admin_router, pastes_router, register_exception_handlers
from binify.config import Settings, get_settings
from binify.core.health import HealthChecker, HealthStatus
from binify.core.lifecycle import PasteLifecycle
from binify.core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from binify.core.metrics import metrics, setup_metrics
from binify.core.rate_limiter import RateLimiter, build_rate_limiter
from binify.core.stores import Stores, build_stores
from binify.database import init_db

logger = get_logger(__name__)


def attach_services(
    app: FastAPI,
    settings: Settings,
    stores: Stores,
    rate_limiter: RateLimiter,
) -> None:
    """Wire the shared stores, orchestrator and limiter onto app.state."""
    app.state.settings = settings
    app.state.stores = stores
    app.state.rate_limiter = rate_limiter
    app.state.lifecycle = PasteLifecycle(
        stores.metadata,
        stores.payload,
        max_paste_bytes=settings.max_paste_bytes,
    )
    app.state.health = HealthChecker(
        stores.metadata,
        stores.payload,
        payload_backend=stores.payload_backend.value,
    )
    metrics.initialize(__version__, stores.payload_backend.value)


def create_app(
    settings: Optional[Settings] = None,
    stores: Optional[Stores] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Build the application.

    Stores passed in are used as-is and left open on shutdown; otherwise
    they are built from settings at startup and closed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        owned = not hasattr(app.state, "stores")
        if owned:
            built = build_stores(settings)
            await init_db(built.engine)
            attach_services(app, settings, built, build_rate_limiter(settings))
            logger.info(
                "Binify started",
                environment=settings.environment,
                payload_backend=built.payload_backend.value,
            )
        yield
        if owned:
            await app.state.rate_limiter.close()
            await app.state.stores.close()

    setup_logging(json_output=settings.log_json, level=settings.log_level)

    app = FastAPI(
        title="Binify",
        description="Zero-knowledge encrypted paste service",
        version=__version__,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    if stores is not None:
        attach_services(app, settings, stores, rate_limiter or build_rate_limiter(settings))

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Include routers
    app.include_router(pastes_router)
    app.include_router(admin_router)
    register_exception_handlers(app)
    setup_metrics(app)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Binify",
            "version": __version__,
            "docs": app.docs_url,
        }

    @app.get("/health")
    async def health():
        """Liveness check."""
        return await app.state.health.liveness()

    @app.get("/health/ready")
    async def ready():
        """Readiness check; 503 unless both stores respond."""
        report = await app.state.health.readiness()
        status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(status_code=status_code, content=report.to_dict())

    return app


def run():
    """Run the API server with uvicorn."""
    import uvicorn

    uvicorn.run("binify.main:create_app", factory=True, host="0.0.0.0", port=8000)
