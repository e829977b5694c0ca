import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from threatmonitor.config import Settings, settings as default_settings
from threatmonitor.api import routes
from threatmonitor.api.cors import AllowListCORSMiddleware
from threatmonitor.api.errors import register_error_handlers
from threatmonitor.core.providers import Providers, build_providers
from threatmonitor.core.rate_limiter import RateLimiter
from threatmonitor.services.port_scan import PortScanService

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quieten noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def build_port_scanner(settings: Settings) -> PortScanService:
    return PortScanService(
        mode=settings.PORT_SCAN_MODE,
        max_ports=settings.PORT_SCAN_MAX_PORTS,
        connect_timeout=settings.PORT_SCAN_CONNECT_TIMEOUT,
        delay_range_ms=(settings.SIMULATED_DELAY_MIN_MS, settings.SIMULATED_DELAY_MAX_MS)
    )


def create_app(settings: Settings = None, providers: Providers = None,
               rate_limiter: RateLimiter = None, port_scanner: PortScanService = None) -> FastAPI:
    """
    Build the API. Collaborators default to the production ones built from
    settings; tests pass their own.
    """
    settings = settings or default_settings
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"🚀 Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
        if rate_limiter is None:
            from threatmonitor.database import SessionLocal, init_db
            init_db()
            app.state.rate_limiter = RateLimiter(SessionLocal)
            logger.info("✓ Database initialized")
        if providers is None:
            app.state.providers = build_providers(settings)
        yield
        # Shutdown
        app.state.providers.close()
        logger.info(f"👋 Shutting down {settings.APP_NAME}")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.providers = providers
    app.state.rate_limiter = rate_limiter
    app.state.port_scanner = port_scanner or build_port_scanner(settings)

    app.add_middleware(AllowListCORSMiddleware, allowed_origins=settings.CORS_ALLOWED_ORIGINS)
    register_error_handlers(app)
    app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Threat Monitor"])

    @app.get("/")
    def root():
        return {
            "message": f"{settings.APP_NAME} API",
            "version": settings.VERSION,
            "docs": "/docs"
        }

    @app.get("/health")
    def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc),
            "service": settings.APP_NAME,
            "unavailableProviders": app.state.providers.unavailable if app.state.providers else []
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("threatmonitor.main:app", host="0.0.0.0", port=8000, reload=False)
