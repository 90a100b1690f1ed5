from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .core.config import settings
from .core.logging import setup_logging
from .api.routes import router as api_router
from .api.websocket import router as ws_router, scanner_callback
from .scanner.network_scanner import NetworkScanner

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    scanner = getattr(app.state, "scanner", None)
    if scanner is None:
        scanner = app.state.scanner = NetworkScanner(config=settings)
    scanner.register_callback(scanner_callback)

    yield

    logger.info("Shutting down")
    scanner.cancel()
    scanner.unregister_callback(scanner_callback)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Local network discovery and device fingerprinting",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api", tags=["API"])
    app.include_router(ws_router, tags=["WebSocket"])

    @app.get("/")
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "scanning": app.state.scanner.is_scanning
        }

    return app


app = create_app()
