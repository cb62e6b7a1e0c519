"""
Map planning session server - Main FastAPI application.

Session registry and real-time feature synchronization over WebSocket.
"""
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

from mapplanner.core.config import Settings, settings as default_settings
from mapplanner.core.api import health, session
from mapplanner.core.services.eviction_service import EvictionService
from mapplanner.core.sessions.errors import ResourceExhausted, SessionNotFound
from mapplanner.core.sessions.registry import SessionRegistry
from mapplanner.core.websocket.manager import ConnectionManager
from mapplanner.core.websocket.routes import websocket_endpoint

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if default_settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Lifespan event handlers
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    cfg: Settings = app.state.settings
    logger.info(
        "Map planning server binding on %s:%s (grace %ss, max %s sessions)",
        cfg.api_host,
        cfg.api_port,
        cfg.session_grace_seconds,
        cfg.max_sessions,
    )
    await app.state.eviction_service.start()

    yield

    # Shutdown
    await app.state.eviction_service.stop()
    await app.state.connection_manager.close_all()
    app.state.registry.close()
    logger.info("Map planning server shutting down")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application with its own registry, connection manager and eviction service."""
    cfg = settings or default_settings

    app = FastAPI(
        title="Map Planning Sessions",
        description="Collaborative map feature planning with live sync",
        version="1.0.0",
        lifespan=lifespan,
    )

    registry = SessionRegistry(max_sessions=cfg.max_sessions)
    app.state.settings = cfg
    app.state.registry = registry
    app.state.connection_manager = ConnectionManager(send_timeout=cfg.send_timeout_seconds)
    app.state.eviction_service = EvictionService(
        registry,
        interval=cfg.eviction_interval_seconds,
        grace=cfg.session_grace_seconds,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests. Health checks at DEBUG to reduce log spam."""
        path = request.url.path
        level = logger.debug if path == "/health" else logger.info
        level(f"{request.method} {path}")
        response = await call_next(request)
        level(f"{request.method} {path} - {response.status_code}")
        return response

    # Error handlers
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "body": exc.body},
        )

    @app.exception_handler(SessionNotFound)
    async def session_not_found_handler(request: Request, exc: SessionNotFound):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": exc.detail, "error": exc.code},
        )

    @app.exception_handler(ResourceExhausted)
    async def resource_exhausted_handler(request: Request, exc: ResourceExhausted):
        logger.warning("Session creation failed: %s", exc.detail)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.detail, "error": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error": str(exc) if cfg.debug else None,
            },
        )

    # WebSocket for live feature sync
    app.add_api_websocket_route("/ws/session/{session_id}", websocket_endpoint)

    # Include routers
    app.include_router(health.router)
    app.include_router(session.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mapplanner.core.main:app",
        host=default_settings.api_host,
        port=default_settings.api_port,
        reload=default_settings.debug,
    )
