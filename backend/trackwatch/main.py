"""
FastAPI Main Application for Trackwatch

This module defines the main FastAPI application entry point with:
- API and WebSocket route registration
- Database table creation
- CORS middleware
- Request logging with X-Request-ID correlation
- Lifespan context manager that starts and stops the watch engine

Entry Point:
    Run with: uvicorn trackwatch.main:app
    Or: trackwatch (console script)
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from trackwatch.api import health_routes, torrent_routes, ws_routes
from trackwatch.config import Config
from trackwatch.database import engine, SessionLocal
from trackwatch.models.base import Base
from trackwatch.services.structured_logging import (
    set_request_id, clear_context, generate_request_id, setup_json_logging
)
from trackwatch.services.watch_engine import WatchEngine

# Only set up basicConfig if no handlers exist yet
root_logger = logging.getLogger()
if not root_logger.handlers:
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
else:
    root_logger.setLevel(Config.LOG_LEVEL)

if Config.LOG_JSON:
    setup_json_logging(level=logging.getLevelName(Config.LOG_LEVEL))

# Uvicorn logs go through the root handler
for uvicorn_logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
    uvicorn_logger = logging.getLogger(uvicorn_logger_name)
    uvicorn_logger.setLevel(logging.INFO)
    uvicorn_logger.propagate = True

# Silence noisy debug messages
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("python_multipart.multipart").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


# HTTP Request Logging Middleware with X-Request-ID correlation
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests and responses with correlation IDs.

    Correlation:
    - Extracts or generates X-Request-ID for request tracing
    - Sets correlation context for structured logging
    """

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/health/live"):
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"🌐 [{request_id}] {request.method} {request.url.path} from {client_ip}")

        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000

            response.headers["X-Request-ID"] = request_id

            status_emoji = "✓" if response.status_code < 400 else "✗"
            logger.info(
                f"   [{request_id}] {status_emoji} {response.status_code} "
                f"({process_time:.2f}ms)"
            )

            return response
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                f"   [{request_id}] ✗ Request failed after {process_time:.2f}ms: "
                f"{type(e).__name__}: {e}"
            )
            raise
        finally:
            clear_context()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown tasks.

    Startup Tasks:
        1. Validate configuration
        2. Create all database tables
        3. Build the watch engine, log in to trackers and qBittorrent,
           start the supervisor

    Shutdown Tasks:
        1. Stop the supervisor and every watcher
        2. Close the qBittorrent session
    """
    # ========== STARTUP ==========
    logger.info("=" * 60)
    logger.info(f"Starting {Config.APP_TITLE} v{Config.APP_VERSION}")
    logger.info("=" * 60)

    if not Config.validate():
        logger.warning("⚠ Configuration has invalid values, check the environment")
    logger.info(f"Configuration: {Config.get_summary()}")

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("✓ Database tables created/verified")

    watch_engine = WatchEngine.from_config(Config, SessionLocal)
    app.state.engine = watch_engine
    await watch_engine.start()

    logger.info("✓ Application startup complete")
    logger.info("=" * 60)

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    logger.info(f"Shutting down {Config.APP_TITLE}")
    try:
        await watch_engine.stop()
    except Exception as e:
        logger.warning(f"⚠ Watch engine shutdown error: {e}")
    logger.info("✓ Shutdown complete")


# OpenAPI Tags Metadata
tags_metadata = [
    {
        "name": "torrents",
        "description": "Tracked torrents: add, remove, watch intervals and check status.",
    },
    {
        "name": "feed",
        "description": "WebSocket feed of check results and torrent changes.",
    },
    {
        "name": "health",
        "description": "Health check endpoints. Kubernetes-compatible liveness/readiness probes.",
    },
]

app = FastAPI(
    title=Config.APP_TITLE,
    description="""
## Trackwatch API

Watches torrent pages on trackers and keeps qBittorrent in sync with them.

### Features
- **Trackers**: kinozal.tv and rutracker.org
- **Watching**: per-torrent check interval in minutes
- **Replacement**: a torrent re-uploaded on the tracker is swapped in qBittorrent, keeping its save path
- **Notifications**: Telegram messages on added and updated torrents
- **Live feed**: WebSocket stream of check results
""",
    version=Config.APP_VERSION,
    lifespan=lifespan,
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

if Config.DEV_MODE:
    logger.info("⚠ CORS wildcard enabled (DEV_MODE=true). Disable in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(torrent_routes.router)
app.include_router(ws_routes.router)
app.include_router(health_routes.router)


# Legacy health check endpoint - redirects to /health/detailed
@app.get("/health")
async def health_check():
    """Redirects to /health/detailed for comprehensive health status."""
    from fastapi.responses import RedirectResponse
    return RedirectResponse(url="/health/detailed")


def run():
    """Console entry point."""
    import uvicorn
    uvicorn.run(
        "trackwatch.main:app",
        host=Config.APP_HOST,
        port=Config.APP_PORT,
        reload=Config.DEV_MODE,
    )


if __name__ == "__main__":
    run()
