"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from shared.config import Settings, get_settings
from shared.logging import setup_logging
from shared.store import DocumentStore, create_store

from .dependencies import get_services, init_services, reset_services
from .routers import activity_router, live_matches_router, matches_router

logger = logging.getLogger(__name__)

_start_time: float = 0.0


async def _store_retry_loop(store: DocumentStore) -> None:
    """Background loop to retry the store connection after a startup failure."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        try:
            await store.connect()
            logger.info("Store connected (background retry)")
            return
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.warning(
                f"Store background retry failed: {type(e).__name__}: {e}, "
                f"next retry in {min(delay * 2, max_delay)}s"
            )
            delay = min(delay * 2, max_delay)


def create_app(settings: Settings | None = None, store: DocumentStore | None = None) -> FastAPI:
    """Create and configure FastAPI application

    Args:
        settings: defaults to environment settings
        store: use this store instead of building one from settings
    """
    settings = settings or get_settings()
    setup_logging(settings, service="edge")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle startup and shutdown"""
        global _start_time
        _start_time = time.time()
        retry_task: asyncio.Task | None = None

        logger.info("Starting live activity edge server")
        logger.info(f"Environment: {settings.environment}")

        http = httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        backing_store = store or create_store(settings, http, service="edge")

        # Serve degraded payloads while the store is unreachable
        try:
            await asyncio.wait_for(backing_store.connect(), timeout=30)
            logger.info(f"Store ready ({type(backing_store).__name__})")
        except TimeoutError:
            logger.warning("Store connection timed out during startup, retrying in background")
            retry_task = asyncio.create_task(_store_retry_loop(backing_store))
        except Exception as e:
            logger.error(
                f"Store connection failed during startup: {type(e).__name__}: {e}, "
                "retrying in background"
            )
            retry_task = asyncio.create_task(_store_retry_loop(backing_store))

        services = init_services(backing_store, settings)

        yield

        logger.info("Shutting down live activity edge server")
        services.stream.close_all()
        if retry_task:
            retry_task.cancel()
        try:
            await backing_store.close()
            await http.aclose()
        except Exception as e:
            logger.exception(f"Error during shutdown: {e}")
        finally:
            reset_services()

    app = FastAPI(
        title="Live Activity API",
        description="Edge cache and stream for tournament live activity",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["X-Cache-Status", "X-Cache-Age", "X-Cache", "X-Matches-Count"],
    )

    app.include_router(activity_router.router)
    app.include_router(live_matches_router.router)
    app.include_router(matches_router.router)

    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": "live-activity-edge", "status": "running"}

    # Liveness check, no external dependency
    @app.get("/health")
    async def health():
        """Liveness check (no store dependency)"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time),
        }

    @app.get("/status")
    async def status():
        """Readiness endpoint with store health and open streams"""
        services = get_services()
        return {
            "service": "live-activity-edge",
            "uptime_seconds": int(time.time() - _start_time),
            "store": type(services.store).__name__,
            "store_ok": await services.store.check_health(),
            "open_streams": services.stream.active_connections,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        """Ping endpoint"""
        return "pong"

    logger.info("FastAPI application configured")

    return app
