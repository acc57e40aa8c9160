"""
FastAPI web server for spotistats.

Serves the aggregated Spotify snapshot at /api and a liveness banner at /.
"""

import asyncio
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from ..cache import SnapshotCache
from ..config import StatsConfig
from ..errors import RequestTimeoutError, SpotifyStatsError

logger = logging.getLogger(__name__)

BANNER = "This is a little project I'm working on 🎶☕!"
ERROR_BODY = "Error retrieving data"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": (
        "default-src 'none'; script-src 'none'; style-src 'none'; img-src 'none'; "
        "connect-src 'none'; font-src 'none'; object-src 'none'; media-src 'none'; "
        "frame-src 'none'; frame-ancestors 'none'"
    ),
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


# Dependency to get components
def get_snapshot_cache(request: Request) -> SnapshotCache:
    """Get SnapshotCache from app state."""
    return request.app.state.snapshot_cache


def get_config(request: Request) -> StatsConfig:
    """Get StatsConfig from app state."""
    return request.app.state.config


def create_app(snapshot_cache: SnapshotCache, config: StatsConfig, lifespan=None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        snapshot_cache: SnapshotCache instance shared by all requests
        config: StatsConfig instance
        lifespan: Optional lifespan context manager (closes upstream clients)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="spotistats",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["GET"],
        allow_headers=["Accept", "Content-Type"],
        allow_credentials=False,
        max_age=300,  # 5 minutes
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response

    # Store components in app state
    app.state.snapshot_cache = snapshot_cache
    app.state.config = config

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        """Liveness banner."""
        return PlainTextResponse(BANNER)

    @app.get("/api")
    async def get_spotify_data(
        cache: SnapshotCache = Depends(get_snapshot_cache),
        settings: StatsConfig = Depends(get_config),
    ):
        """Return the aggregated Spotify snapshot as JSON."""
        try:
            data = await asyncio.wait_for(cache.get_or_refresh(), timeout=settings.request_timeout_seconds)
        except asyncio.TimeoutError:
            error = RequestTimeoutError(
                f"snapshot not ready within {settings.request_timeout_seconds}s"
            )
            logger.error("Error retrieving data: %s (%s)", error, error.kind)
            return PlainTextResponse(ERROR_BODY, status_code=500)
        except SpotifyStatsError as e:
            logger.error("Error retrieving data: %s (%s)", e, e.kind)
            return PlainTextResponse(ERROR_BODY, status_code=500)
        except Exception as e:
            logger.error("Error retrieving data: %s", e, exc_info=True)
            return PlainTextResponse(ERROR_BODY, status_code=500)

        return Response(content=data, media_type="application/json")

    return app
