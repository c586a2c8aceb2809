"""FastAPI application for the duel solitaire match server."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from duelsolitaire import __version__
from duelsolitaire.web.dependencies import get_store
from duelsolitaire.web.routes import matches
from duelsolitaire.web.security import get_real_ip

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 600

# Rate limiter using real IP
limiter = Limiter(key_func=get_real_ip, default_limits=["600/minute"])


async def _sweep_forever(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = get_store().cleanup_old_matches()
        logger.debug(f"ttl sweep removed={removed}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    sweeper = asyncio.create_task(_sweep_forever(CLEANUP_INTERVAL_SECONDS))

    yield

    # Shutdown
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Duel Solitaire",
        description="Authoritative match state for two-player solitaire",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for the browser client dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok", "matches": len(get_store())}

    app.include_router(matches.router, prefix="/api", tags=["matches"])

    return app


# Default app instance
app = create_app()
