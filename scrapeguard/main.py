"""FastAPI application hosting the status endpoints for an orchestrator.

Startup: configure logging, restore the persisted session, optionally probe
proxies. Shutdown: close the execution pool and its browser engine.

The extraction callback is site-specific, so the application is built
around an orchestrator the caller has already wired::

    orchestrator = ExtractionOrchestrator.from_settings(settings, callback)
    app = create_app(orchestrator)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from scrapeguard import __version__
from scrapeguard.logging_config import configure_logging
from scrapeguard.routers.status import create_status_router
from scrapeguard.services.orchestrator import ExtractionOrchestrator

logger = logging.getLogger(__name__)


def create_app(
    orchestrator: ExtractionOrchestrator,
    *,
    probe_proxies: bool = False,
) -> FastAPI:
    """Create the FastAPI application for *orchestrator*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(orchestrator.settings.log_level)
        await orchestrator.start(probe_proxies=probe_proxies)
        logger.info("ScrapeGuard status service started")

        yield

        logger.info("Shutting down ScrapeGuard status service…")
        await orchestrator.shutdown()

    app = FastAPI(
        title="ScrapeGuard",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(create_status_router(orchestrator=orchestrator))
    return app
