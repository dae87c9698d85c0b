"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from discovery_bridge import __version__
from discovery_bridge.api import sync
from discovery_bridge.config import Settings, settings
from discovery_bridge.scheduler import SyncScheduler
from discovery_bridge.security import ApiTokenMiddleware
from discovery_bridge.services.runner import SyncRunner

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(app_settings: Settings, runner: Optional[SyncRunner] = None) -> FastAPI:
    runner = runner or SyncRunner(app_settings)
    scheduler = SyncScheduler(runner, app_settings.sync_interval_minutes)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        # Startup
        logger.info("Starting JPD <-> GitLab sync service")
        if app_settings.run_scheduler:
            scheduler.start()
        yield
        # Shutdown
        logger.info("Stopping JPD <-> GitLab sync service")
        scheduler.stop()

    app = FastAPI(
        title="Discovery Bridge",
        description="Synchronize Jira Product Discovery ideas with GitLab issues",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runner = runner
    app.state.scheduler = scheduler

    if app_settings.api_token:
        app.add_middleware(ApiTokenMiddleware, token=app_settings.api_token, allow_paths={"/health"})

    app.include_router(sync.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        last = runner.last()
        return {
            "status": "healthy",
            "service": "Discovery Bridge",
            "running": runner.running,
            "last_run_status": last.status if last else None,
            "next_run_time": scheduler.next_run_time(),
        }

    return app


app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "discovery_bridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
