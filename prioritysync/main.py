"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from prioritysync.api import sync
from prioritysync.config import Settings, settings as default_settings
from prioritysync.models.base import create_db_engine, create_session_factory, init_db
from prioritysync.scheduler import SyncScheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        # Startup
        logger.info("Starting Priority Sync Service")
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        app.state.settings = settings
        app.state.session_factory = create_session_factory(engine)
        scheduler = None
        if settings.scheduler_enabled:
            scheduler = SyncScheduler(settings, app.state.session_factory)
            scheduler.start()
        yield
        # Shutdown
        logger.info("Stopping Priority Sync Service")
        if scheduler is not None:
            scheduler.stop()
        engine.dispose()

    app = FastAPI(
        title="Priority Sync Service",
        description="Keep Notion task priorities and GitHub priority labels in sync",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(sync.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "Priority Sync"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "prioritysync.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=False,
        log_level=default_settings.log_level.lower(),
    )
