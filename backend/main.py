from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from datetime import datetime, timezone
from typing import Optional
import os
import uvicorn
from contextlib import asynccontextmanager
import logging

# Relative imports keep this module importable as ``backend.main`` both
# from uvicorn and from the test suite.
from .api.routes import router as api_router
from .core.config import Settings, settings
from .core.database import NewsDatabase
from .models.schemas import HealthResponse
from .services.location_service import LocationService
from .services.news_service import NewsService
from .services.scheduler import CacheRefreshScheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic for the FastAPI app."""
        logger.info("🚀 Starting Business News Aggregator...")
        db = NewsDatabase(config.DATABASE_PATH)
        await db.init_db()
        news_service = NewsService(db, config)
        location_service = LocationService(config)
        scheduler = CacheRefreshScheduler(news_service, config.CACHE_REFRESH_INTERVAL_MINUTES)

        app.state.settings = config
        app.state.db = db
        app.state.news_service = news_service
        app.state.location_service = location_service
        app.state.scheduler = scheduler

        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            # Close the aiohttp sessions to avoid unclosed client warnings
            for service in (news_service, location_service):
                try:
                    await service.close()
                except Exception as e:
                    logger.warning(f"Error closing {type(service).__name__} session: {e}")
            logger.info("🛑 Shutting down the application...")

    app = FastAPI(
        title="Business News Aggregator",
        description="Personalized business news by location and career field",
        version=config.APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="OK", timestamp=datetime.now(timezone.utc), version=config.APP_VERSION)

    app.include_router(api_router, prefix="/api")

    # API routes registered above take precedence over the static mount, so
    # ``/api`` keeps serving JSON while ``/`` serves the frontend.
    static_dir = os.path.join(os.path.dirname(__file__), "..", "public")
    if os.path.exists(static_dir):
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        logger.info("Static directory %s does not exist; the frontend will not be served.", static_dir)

    return app


app = create_app()

# Dev entry point
if __name__ == "__main__":
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
    )
