"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import ping_router, checks_router, http_monitors_router, sweep_router
from .services.alerter import alerter_service
from .services.scheduler import scheduler_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting cronsentry")

    await init_db()
    logger.info("Database initialized")

    if settings.enable_scheduler:
        scheduler_service.start()
    else:
        logger.info("Built-in scheduler disabled, relying on POST /api/sweep")

    yield

    scheduler_service.stop()
    # Let in-flight alert deliveries finish before the engine goes away
    await alerter_service.drain()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="cronsentry",
        description="Dead man's switch checks and HTTP uptime monitors",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ping_router)
    app.include_router(checks_router)
    app.include_router(http_monitors_router)
    app.include_router(sweep_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler": settings.enable_scheduler,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
