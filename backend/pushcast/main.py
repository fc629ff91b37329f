"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import (
    analytics_router,
    campaigns_router,
    cron_router,
    domains_router,
    subscribe_router,
    tokens_router,
    track_click_router,
)
from .services.push_gateway import FcmConfig, fcm_gateway
from .services.scheduler import scheduler_service
from .utils.auth import init_firebase
from .utils.time_utils import isoformat_utc, utc_now

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Pushcast")
    
    # Initialize database
    await init_db()
    logger.info("Database initialized")
    
    # Identity provider and push gateway share the Firebase credential
    init_firebase()
    fcm_gateway.configure(FcmConfig(
        project_id=settings.firebase_project_id or "",
        endpoint=settings.fcm_endpoint,
        timeout_seconds=settings.fcm_timeout_seconds,
        max_connections=settings.send_batch_size,
    ))
    
    if settings.scheduler_enabled:
        scheduler_service.start()
    
    yield
    
    # Shutdown
    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Pushcast",
        description="Push notification campaigns for registered websites and apps",
        version="1.0.0",
        lifespan=lifespan,
    )
    
    # Subscribe and click tracking are called from arbitrary customer sites
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    app.include_router(campaigns_router)
    app.include_router(subscribe_router)
    app.include_router(track_click_router)
    app.include_router(cron_router)
    app.include_router(tokens_router)
    app.include_router(domains_router)
    app.include_router(analytics_router)
    
    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "timestamp": isoformat_utc(utc_now()),
        }
    
    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
