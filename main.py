import logging
import uvicorn
from fastapi import Depends, FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import settings
from app.database import Base, engine, get_db
from app.exception_handlers import register_exception_handlers
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.middleware.rate_limit import configure_rate_limiting
from app.routes.engagement import router as engagement_router
from app.scheduler import schedule_maintenance_jobs, scheduler
from app.utils.cache import cache_manager
from app.utils.metrics import PrometheusMiddleware, set_app_info

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="View counting, likes and random discovery for shared content",
        debug=settings.debug,
        version=settings.app_version,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    configure_rate_limiting(app)
    register_exception_handlers(app)

    # Include routers
    app.include_router(engagement_router, prefix="/api")

    @app.get("/health", tags=["Monitoring"])
    async def health(db: AsyncSession = Depends(get_db)):
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "version": settings.app_version}

    @app.get("/metrics", tags=["Monitoring"], include_in_schema=False)
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.on_event("startup")
    async def startup_event():
        """Tasks to run at application startup."""
        setup_logging()
        set_app_info(settings.app_version, settings.environment)
        logger.info(f"Starting {settings.app_name} in {settings.environment} mode...")

        if settings.debug:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created (if not existing).")

        await cache_manager.connect()

        if settings.scheduler_enabled:
            schedule_maintenance_jobs()
            scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down the application...")
        if scheduler.running:
            scheduler.shutdown(wait=False)
        await cache_manager.disconnect()
        await engine.dispose()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
