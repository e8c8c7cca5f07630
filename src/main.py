# src/main.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.common.config import Settings, settings
from src.common.container import ClinicServices
from src.common.database.database import close_db_connection, connect_to_db, create_engine_and_sessionmaker
from src.common.logging_config import setup_logging
from src.modules.reaper.reaper_scheduler import ReaperScheduler
from src.router.routers import include_routers
from src.store.memory_store import InMemoryClinicStore
from src.store.sql_store import SqlAlchemyClinicStore

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings = settings, services: ClinicServices | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    ``services`` lets tests supply their own wiring; otherwise the lifespan
    hook builds it from ``app_settings``.
    """

    # Lifespan context manager for startup and shutdown events
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        if services is not None:
            app.state.services = services
        elif app_settings.STORE_BACKEND == "memory":
            logger.warning("Using the in-memory store; state is lost on restart")
            app.state.services = ClinicServices.from_settings(app_settings, InMemoryClinicStore())
        else:
            engine, session_factory = create_engine_and_sessionmaker(app_settings.DATABASE_URL, echo=app_settings.DEBUG)
            await connect_to_db(engine)
            app.state.services = ClinicServices.from_settings(app_settings, SqlAlchemyClinicStore(session_factory))

        scheduler = ReaperScheduler(
            app.state.services.reaper,
            interval_seconds=app_settings.REAPER_INTERVAL_SECONDS,
            enabled=app_settings.REAPER_ENABLED and services is None,
        )
        await scheduler.start()
        app.state.reaper_scheduler = scheduler
        try:
            yield
        finally:
            await scheduler.stop()
            await app.state.services.store.close()
            if engine is not None:
                await close_db_connection(engine)

    # Initialize FastAPI app with lifespan manager
    app = FastAPI(
        title="Clinic Flow API",
        description="Walk-in clinic check-in, waiting queue and clinician availability",
        version="1.0.0",
        lifespan=lifespan
    )

    # Middleware for CORS using allowed origins from settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers from a separate file
    include_routers(app)

    @app.get("/health", tags=["Health"])
    async def health():
        scheduler = getattr(app.state, "reaper_scheduler", None)
        return {
            "status": "ok",
            "store": app_settings.STORE_BACKEND if services is None else type(services.store).__name__,
            "reaper_running": bool(scheduler and scheduler.is_running),
        }

    return app


setup_logging(settings.LOG_LEVEL)
app = create_app()
