# src/router/routers.py

from fastapi import FastAPI
from src.auth.auth_controller import router as auth_router
from src.modules.visits.visits_controller import router as visits_router
from src.modules.queue.queue_controller import router as queue_router
from src.modules.availability.availability_controller import router as availability_router
from src.modules.reaper.reaper_controller import router as reaper_router

def include_routers(app: FastAPI) -> None:
    """Include all API routers in the FastAPI application."""
    app.include_router(auth_router)
    app.include_router(visits_router)
    app.include_router(queue_router)
    app.include_router(availability_router)
    app.include_router(reaper_router)
