from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import logging
import os
from pathlib import Path

from habit_engine.database import engine as db_engine, SessionLocal, Base
from habit_engine import models  # Import all models to register them with Base
from habit_engine.constants import (
    CACHE_BACKEND, CACHE_BACKEND_SQL, CORS_ALLOWED_ORIGINS,
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV
)
from habit_engine.exceptions import InvalidInputException
from habit_engine.repositories.session_repository import SessionRepository
from habit_engine.repositories.preference_repository import PreferenceRepository
from habit_engine.routes import router
from habit_engine.services.cache_service import StreakCache, InMemoryCacheStore, SqlCacheStore
from habit_engine.services.engine import StreakEngine

logger = logging.getLogger("habit_engine")


def configure_logging() -> Path:
    """
    Send logs to the console and to a file under HABIT_ENGINE_LOG_DIR.

    Falls back to the local log directory when the configured one is not
    writable.

    Returns:
        Path of the log file
    """
    log_dir = Path(os.getenv("HABIT_ENGINE_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD))
    log_file = os.getenv("HABIT_ENGINE_LOG_FILE", "habit_engine.log")
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        log_dir = Path(DEFAULT_LOG_DIRECTORY_DEV)
        log_dir.mkdir(parents=True, exist_ok=True)

    log_path = log_dir / log_file
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(log_path), logging.StreamHandler()]
    )
    return log_path


def build_engine() -> StreakEngine:
    """Build the process-wide engine from environment configuration"""
    if CACHE_BACKEND == CACHE_BACKEND_SQL:
        store = SqlCacheStore(SessionLocal)
    else:
        store = InMemoryCacheStore()

    return StreakEngine(
        session_store=SessionRepository(SessionLocal),
        preference_source=PreferenceRepository(SessionLocal),
        cache=StreakCache(store)
    )


def create_app(engine: Optional[StreakEngine] = None) -> FastAPI:
    app = FastAPI(
        title="Habit Streak API",
        description="Habit day streaks and session points",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if engine is None:
        log_path = configure_logging()
        Base.metadata.create_all(bind=db_engine)
        engine = build_engine()
        logger.info(f"Habit engine started (cache: {CACHE_BACKEND}). Logging to: {log_path}")
    app.state.engine = engine

    @app.exception_handler(InvalidInputException)
    async def invalid_input_handler(request: Request, exc: InvalidInputException):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    # Health check
    @app.get("/")
    async def root():
        return {"message": "Habit Streak API", "status": "active"}

    app.include_router(router)
    return app
