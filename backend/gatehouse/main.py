# gatehouse/main.py
import asyncio
import logging
import logging.config
import sys
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import APIRouter, FastAPI
from uvicorn.config import LOGGING_CONFIG

from gatehouse.api.v1.routers import health
from gatehouse.config import Settings, load_settings
from gatehouse.core.db import close_db, connect_db
from gatehouse.core.errors import ConfigurationError
from gatehouse.core.pipeline import build_pipeline
from gatehouse.core.startup import StartupOutcome, StartupSequencer

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


def create_app(settings: Settings, routers: Iterable[APIRouter] = ()) -> FastAPI:
    """
    Build the application handle and attach route collaborators.

    Args:
        settings: Process settings
        routers: Additional routers to include on top of the pipeline

    Returns:
        FastAPI: Application with middleware, health check and routers
    """
    app = build_pipeline(settings, lifespan=lifespan)
    app.include_router(health.router)
    for router in routers:
        app.include_router(router)
    return app


async def serve(settings: Settings | None = None, routers: Iterable[APIRouter] = ()) -> StartupOutcome:
    """
    Load settings (once), build the app and run the startup sequence.

    Returns the failure outcome when the database is unreachable; on success
    it returns only after the server has shut down.
    """
    if settings is None:
        settings = load_settings()
    app = create_app(settings, routers)
    return await StartupSequencer(app, settings, connect=connect_db).run()


def main() -> None:
    logging.config.dictConfig(LOGGING_CONFIG)
    try:
        outcome = asyncio.run(serve())
    except ConfigurationError as exc:
        logger.error("[startup] Invalid configuration: %s", exc)
        sys.exit(1)
    if not outcome.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
