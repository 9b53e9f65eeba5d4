import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from crnaclub.guidance.api.routes.admin import router as admin_router
from crnaclub.guidance.api.routes.guidance import router as guidance_router
from crnaclub.guidance.api.routes.meta import router as meta_router
from crnaclub.guidance.config.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: create the state table when persisting to SQL."""
    if settings.STATE_BACKEND == "database":
        from crnaclub.guidance.db.init_db import create_tables

        await create_tables()
    yield


def create_app() -> FastAPI:

    load_dotenv()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    app = FastAPI(title="crnaclub-guidance-api", version="0.1.0", lifespan=lifespan)

    app.include_router(guidance_router)
    app.include_router(meta_router)
    app.include_router(admin_router, prefix="/admin")

    logger.info("Guidance API ready (state backend: %s)", settings.STATE_BACKEND)
    return app
