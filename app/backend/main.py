"""Index Analysis service: FastAPI entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import health, indexes
from .services.analysis_service import get_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("index_analysis_app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Index analysis service starting up")
    yield
    get_client().close_all()
    logger.info("Index analysis service shutting down")


app = FastAPI(
    title="Index Analysis",
    description="Index fragmentation, usage statistics and column composition for SQL Server databases",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(indexes.router)


@app.get("/")
async def root():
    """Service descriptor."""
    return {
        "status": "ok",
        "app": "Index Analysis",
        "endpoints": [
            "/api/health",
            "/api/indexes/analysis",
        ],
    }
