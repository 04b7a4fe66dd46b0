"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .dependencies import initialize_services, shutdown_services
from .hierarchy_router import router as hierarchy_router
from .sync_router import router as sync_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup, release them on shutdown."""
    load_dotenv()
    logger.info("Starting Asset Hierarchy API...")
    await initialize_services()
    yield
    await shutdown_services()


app = FastAPI(
    title="Asset Hierarchy API",
    description="Graph/relational asset sync and multi-hierarchy views",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sync_router)
app.include_router(hierarchy_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
