"""FastAPI application for the equipment engine.

This is the main entry point for the equipment API server.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import EngineSettings, configure_logging
from .api.dependencies import close_services, init_services
from .api.router import router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[EngineSettings] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Engine settings; read from the environment when omitted
    """
    settings = settings or EngineSettings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Equipment API...")
        await init_services(settings)
        yield
        logger.info("Shutting down Equipment API...")
        await close_services()

    app = FastAPI(
        title="Field Equipment Engine",
        description="""
        Equipment composition and lifecycle for field work orders.

        ## Workflow

        1. Load the work order's equipment catalog
        2. Install, reuse and remove units; flag losses on removed units
        3. Adjust the composition (selection, models, rental) and save it
        4. Dispatch the activation signal
        5. Complete the work and export the records
        """,
        version=__version__,
        lifespan=lifespan,
    )

    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "Accept"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        return {
            "name": "Field Equipment Engine",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/equipment/health",
        }

    return app
