"""FastAPI server setup."""

import logging
from typing import Optional

import requests
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..extractor.config import PartFetchConfig

logger = logging.getLogger(__name__)


def get_app_config(request: Request) -> PartFetchConfig:
    """Dependency returning the configuration the app was created with."""
    return request.app.state.config


def create_app(config: PartFetchConfig, session: Optional[requests.Session] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration
        session: Optional HTTP session shared by remote requests
    """
    app = FastAPI(
        title="ota-partfetch",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.config = config
    app.state.session = session

    if config.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.api.cors_origins or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    from .routes import health, partitions

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(partitions.router, prefix="/api", tags=["partitions"])

    logger.info(
        "FastAPI application created",
        extra={"extra_fields": {"version": __version__, "cache_enabled": config.cache.enabled}},
    )

    return app
