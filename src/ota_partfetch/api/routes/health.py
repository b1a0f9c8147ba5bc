"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends

from ... import __version__
from ...extractor.config import PartFetchConfig
from ..server import get_app_config

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(config: PartFetchConfig = Depends(get_app_config)):
    """Health check endpoint."""
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "version": __version__,
        "cache_enabled": config.cache.enabled,
    }
