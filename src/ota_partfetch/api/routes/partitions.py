"""Partition extraction endpoints.

Failures are reported in the response body (``success: false``) with the
same error classification as the library entry points.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from ...common.errors import PartFetchError
from ...extractor.config import PartFetchConfig
from ...extractor.models import ExtractionOptions
from ...extractor.orchestrator import download_partition_file, extract_partition, list_members
from ..server import get_app_config

router = APIRouter()
logger = logging.getLogger(__name__)


class ExtractBody(BaseModel):
    model_config = ConfigDict(extra='forbid')

    locator: str = Field(min_length=1, description="URL or local path of the source")
    name: str = Field(min_length=1, description="Member or partition name")
    destination: str = Field(min_length=1, description="Output file or directory")
    timeout: Optional[float] = Field(default=None, gt=0, description="Request timeout in seconds")
    verify: Optional[bool] = Field(default=None, description="Check checksums after writing")


class DownloadBody(BaseModel):
    model_config = ConfigDict(extra='forbid')

    url: str = Field(min_length=1)
    destination: str = Field(min_length=1)


class ListBody(BaseModel):
    model_config = ConfigDict(extra='forbid')

    locator: str = Field(min_length=1)


@router.post("/partitions/extract")
def extract(body: ExtractBody, request: Request, config: PartFetchConfig = Depends(get_app_config)):
    """Extract one partition to a path on the server."""
    logger.debug(f"Extract requested: {body.name} from {body.locator}")
    result = extract_partition(
        body.locator,
        body.name,
        body.destination,
        ExtractionOptions(timeout=body.timeout, verify=body.verify),
        config=config,
        session=request.app.state.session,
    )
    return result.to_dict()


@router.post("/partitions/download")
def download(body: DownloadBody, request: Request, config: PartFetchConfig = Depends(get_app_config)):
    """Download a whole remote image to a path on the server."""
    logger.debug(f"Download requested: {body.url}")
    result = download_partition_file(
        body.url,
        body.destination,
        config=config,
        session=request.app.state.session,
    )
    return result.to_dict()


@router.post("/archives/members")
def members(body: ListBody, request: Request, config: PartFetchConfig = Depends(get_app_config)):
    """List archive members or payload partitions."""
    try:
        listed = list_members(body.locator, config=config, session=request.app.state.session)
    except PartFetchError as e:
        logger.warning(f"Listing {body.locator} failed: {e.message}")
        return {"success": False, "error": e.kind.value, "message": e.message}

    return {"success": True, "members": [m.to_dict() for m in listed]}
