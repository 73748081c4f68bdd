"""
Shared dependencies for FastAPI endpoints.
"""

import logging
from typing import Annotated

import httpx
from fastapi import Depends

from relay.core.config import settings
from relay.core.orchestrator import UploadOrchestrator
from relay.s3.client import S3Client

logger = logging.getLogger(__name__)


# HTTP Client singleton
_http_client: httpx.AsyncClient | None = None

# S3 Client singleton
_s3_client: S3Client | None = None


async def get_http_client() -> httpx.AsyncClient:
    """
    Get or create the global HTTP client.
    Used for fetching remote files.
    """
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.FETCH_TIMEOUT_SECONDS),
            follow_redirects=True
        )
    return _http_client


async def close_http_client():
    """Close the global HTTP client."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def get_s3_client() -> S3Client:
    """Get or create the global S3 client."""
    global _s3_client
    if _s3_client is None:
        _s3_client = S3Client(settings)
    return _s3_client


def close_s3_client():
    """Release the global S3 client's upload threads."""
    global _s3_client
    if _s3_client is not None:
        _s3_client.close()
        _s3_client = None


async def get_orchestrator(
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    s3_client: Annotated[S3Client, Depends(get_s3_client)]
) -> UploadOrchestrator:
    """Build an orchestrator around the shared clients."""
    return UploadOrchestrator(settings, s3_client, http_client)


# Dependency annotations
S3 = Annotated[S3Client, Depends(get_s3_client)]
Orchestrator = Annotated[UploadOrchestrator, Depends(get_orchestrator)]
