"""
R2 Relay Service API schemas.
Type-safe contracts for the upload endpoint and its NDJSON stream.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadState(str, Enum):
    """Lifecycle of a single relay request."""
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING = "fetching"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ============================================================================
# Upload Endpoint
# ============================================================================

class RemoteUploadRequest(BaseModel):
    """
    Body of POST /api/upload.

    Fields are optional here so that missing values reach the relay and are
    reported as a terminal stream record rather than a 422.
    """
    model_config = ConfigDict(populate_by_name=True)

    remote_url: Optional[str] = Field(default=None, alias="remoteUrl")
    custom_name: Optional[str] = Field(default=None, alias="customName")


# ============================================================================
# Stream Records (one JSON object per line)
# ============================================================================

class ProgressMessage(BaseModel):
    """Intermediate record."""
    progress: int = Field(ge=0, le=100)


class SuccessMessage(BaseModel):
    """Terminal record on success."""
    success: bool = True
    link: str


class ErrorMessage(BaseModel):
    """Terminal record on failure."""
    error: str


# ============================================================================
# Health Check
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str
    s3_connection: str
    bucket: Optional[str] = None
