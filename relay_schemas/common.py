"""
Common schemas shared by the relay endpoints.
"""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    detail: str
    error_code: str | None = None
