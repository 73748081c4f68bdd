"""
API schemas for the R2 relay service.
Provides type-safe contracts for the HTTP API and its stream records.
"""

__version__ = "0.1.0"

# Export commonly used schemas
from relay_schemas.common import *  # noqa: F403, F401
from relay_schemas.upload import *  # noqa: F403, F401
