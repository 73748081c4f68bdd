"""
S3 Upload Configuration.
Constants for multipart upload and object metadata.
"""

# Multipart Upload Settings
MIN_PART_SIZE = 5 * 1024 * 1024       # 5MB (S3/R2 minimum for non-final parts)
DEFAULT_PART_SIZE = 50 * 1024 * 1024  # 50MB per part
DEFAULT_QUEUE_SIZE = 4                # Parts uploaded concurrently
MAX_PARTS = 10000                     # S3 limit per multipart upload

# Object Metadata
CONTENT_DISPOSITION = "inline"        # Browsers play instead of download
CACHE_CONTROL = "public, max-age=31536000, immutable"

# Progress log interval
PROGRESS_LOG_INTERVAL = 50 * 1024 * 1024
