"""
R2 Relay Service - Main Application
FastAPI app that relays remote files into an S3-compatible bucket with live progress.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_schemas.common import ErrorResponse
from relay_schemas.upload import HealthCheckResponse
from relay.core.config import settings
from relay.core.dependencies import S3, close_http_client, close_s3_client, get_s3_client
from relay.api import panel, upload

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Runs on startup and shutdown.
    """
    # Startup
    logger.info("Starting R2 Relay Service...")

    s3_client = get_s3_client()
    try:
        s3_client.check_bucket()
        logger.info(f"Bucket ready: {settings.R2_BUCKET_NAME}")
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to reach bucket {settings.R2_BUCKET_NAME}: {e}")
        # Continue anyway - uploads report their own errors

    logger.info(
        f"Relay configured: part size {settings.UPLOAD_PART_SIZE_MB}MB, "
        f"{settings.UPLOAD_QUEUE_SIZE} parts in flight"
    )

    yield

    # Shutdown
    logger.info("Shutting down R2 Relay Service...")
    await close_http_client()
    close_s3_client()


# Create FastAPI app
app = FastAPI(
    title="R2 Relay Service",
    description="Relay remote files into Cloudflare R2 / S3 with streamed upload progress",
    version="1.0.0",
    lifespan=lifespan
)


# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Include API routers
app.include_router(panel.router)
app.include_router(upload.router)


@app.get("/health", tags=["health"], response_model=HealthCheckResponse)
async def health_check(s3_client: S3):
    """Health check endpoint."""
    try:
        await asyncio.get_running_loop().run_in_executor(None, s3_client.check_bucket)

        return HealthCheckResponse(
            status="healthy",
            s3_connection="ok",
            bucket=settings.R2_BUCKET_NAME
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content=HealthCheckResponse(
                status="unhealthy",
                s3_connection="failed",
                bucket=settings.R2_BUCKET_NAME
            ).model_dump()
        )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(detail="Internal server error").model_dump()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "relay.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        timeout_keep_alive=7200,  # 2 hours for very large relays
        limit_concurrency=100
    )
