"""
Relay upload endpoint.
Streams progress of a remote-to-bucket transfer as newline-delimited JSON.
"""

import logging

import pydantic
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from relay.core.auth import verify_admin_password
from relay.core.dependencies import Orchestrator
from relay_schemas.upload import RemoteUploadRequest

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["upload"],
    dependencies=[Depends(verify_admin_password)]
)


async def parse_upload_body(request: Request) -> RemoteUploadRequest:
    """
    Read the JSON body leniently.

    Malformed or mistyped bodies become an empty request so the relay
    reports the missing fields in the stream.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("[UPLOAD] Request body is not valid JSON")
        return RemoteUploadRequest()

    if not isinstance(payload, dict):
        return RemoteUploadRequest()

    try:
        return RemoteUploadRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        logger.warning(f"[UPLOAD] Request body rejected: {e.error_count()} invalid field(s)")
        return RemoteUploadRequest()


@router.post("/upload")
async def relay_upload(
    orchestrator: Orchestrator,
    body: RemoteUploadRequest = Depends(parse_upload_body)
):
    """
    Fetch a remote file and store it in the bucket, reporting progress.

    Example:
        curl -N -X POST "http://server/api/upload?pass=SECRET" \\
          -H "Content-Type: application/json" \\
          -d '{"remoteUrl": "https://example.com/movie.mp4", "customName": "movie.mp4"}'

    Response (application/x-ndjson), one record per line:
        {"progress": 12}
        {"progress": 47}
        {"success": true, "link": "https://media.example.com/movie.mp4"}

    or, on failure, a final {"error": "..."} record.
    """
    logger.info(f"[UPLOAD] Relay requested: {body.remote_url} -> {body.custom_name}")

    return StreamingResponse(
        orchestrator.run(body.remote_url, body.custom_name),
        media_type="application/x-ndjson",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        }
    )
