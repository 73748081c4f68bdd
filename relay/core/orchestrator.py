"""
Upload orchestrator with per-request pipeline execution.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx

from relay.clients.remote_fetcher import RemoteFetcher
from relay.core.config import Settings
from relay.core.exceptions import RelayError
from relay.core.progress import ProgressRelay
from relay.models.session import ProgressEvent, UploadOutcome, UploadRequest, UploadSession
from relay.s3.client import S3Client
from relay.s3.multipart import ChunkedUploader
from relay.utils.content_type import resolve_content_type
from relay_schemas.upload import UploadState

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Runs the relay pipeline for one request at a time per call.

    Pipeline:
    1. Validate the request (no I/O on failure)
    2. Open the remote stream (RemoteFetcher)
    3. Upload the stream as it arrives (ChunkedUploader)
    4. Forward progress and the terminal record (ProgressRelay)

    The orchestrator itself holds only process-wide collaborators; every call
    to run() gets its own UploadSession and ProgressRelay.
    """

    def __init__(
        self,
        config: Settings,
        s3_client: S3Client,
        http_client: httpx.AsyncClient
    ):
        """
        Initialize orchestrator.

        Args:
            config: Application settings (bucket, part size, queue sizes)
            s3_client: Object store client
            http_client: HTTP client used to fetch remote files
        """
        self.config = config
        self.s3 = s3_client
        self.fetcher = RemoteFetcher(http_client)
        self.uploader = ChunkedUploader(
            s3_client,
            part_size=config.part_size_bytes,
            queue_size=config.UPLOAD_QUEUE_SIZE
        )

    async def run(
        self,
        remote_url: Optional[str],
        object_name: Optional[str]
    ) -> AsyncIterator[str]:
        """
        Relay remote_url into the bucket under object_name.

        Yields:
            NDJSON lines: zero or more {"progress": n}, then exactly one of
            {"success": true, "link": ...} or {"error": ...}
        """
        session = UploadSession(object_name=object_name or "")
        relay = ProgressRelay(max_pending=self.config.MAX_PENDING_EVENTS)

        pipeline = asyncio.create_task(self._execute(session, relay, remote_url, object_name))

        try:
            async for line in relay.stream():
                yield line
        finally:
            relay.close()
            if not pipeline.done():
                logger.warning(f"[RELAY {session.session_id}] Client went away, cancelling upload")
                pipeline.cancel()
            await asyncio.wait({pipeline})

    async def _execute(
        self,
        session: UploadSession,
        relay: ProgressRelay,
        remote_url: Optional[str],
        object_name: Optional[str]
    ) -> None:
        """
        Drive the session through its states and always finish the relay.
        """
        tag = f"[RELAY {session.session_id}]"
        outcome: Optional[UploadOutcome] = None

        try:
            session.transition(UploadState.VALIDATING)
            request = UploadRequest.create(remote_url, object_name)

            session.transition(UploadState.FETCHING)
            logger.info(f"{tag} Fetching {request.remote_url} -> {request.object_name}")

            async with self.fetcher.open(request.remote_url) as remote:
                session.total_size = remote.total_size
                session.content_type = resolve_content_type(request.object_name)
                session.transition(UploadState.UPLOADING)

                async def on_progress(loaded: int) -> None:
                    session.acknowledge(loaded)
                    percentage = session.percentage()
                    if percentage is not None:
                        await relay.publish(ProgressEvent(percentage))

                receipt = await self.uploader.upload(
                    bucket=self.config.R2_BUCKET_NAME,
                    key=request.object_name,
                    source=remote.iter_bytes(),
                    content_type=session.content_type,
                    on_progress=on_progress
                )

            session.link = self.s3.get_public_url(request.object_name)
            outcome = UploadOutcome.success(session.link)

            logger.info(
                f"{tag} Completed: {request.object_name} "
                f"({receipt.size_bytes / 1024 / 1024:.2f}MB, {receipt.parts} parts, "
                f"{session.elapsed_seconds():.2f}s, SHA256: {receipt.sha256})"
            )

        except RelayError as e:
            logger.error(f"{tag} {type(e).__name__} during {session.state.value}: {e}")
            outcome = UploadOutcome.failure(e.to_message())

        except Exception as e:
            logger.error(f"{tag} Unexpected error during {session.state.value}: {e}", exc_info=True)
            outcome = UploadOutcome.failure(f"Unexpected error: {e}")

        finally:
            # Only cancellation leaves outcome unset
            if outcome is None:
                outcome = UploadOutcome.failure("Upload cancelled")

            session.error = outcome.error
            session.transition(UploadState.SUCCEEDED if outcome.succeeded else UploadState.FAILED)
            await relay.finish(outcome)
