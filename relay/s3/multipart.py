"""
Chunked multipart uploader.
Streams an async byte source into the object store part by part.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from relay.core.exceptions import RelayError, UploadError
from relay.s3.client import S3Client
from relay.s3.config import (
    DEFAULT_PART_SIZE,
    DEFAULT_QUEUE_SIZE,
    MAX_PARTS,
    MIN_PART_SIZE,
    PROGRESS_LOG_INTERVAL,
)
from relay.utils.streaming import PartBuffer

logger = logging.getLogger(__name__)

# Receives cumulative bytes acknowledged by the store
ProgressCallback = Callable[[int], Awaitable[None]]


@dataclass
class UploadReceipt:
    """Result of a finished upload."""

    bucket: str
    key: str
    size_bytes: int
    parts: int
    sha256: Optional[str] = None
    etag: Optional[str] = None


class ChunkedUploader:
    """
    Memory-bounded upload of an arbitrary-length byte stream.

    The source is cut into parts of `part_size` bytes. Up to `queue_size`
    parts are uploaded concurrently while the next one is assembled, so peak
    memory is about part_size * (queue_size + 1).

    A source that fits in a single part is written with one PutObject.
    Larger sources use CreateMultipartUpload / UploadPart /
    CompleteMultipartUpload. On any failure the in-flight parts are allowed to
    settle and the multipart upload is aborted, so the key never holds a
    partial object.
    """

    def __init__(
        self,
        s3_client: S3Client,
        part_size: int = DEFAULT_PART_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE
    ):
        if part_size < MIN_PART_SIZE:
            raise ValueError(f"part_size must be at least {MIN_PART_SIZE} bytes")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")

        self.s3 = s3_client
        self.part_size = part_size
        self.queue_size = queue_size

    def _submit(self, func, *args) -> asyncio.Future:
        """Start a blocking boto3 call in the upload executor."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self.s3.upload_executor, partial(func, *args))

    async def _run(self, func, *args):
        """Run a blocking boto3 call in the upload executor."""
        return await self._submit(func, *args)

    async def upload(
        self,
        bucket: str,
        key: str,
        source: AsyncIterator[bytes],
        content_type: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> UploadReceipt:
        """
        Upload everything `source` yields to bucket/key.

        Args:
            bucket: Bucket name
            key: Object key
            source: Async iterator of raw bytes
            content_type: MIME type stored on the object
            on_progress: Awaited with cumulative acknowledged bytes

        Returns:
            UploadReceipt for the stored object

        Raises:
            UploadError: If any store operation fails
            RelayError: Errors raised by the source are re-raised unchanged
        """
        buffer = PartBuffer(source, self.part_size)

        first_part = await buffer.next_part() or b""

        if len(first_part) < self.part_size or await buffer.peek_exhausted():
            return await self._upload_single(bucket, key, first_part, buffer, content_type, on_progress)

        return await self._upload_multipart(bucket, key, first_part, buffer, content_type, on_progress)

    async def _upload_single(
        self,
        bucket: str,
        key: str,
        body: bytes,
        buffer: PartBuffer,
        content_type: str,
        on_progress: Optional[ProgressCallback]
    ) -> UploadReceipt:
        logger.info(f"[MULTIPART] Source fits in one part, using PutObject: {bucket}/{key} ({len(body)} bytes)")

        try:
            etag = await self._run(self.s3.put_object, bucket, key, body, content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[MULTIPART] PutObject failed: {bucket}/{key} :: {e}")
            raise UploadError(str(e)) from e

        if on_progress is not None:
            await on_progress(len(body))

        return UploadReceipt(
            bucket=bucket,
            key=key,
            size_bytes=len(body),
            parts=1,
            sha256=buffer.get_checksum(),
            etag=etag
        )

    async def _upload_multipart(
        self,
        bucket: str,
        key: str,
        first_part: bytes,
        buffer: PartBuffer,
        content_type: str,
        on_progress: Optional[ProgressCallback]
    ) -> UploadReceipt:
        try:
            upload_id = await self._run(self.s3.create_multipart_upload, bucket, key, content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[MULTIPART] CreateMultipartUpload failed: {bucket}/{key} :: {e}")
            raise UploadError(str(e)) from e

        slots = asyncio.Semaphore(self.queue_size)
        tasks: List[asyncio.Task] = []
        # Executor calls keep running after their task is cancelled
        part_calls: List[asyncio.Future] = []
        acknowledged = 0
        last_log = 0

        async def send_part(part_number: int, body: bytes) -> Tuple[int, str]:
            nonlocal acknowledged, last_log
            call = self._submit(self.s3.upload_part, bucket, key, upload_id, part_number, body)
            part_calls.append(call)
            try:
                etag = await asyncio.shield(call)
            finally:
                slots.release()

            acknowledged += len(body)
            if acknowledged - last_log >= PROGRESS_LOG_INTERVAL:
                logger.info(f"[MULTIPART] Progress: {acknowledged / 1024 / 1024:.2f}MB uploaded ({bucket}/{key})")
                last_log = acknowledged

            if on_progress is not None:
                await on_progress(acknowledged)
            return part_number, etag

        try:
            part_number = 1
            part: Optional[bytes] = first_part

            while part is not None:
                if part_number > MAX_PARTS:
                    raise UploadError(f"object needs more than {MAX_PARTS} parts; raise the part size")

                await slots.acquire()
                self._raise_for_failed(tasks)

                tasks.append(asyncio.create_task(send_part(part_number, part)))
                part = None  # drop our reference before reading the next part

                part = await buffer.next_part()
                part_number += 1

            results = await asyncio.gather(*tasks)
            parts = [
                {'PartNumber': number, 'ETag': etag}
                for number, etag in sorted(results)
            ]

            etag = await self._run(self.s3.complete_multipart_upload, bucket, key, upload_id, parts)

        except BaseException as exc:
            # Let in-flight parts settle so none lands after the abort
            await asyncio.gather(*tasks, return_exceptions=True)
            await asyncio.gather(*part_calls, return_exceptions=True)
            await self._abort(bucket, key, upload_id)

            if isinstance(exc, RelayError) or not isinstance(exc, Exception):
                raise
            logger.error(f"[MULTIPART] Upload failed: {bucket}/{key} :: {exc}")
            raise UploadError(str(exc)) from exc

        return UploadReceipt(
            bucket=bucket,
            key=key,
            size_bytes=buffer.total_bytes,
            parts=len(parts),
            sha256=buffer.get_checksum(),
            etag=etag
        )

    @staticmethod
    def _raise_for_failed(tasks: List[asyncio.Task]) -> None:
        """Surface the first part failure before queuing more work."""
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _abort(self, bucket: str, key: str, upload_id: str) -> None:
        """Abort the multipart upload. Failures are logged, not raised."""
        try:
            await self._run(self.s3.abort_multipart_upload, bucket, key, upload_id)
        except Exception as e:
            logger.error(
                f"[MULTIPART] Abort failed for upload {upload_id} ({bucket}/{key}); "
                f"parts may remain until the bucket lifecycle rule removes them :: {e}"
            )
