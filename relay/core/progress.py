"""
Progress relay.
Ordered hand-off of stream records from the upload pipeline to the response.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from relay.models.session import ProgressEvent, UploadOutcome

logger = logging.getLogger(__name__)

# End-of-stream marker
_END = object()


class ProgressRelay:
    """
    Bounded queue between one upload (producer) and one response (consumer).

    - publish() waits for queue space, so a slow client slows the upload
      instead of growing memory.
    - Only strictly increasing percentages are forwarded.
    - finish() enqueues the terminal record and end-of-stream exactly once.
    - close() detaches the consumer; later records are dropped.
    """

    def __init__(self, max_pending: int = 64):
        # +2 leaves room for the terminal record and end-of-stream
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending + 2)
        self._last_percentage: Optional[int] = None
        # Held across the ordering check and the put
        self._lock = asyncio.Lock()
        self._finished = False
        self._closed = False

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def last_percentage(self) -> Optional[int]:
        return self._last_percentage

    async def publish(self, event: ProgressEvent) -> bool:
        """
        Forward a progress event.

        Returns:
            True if the event was queued, False if it was suppressed
        """
        async with self._lock:
            if self._finished or self._closed:
                return False
            if self._last_percentage is not None and event.percentage <= self._last_percentage:
                return False

            self._last_percentage = event.percentage
            await self._put(event.to_record())
            return True

    async def finish(self, outcome: UploadOutcome) -> bool:
        """
        Emit the terminal record and end the stream.

        Returns:
            True on the first call, False afterwards
        """
        if self._finished:
            logger.warning(f"[RELAY] Terminal record already sent, ignoring {outcome.to_record()}")
            return False

        self._finished = True
        if self._closed:
            return True

        async with self._lock:
            await self._put(outcome.to_record())
            await self._put(_END)
        return True

    async def _put(self, item: Any) -> None:
        await self._queue.put(item)
        # Consumer may have detached while we waited for space
        if self._closed:
            self._drain()

    def close(self) -> None:
        """Detach the consumer and release any producer waiting for space."""
        self._closed = True
        self._drain()

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    async def records(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield records in arrival order until end-of-stream."""
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item

    async def stream(self) -> AsyncIterator[str]:
        """Yield newline-delimited JSON lines until end-of-stream."""
        async for record in self.records():
            yield json.dumps(record) + "\n"
