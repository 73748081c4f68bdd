"""
Streaming upload utilities.
Re-chunk an async byte stream into fixed-size multipart parts.
"""

import hashlib
import logging
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class PartBuffer:
    """
    Accumulate chunks from an async iterator into parts of `part_size` bytes.

    Only one part is assembled at a time, so memory held here is bounded by
    `part_size` plus one incoming chunk regardless of the stream length.

    Features:
    - Fixed-size parts (last part may be shorter)
    - SHA256 checksum of everything read, for integrity logging
    - Running byte count
    """

    def __init__(
        self,
        chunk_iterator: AsyncIterator[bytes],
        part_size: int,
        calculate_checksum: bool = True
    ):
        """
        Initialize buffer with async chunk iterator.

        Args:
            chunk_iterator: Async iterator yielding raw byte chunks
            part_size: Size of every part except the last, in bytes
            calculate_checksum: Whether to calculate SHA256 checksum (default: True)
        """
        if part_size <= 0:
            raise ValueError("part_size must be positive")

        self.chunk_iterator = chunk_iterator
        self.part_size = part_size
        self.buffer = bytearray()
        self.finished = False

        self.calculate_checksum = calculate_checksum
        self.sha256 = hashlib.sha256() if calculate_checksum else None
        self.total_bytes = 0
        self.parts_emitted = 0

    async def next_part(self) -> Optional[bytes]:
        """
        Read from the source until a full part is available.

        Returns:
            Part bytes, or None once the source is exhausted and drained
        """
        while not self.finished and len(self.buffer) < self.part_size:
            try:
                chunk = await self.chunk_iterator.__anext__()
            except StopAsyncIteration:
                self.finished = True
                break

            if chunk:
                self.buffer.extend(chunk)

        if not self.buffer:
            return None

        data = bytes(self.buffer[:self.part_size])
        del self.buffer[:self.part_size]

        if self.sha256 is not None:
            self.sha256.update(data)
        self.total_bytes += len(data)
        self.parts_emitted += 1

        logger.debug(f"[PART BUFFER] Part {self.parts_emitted} ready ({len(data)} bytes)")
        return data

    async def peek_exhausted(self) -> bool:
        """
        Check whether the source has nothing beyond what is already buffered.

        Pulls chunks into the buffer until one carries data or the source ends.
        """
        while not self.finished and not self.buffer:
            try:
                chunk = await self.chunk_iterator.__anext__()
            except StopAsyncIteration:
                self.finished = True
                break
            self.buffer.extend(chunk)

        return self.finished and not self.buffer

    def get_checksum(self) -> Optional[str]:
        """
        Get SHA256 checksum of data read so far.

        Returns:
            Hex string of SHA256 checksum, or None if checksum not calculated
        """
        if self.sha256:
            return self.sha256.hexdigest()
        return None
