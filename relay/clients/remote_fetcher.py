"""
Remote source client.
Opens a streaming GET against the URL being relayed.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from relay.core.exceptions import FetchError

logger = logging.getLogger(__name__)

# Statuses that are 2xx but never carry a body
NO_BODY_STATUSES = (204, 205)


def parse_content_length(response: httpx.Response) -> int:
    """
    Declared body size of a response.

    Returns:
        Content-Length in bytes, or 0 if absent, invalid, or describing an
        encoded body
    """
    encoding = response.headers.get("content-encoding", "identity").lower()
    if encoding not in ("", "identity"):
        return 0

    value = response.headers.get("content-length", "").strip()
    if not value.isdigit():
        return 0
    return int(value)


@dataclass
class RemoteStream:
    """An open remote response."""

    url: str
    total_size: int
    response: httpx.Response

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """
        Yield the response body as it arrives.

        Raises:
            FetchError: On connection errors, or if the body does not match
                the declared length
        """
        received = 0
        try:
            async for chunk in self.response.aiter_bytes():
                received += len(chunk)
                if self.total_size and received > self.total_size:
                    raise FetchError(
                        f"remote server sent more than the declared {self.total_size} bytes"
                    )
                yield chunk
        except httpx.HTTPError as e:
            logger.error(f"[FETCH] Stream interrupted after {received} bytes: {self.url} :: {e}")
            raise FetchError(f"connection lost after {received} bytes ({e})") from e

        if self.total_size and received < self.total_size:
            raise FetchError(
                f"remote server closed the connection after {received} of {self.total_size} bytes"
            )


class RemoteFetcher:
    """Streams remote files through a shared httpx client. Never retries."""

    def __init__(self, client: httpx.AsyncClient):
        """
        Args:
            client: HTTP client (redirect handling and timeouts are its own)
        """
        self.client = client

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[RemoteStream]:
        """
        Open a streaming GET for `url`.

        The response is closed when the context exits.

        Args:
            url: Remote file URL

        Yields:
            RemoteStream with the declared size (0 if unknown) and the body

        Raises:
            FetchError: If the server is unreachable, answers with a
                non-success status, or sends no body
        """
        try:
            request = self.client.build_request(
                "GET",
                url,
                headers={"Accept-Encoding": "identity"}
            )
            response = await self.client.send(request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"[FETCH] Request failed: {url} :: {e}")
            raise FetchError(str(e) or type(e).__name__) from e

        try:
            if not response.is_success:
                logger.warning(f"[FETCH] Remote returned {response.status_code}: {url}")
                raise FetchError(f"remote server returned HTTP {response.status_code}")

            if response.status_code in NO_BODY_STATUSES:
                raise FetchError(f"remote server returned no body (HTTP {response.status_code})")

            if response.headers.get("content-length", "").strip() == "0":
                raise FetchError("remote server returned no body (Content-Length: 0)")

            total_size = parse_content_length(response)
            logger.info(f"[FETCH] Opened {url} (declared size: {total_size or 'unknown'})")

            yield RemoteStream(url=url, total_size=total_size, response=response)

        finally:
            await response.aclose()
