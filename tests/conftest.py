"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("R2_ACCOUNT_ID", "test-account")
os.environ.setdefault("R2_ACCESS_KEY_ID", "test-key")
os.environ.setdefault("R2_SECRET_ACCESS_KEY", "test-secret")
os.environ.setdefault("R2_BUCKET_NAME", "media")
os.environ.setdefault("R2_PUBLIC_DOMAIN", "https://media.example.com/")
os.environ.setdefault("ADMIN_PASSWORD", "letmein")
os.environ.setdefault("S3_ENDPOINT_URL", "http://127.0.0.1:9")

import hashlib
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest
from botocore.exceptions import ClientError

from relay.s3.client import S3Client


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (test)"}}, operation)


class FakeS3Client:
    """In-memory stand-in for S3Client's multipart surface."""

    get_public_url = S3Client.get_public_url
    object_metadata = staticmethod(S3Client.object_metadata)

    def __init__(self, public_domain="https://media.example.com", queue_size=4):
        self.public_domain = public_domain
        self.bucket = "media"
        self.upload_executor = ThreadPoolExecutor(max_workers=queue_size + 1)

        self.objects = {}      # (bucket, key) -> {"body": bytes, "metadata": dict}
        self.uploads = {}      # upload_id -> {"bucket", "key", "metadata", "parts"}
        self.aborted = []
        self.in_flight_at_abort = []
        self.calls = []

        self.fail_part = None
        self.fail_complete = False
        self.fail_put = False
        self.part_delay = 0.0

        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _record(self, name):
        with self._lock:
            self.calls.append(name)

    def create_multipart_upload(self, bucket, key, content_type):
        self._record("create_multipart_upload")
        upload_id = uuid.uuid4().hex
        with self._lock:
            self.uploads[upload_id] = {
                "bucket": bucket,
                "key": key,
                "metadata": self.object_metadata(content_type),
                "parts": {},
            }
        return upload_id

    def upload_part(self, bucket, key, upload_id, part_number, body):
        self._record("upload_part")
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.part_delay:
                time.sleep(self.part_delay)
            if self.fail_part == part_number:
                raise client_error("InternalError", "UploadPart")
            etag = hashlib.md5(body).hexdigest()
            with self._lock:
                self.uploads[upload_id]["parts"][part_number] = (etag, bytes(body))
            return etag
        finally:
            with self._lock:
                self.in_flight -= 1

    def complete_multipart_upload(self, bucket, key, upload_id, parts):
        self._record("complete_multipart_upload")
        if self.fail_complete:
            raise client_error("InvalidPart", "CompleteMultipartUpload")
        with self._lock:
            upload = self.uploads.pop(upload_id, None)
        if upload is None:
            raise client_error("NoSuchUpload", "CompleteMultipartUpload")

        numbers = [p["PartNumber"] for p in parts]
        assert numbers == sorted(numbers)
        body = b""
        for part in parts:
            etag, data = upload["parts"][part["PartNumber"]]
            assert etag == part["ETag"]
            body += data

        self.objects[(bucket, key)] = {"body": body, "metadata": upload["metadata"]}
        return "assembled-etag"

    def abort_multipart_upload(self, bucket, key, upload_id):
        self._record("abort_multipart_upload")
        with self._lock:
            self.uploads.pop(upload_id, None)
            self.aborted.append(upload_id)
            self.in_flight_at_abort.append(self.in_flight)

    def put_object(self, bucket, key, body, content_type):
        self._record("put_object")
        if self.fail_put:
            raise client_error("AccessDenied", "PutObject")
        self.objects[(bucket, key)] = {
            "body": bytes(body),
            "metadata": self.object_metadata(content_type),
        }
        return "put-etag"

    def file_exists(self, bucket, key):
        return (bucket, key) in self.objects

    def check_bucket(self, bucket=None):
        return None

    def close(self):
        self.upload_executor.shutdown(wait=False)


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered in fixed chunks, optionally failing midway."""

    def __init__(self, data: bytes, chunk_size: int = 4096, fail_after: int | None = None):
        self.data = data
        self.chunk_size = chunk_size
        self.fail_after = fail_after

    async def __aiter__(self):
        sent = 0
        for offset in range(0, len(self.data), self.chunk_size):
            if self.fail_after is not None and sent >= self.fail_after:
                raise httpx.ReadError("connection reset by peer")
            chunk = self.data[offset:offset + self.chunk_size]
            sent += len(chunk)
            yield chunk


class RemoteServer:
    """Routes for httpx.MockTransport, with a request log."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, path, response_factory):
        self.routes[path] = response_factory

    def serve_bytes(self, path, data, declare_length=True, chunk_size=4096, fail_after=None):
        def factory():
            headers = {"content-length": str(len(data))} if declare_length else {}
            return httpx.Response(
                200,
                headers=headers,
                stream=ChunkStream(data, chunk_size=chunk_size, fail_after=fail_after),
            )
        self.add(path, factory)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        factory = self.routes.get(request.url.path)
        if factory is None:
            return httpx.Response(404, text="not found")
        return factory()

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            base_url="https://files.example.org",
            follow_redirects=True,
        )


@pytest.fixture
def fake_s3():
    """In-memory object store."""
    s3 = FakeS3Client()
    yield s3
    s3.close()


@pytest.fixture
def remote():
    """Mock remote file server."""
    return RemoteServer()


@pytest.fixture
def small_parts(monkeypatch):
    """Allow sub-5MB parts so multipart paths run on small payloads."""
    monkeypatch.setattr("relay.s3.multipart.MIN_PART_SIZE", 1024)


def payload(size: int) -> bytes:
    """Deterministic, non-repeating-looking test data."""
    block = hashlib.sha256(str(size).encode()).digest()
    return (block * (size // len(block) + 1))[:size]
