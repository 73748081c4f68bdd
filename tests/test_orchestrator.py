"""Tests for the upload orchestrator pipeline."""

import json

import pytest

from relay.core.config import settings
from relay.core.orchestrator import UploadOrchestrator
from relay.s3.multipart import ChunkedUploader

from conftest import payload

KB = 1024
BASE = "https://files.example.org"
DOMAIN = "https://media.example.com"


@pytest.fixture
def orchestrator(fake_s3, remote, small_parts):
    """Orchestrator with small parts so multipart runs on small payloads."""
    orch = UploadOrchestrator(settings, fake_s3, remote.client())
    orch.uploader = ChunkedUploader(fake_s3, part_size=20 * KB, queue_size=4)
    return orch


async def run(orch, remote_url, object_name):
    return [json.loads(line) async for line in orch.run(remote_url, object_name)]


def assert_single_terminal(records):
    terminal = [r for r in records if "success" in r or "error" in r]
    assert len(terminal) == 1
    assert terminal[0] is records[-1]


@pytest.mark.asyncio
async def test_relay_success(orchestrator, fake_s3, remote):
    """Test a full relay: parts, byte-identical object, progress and link."""
    data = payload(100 * KB)
    remote.serve_bytes("/movie.mp4", data)

    records = await run(orchestrator, f"{BASE}/movie.mp4", "My Movie (2024).mp4")

    assert_single_terminal(records)
    assert records[-1] == {"success": True, "link": f"{DOMAIN}/My%20Movie%20(2024).mp4"}

    stored = fake_s3.objects[("media", "My Movie (2024).mp4")]
    assert stored["body"] == data
    assert stored["metadata"]["ContentType"] == "video/mp4"
    assert stored["metadata"]["ContentDisposition"] == "inline"
    assert fake_s3.calls.count("upload_part") >= 5

    percentages = [r["progress"] for r in records[:-1]]
    assert percentages == sorted(percentages)
    assert len(set(percentages)) == len(percentages)
    assert all(0 <= p <= 100 for p in percentages)
    assert percentages[-1] == 100


@pytest.mark.asyncio
async def test_object_name_with_slash_is_encoded(orchestrator, fake_s3, remote):
    """Test the key is used verbatim while the link encodes it as one segment."""
    remote.serve_bytes("/a.webm", payload(KB))

    records = await run(orchestrator, f"{BASE}/a.webm", "shows/ep 1.webm")

    assert records[-1]["link"] == f"{DOMAIN}/shows%2Fep%201.webm"
    assert ("media", "shows/ep 1.webm") in fake_s3.objects


@pytest.mark.asyncio
async def test_remote_not_found(orchestrator, fake_s3, remote):
    """Test a 404 ends with a fetch error and creates nothing."""
    records = await run(orchestrator, f"{BASE}/missing.mp4", "missing.mp4")

    assert records == [{"error": "Cannot fetch remote url: remote server returned HTTP 404"}]
    assert fake_s3.calls == []
    assert fake_s3.objects == {}


@pytest.mark.asyncio
async def test_empty_remote_body_is_rejected(orchestrator, fake_s3, remote):
    """Test a source declaring Content-Length: 0 fails without creating an object."""
    remote.serve_bytes("/blank.mp4", b"")

    records = await run(orchestrator, f"{BASE}/blank.mp4", "blank.mp4")

    assert records == [{"error": "Cannot fetch remote url: remote server returned no body (Content-Length: 0)"}]
    assert fake_s3.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("remote_url,object_name", [
    (f"{BASE}/a.mp4", None),
    (f"{BASE}/a.mp4", ""),
    (None, "a.mp4"),
])
async def test_missing_fields_make_no_network_calls(orchestrator, fake_s3, remote, remote_url, object_name):
    """Test validation fails before any I/O."""
    remote.serve_bytes("/a.mp4", payload(KB))

    records = await run(orchestrator, remote_url, object_name)

    assert len(records) == 1
    assert records[0]["error"].startswith("Missing info")
    assert remote.requests == []
    assert fake_s3.calls == []


@pytest.mark.asyncio
async def test_unknown_length_still_terminates(orchestrator, fake_s3, remote):
    """Test a source without Content-Length emits no progress but still finishes."""
    data = payload(70 * KB)
    remote.serve_bytes("/live.mkv", data, declare_length=False)

    records = await run(orchestrator, f"{BASE}/live.mkv", "live.mkv")

    assert records == [{"success": True, "link": f"{DOMAIN}/live.mkv"}]
    assert fake_s3.objects[("media", "live.mkv")]["body"] == data


@pytest.mark.asyncio
async def test_upload_failure_leaves_no_object(orchestrator, fake_s3, remote):
    """Test a store failure ends with an upload error and an aborted upload."""
    fake_s3.fail_part = 2
    remote.serve_bytes("/movie.mp4", payload(100 * KB))

    records = await run(orchestrator, f"{BASE}/movie.mp4", "movie.mp4")

    assert_single_terminal(records)
    assert records[-1]["error"].startswith("Upload failed")
    assert "abort_multipart_upload" in fake_s3.calls
    assert not fake_s3.file_exists("media", "movie.mp4")


@pytest.mark.asyncio
async def test_source_drop_leaves_no_object(orchestrator, fake_s3, remote):
    """Test a download that dies mid-transfer is reported as a fetch error."""
    remote.serve_bytes("/movie.mp4", payload(100 * KB), fail_after=50 * KB)

    records = await run(orchestrator, f"{BASE}/movie.mp4", "movie.mp4")

    assert_single_terminal(records)
    assert records[-1]["error"].startswith("Cannot fetch remote url: connection lost")
    assert "abort_multipart_upload" in fake_s3.calls
    assert not fake_s3.file_exists("media", "movie.mp4")


@pytest.mark.asyncio
@pytest.mark.parametrize("name,content_type", [
    ("clip.mkv", "video/x-matroska"),
    ("clip.xyz", "application/octet-stream"),
])
async def test_content_type_from_name(orchestrator, fake_s3, remote, name, content_type):
    """Test the stored content type follows the target name."""
    remote.serve_bytes("/source", payload(2 * KB))

    await run(orchestrator, f"{BASE}/source", name)

    assert fake_s3.objects[("media", name)]["metadata"]["ContentType"] == content_type


@pytest.mark.asyncio
async def test_unexpected_error_is_reported(orchestrator, fake_s3, remote, monkeypatch):
    """Test an unforeseen exception still produces one terminal error record."""
    remote.serve_bytes("/a.mp4", payload(KB))

    def broken(key):
        raise RuntimeError("link builder exploded")

    monkeypatch.setattr(fake_s3, "get_public_url", broken)

    records = await run(orchestrator, f"{BASE}/a.mp4", "a.mp4")

    assert records == [{"error": "Unexpected error: link builder exploded"}]


@pytest.mark.asyncio
async def test_client_disconnect_aborts_upload(orchestrator, fake_s3, remote):
    """Test closing the stream early cancels the pipeline and aborts the upload."""
    fake_s3.part_delay = 0.05
    orchestrator.uploader = ChunkedUploader(fake_s3, part_size=4 * KB, queue_size=1)
    remote.serve_bytes("/movie.mp4", payload(400 * KB))

    stream = orchestrator.run(f"{BASE}/movie.mp4", "movie.mp4")
    first = json.loads(await stream.__anext__())
    assert "progress" in first

    await stream.aclose()

    assert "abort_multipart_upload" in fake_s3.calls
    assert "complete_multipart_upload" not in fake_s3.calls
    assert not fake_s3.file_exists("media", "movie.mp4")
