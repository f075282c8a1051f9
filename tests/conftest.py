# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for plexbackup tests.

Provides an in-memory S3 client, a recording service controller that
shares its call log with it, a fake Plex data directory and test
configuration helpers.
"""

import asyncio
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Generator, List, Tuple

import pytest
from botocore.exceptions import ClientError

from plexbackup.exceptions import ServiceControlError


def client_error(operation: str, code: str = "InternalError") -> ClientError:
    """Build the ClientError botocore raises for a failed S3 call."""
    return ClientError(
        {"Error": {"Code": code, "Message": f"simulated {operation} failure"}},
        operation,
    )


class FakeS3Client:
    """
    In-memory stand-in for an aiobotocore S3 client.

    Every call is appended to ``calls`` as ``(operation, key)``. Setting
    ``fail_on`` to an operation name makes that operation raise ClientError.
    """

    def __init__(self, calls: List[Tuple[str, str]] | None = None):
        self.calls = calls if calls is not None else []
        self.objects: Dict[str, Tuple[bytes, datetime]] = {}
        self.uploads: Dict[str, Dict[int, bytes]] = {}
        self.aborted: List[str] = []
        self.fail_on: set = set()
        self.truncated = False

    def add_object(self, key: str, body: bytes = b"old backup", last_modified: datetime | None = None) -> None:
        self.objects[key] = (body, last_modified or datetime.now(UTC))

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise client_error(operation)

    async def list_objects_v2(self, Bucket: str, Prefix: str = "", **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("list", Prefix))
        self._check("list_objects_v2")
        contents = [
            {"Key": key, "LastModified": modified, "Size": len(body)}
            for key, (body, modified) in sorted(self.objects.items())
            if key.startswith(Prefix)
        ]
        response: Dict[str, Any] = {"IsTruncated": self.truncated, "KeyCount": len(contents)}
        if contents:
            response["Contents"] = contents
        return response

    async def put_object(self, Bucket: str, Key: str, Body: bytes, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("put", Key))
        self._check("put_object")
        self.objects[Key] = (bytes(Body), datetime.now(UTC))
        return {"ETag": '"etag"'}

    async def create_multipart_upload(self, Bucket: str, Key: str, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("create_multipart", Key))
        self._check("create_multipart_upload")
        upload_id = f"upload-{len(self.uploads) + 1}"
        self.uploads[upload_id] = {}
        return {"UploadId": upload_id}

    async def upload_part(
        self, Bucket: str, Key: str, UploadId: str, PartNumber: int, Body: bytes, **kwargs: Any
    ) -> Dict[str, Any]:
        self.calls.append(("upload_part", Key))
        self._check("upload_part")
        self.uploads[UploadId][PartNumber] = bytes(Body)
        return {"ETag": f'"etag-{PartNumber}"'}

    async def complete_multipart_upload(
        self, Bucket: str, Key: str, UploadId: str, MultipartUpload: Dict[str, Any], **kwargs: Any
    ) -> Dict[str, Any]:
        self.calls.append(("complete_multipart", Key))
        self._check("complete_multipart_upload")
        parts = self.uploads.pop(UploadId)
        numbers = [part["PartNumber"] for part in MultipartUpload["Parts"]]
        assert numbers == sorted(parts), "parts completed out of order"
        self.objects[Key] = (b"".join(parts[n] for n in numbers), datetime.now(UTC))
        return {"ETag": '"etag-complete"'}

    async def abort_multipart_upload(self, Bucket: str, Key: str, UploadId: str, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("abort_multipart", Key))
        self._check("abort_multipart_upload")
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)
        return {}

    async def delete_object(self, Bucket: str, Key: str, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(("delete", Key))
        self._check("delete_object")
        self.objects.pop(Key, None)
        return {}


class FakeServiceController:
    """Records stop/start calls into a shared call log."""

    def __init__(self, calls: List[Tuple[str, str]] | None = None):
        self.calls = calls if calls is not None else []
        self.fail_stop = False
        self.fail_start = False
        self.start_delay = 0.0
        self.stopped = asyncio.Event()
        self.start_began = asyncio.Event()
        self.started = asyncio.Event()

    async def stop(self, service: str) -> None:
        self.calls.append(("stop", service))
        if self.fail_stop:
            raise ServiceControlError("systemctl stop exited with status 1", details={"service": service})
        self.stopped.set()

    async def start(self, service: str) -> None:
        self.calls.append(("start", service))
        self.start_began.set()
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.fail_start:
            raise ServiceControlError("systemctl start exited with status 1", details={"service": service})
        self.started.set()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def plex_dir(temp_dir: Path) -> Path:
    """
    Create a small 'Plex Media Server' directory.

    Includes every excluded entry so tests can check they stay out of the
    archive.
    """
    root = temp_dir / "Plex Media Server"
    (root / "Plug-in Support" / "Databases").mkdir(parents=True)
    (root / "Plug-in Support" / "Databases" / "com.plexapp.plugins.library.db").write_bytes(
        b"SQLite format 3\x00" + b"library" * 512
    )
    (root / "Preferences.xml").write_text('<?xml version="1.0"?><Preferences />\n')
    (root / "Cache" / "PhotoTranscoder").mkdir(parents=True)
    (root / "Cache" / "PhotoTranscoder" / "thumb.jpg").write_bytes(b"\xff\xd8" * 100)
    (root / "Crash Reports").mkdir()
    (root / "Crash Reports" / "crash.dmp").write_bytes(b"dump")
    (root / "Diagnostics").mkdir()
    (root / "Diagnostics" / "trace.log").write_text("trace\n")
    (root / "plexmediaserver.pid").write_text("4242\n")
    return root


@pytest.fixture
def calls() -> List[Tuple[str, str]]:
    """Call log shared by the fake S3 client and the fake controller."""
    return []


@pytest.fixture
def fake_s3(calls) -> FakeS3Client:
    return FakeS3Client(calls)


@pytest.fixture
def fake_controller(calls) -> FakeServiceController:
    return FakeServiceController(calls)


@pytest.fixture
def test_config(plex_dir: Path):
    """Create a test configuration backing up ``plex_dir``."""
    from plexbackup.config import BackupConfig

    return BackupConfig(
        bucket="test-bucket",
        prefix="plex/",
        directory=plex_dir,
        service="plexmediaserver.service",
    )


@pytest.fixture
def failing_tar(monkeypatch):
    """Make the archiver print some output and exit with status 2."""
    from plexbackup.pipeline import archiver

    monkeypatch.setattr(
        archiver,
        "build_tar_command",
        lambda directory: ["sh", "-c", "echo partial; echo 'tar: boom' >&2; exit 2"],
    )


@pytest.fixture
def slow_tar(monkeypatch):
    """Make the archiver block until killed."""
    from plexbackup.pipeline import archiver

    monkeypatch.setattr(
        archiver,
        "build_tar_command",
        lambda directory: ["sh", "-c", "exec sleep 30"],
    )
