# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for snaprelay tests.

Provides an in-memory object store, a scripted S3 client, relay
configuration and an HTTP client bound to a FastAPI app serving the relay.
"""

import os
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import AsyncIterator, Dict, Generator, List

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError

from snaprelay.exceptions import StorageError
from snaprelay.store import ObjectMetadata

TEST_BUCKET = "test-bucket"


class InMemoryObjectStore:
    """
    ObjectStore keeping objects in a dict.

    ``fail`` maps an operation name to an error message; the next call to
    that operation raises StorageError with it. ``fail_mid_stream`` makes
    read streams break after their first chunk.
    """

    def __init__(self, bucket: str = TEST_BUCKET, bucket_present: bool = True):
        self.bucket = bucket
        self.bucket_present = bucket_present
        self.objects: Dict[str, dict] = {}
        self.fail: Dict[str, str] = {}
        self.fail_mid_stream = False
        self.calls: List[str] = []
        self.chunk_size = 256

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        message = self.fail.pop(operation, None)
        if message is not None:
            raise StorageError(message)

    async def bucket_exists(self) -> bool:
        self._record("bucket_exists")
        return self.bucket_present

    async def object_exists(self, key: str) -> bool:
        self._record("object_exists")
        return key in self.objects

    async def get_metadata(self, key: str) -> ObjectMetadata:
        self._record("get_metadata")
        obj = self.objects[key]
        return ObjectMetadata(created_at=obj["created_at"], custom=dict(obj["metadata"]))

    async def write_object(self, key, content, content_type, custom_metadata) -> None:
        self._record("write_object")
        self.objects[key] = {
            "content": bytes(content),
            "content_type": content_type,
            "metadata": dict(custom_metadata),
            "created_at": datetime.now(UTC),
        }

    async def open_read_stream(self, key: str) -> AsyncIterator[bytes]:
        self._record("open_read_stream")
        content = self.objects[key]["content"]
        return self._chunks(content)

    async def _chunks(self, content: bytes) -> AsyncIterator[bytes]:
        for start in range(0, len(content), self.chunk_size):
            if self.fail_mid_stream and start > 0:
                raise StorageError("connection reset")
            yield content[start:start + self.chunk_size]

    def put(self, key: str, content: bytes, secret: str, age: timedelta = timedelta(0)) -> None:
        """Store an object directly, created ``age`` ago."""
        self.objects[key] = {
            "content": content,
            "content_type": "application/octet-stream",
            "metadata": {"secret": secret},
            "created_at": datetime.now(UTC) - age,
        }

    def backdate(self, key: str, age: timedelta) -> None:
        """Pretend the object for ``key`` was written ``age`` ago."""
        self.objects[key]["created_at"] = datetime.now(UTC) - age


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeBody:
    """Stand-in for an aiobotocore StreamingBody; records whether it was released."""

    def __init__(self, content: bytes, fail_after: int | None = None):
        self.content = content
        self.fail_after = fail_after
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def iter_chunks(self, chunk_size: int):
        for index, start in enumerate(range(0, len(self.content), chunk_size)):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionResetError("peer closed connection")
            yield self.content[start:start + chunk_size]


class FakeS3Client:
    """Answers S3 calls from a dict of objects, or raises a queued error."""

    def __init__(self, buckets=("test-bucket",)):
        self.buckets = set(buckets)
        self.objects = {}
        self.errors = {}
        self.body_fail_after = None
        self.put_calls = []
        self.bodies = []

    def _maybe_fail(self, operation: str) -> None:
        error = self.errors.pop(operation, None)
        if error is not None:
            raise error

    async def head_bucket(self, Bucket):
        self._maybe_fail("HeadBucket")
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    async def head_object(self, Bucket, Key):
        self._maybe_fail("HeadObject")
        if (Bucket, Key) not in self.objects:
            raise client_error("404", "HeadObject")
        obj = self.objects[(Bucket, Key)]
        return {"LastModified": obj["LastModified"], "Metadata": obj["Metadata"]}

    async def put_object(self, Bucket, Key, Body, ContentType, Metadata):
        self._maybe_fail("PutObject")
        self.put_calls.append(Key)
        self.objects[(Bucket, Key)] = {
            "Body": Body,
            "ContentType": ContentType,
            "Metadata": Metadata,
            "LastModified": datetime.now(UTC),
        }
        return {}

    async def get_object(self, Bucket, Key):
        self._maybe_fail("GetObject")
        if (Bucket, Key) not in self.objects:
            raise client_error("NoSuchKey", "GetObject")
        obj = self.objects[(Bucket, Key)]
        body = FakeBody(obj["Body"], self.body_fail_after)
        self.bodies.append(body)
        return {"Body": body}




@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store() -> InMemoryObjectStore:
    """Create an empty in-memory store with its bucket present."""
    return InMemoryObjectStore()


@pytest.fixture
def test_config():
    """Create a test configuration with the default one hour gate."""
    from snaprelay.config import RelayConfig

    return RelayConfig(bucket=TEST_BUCKET, min_backup_age=timedelta(hours=1))


@pytest.fixture
def relay_app(test_config, store):
    """Create a FastAPI app serving the relay on the in-memory store."""
    from fastapi import FastAPI

    from snaprelay.integrations.fastapi import register_relay_routes

    app = FastAPI()
    register_relay_routes(app, test_config, store)
    return app


@pytest_asyncio.fixture
async def http_client(relay_app):
    """Create an httpx client talking to the relay app in-process."""
    from httpx import AsyncClient, ASGITransport

    transport = ASGITransport(app=relay_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def clean_env(monkeypatch) -> None:
    """Remove relay-related environment variables."""
    for name in list(os.environ):
        if name.startswith("SNAPRELAY_") or name == "AWS_REGION":
            monkeypatch.delenv(name, raising=False)


def backup_headers(backup_id: str | None, secret: str | None) -> Dict[str, str]:
    """Build headers for a store request."""
    headers = {"content-type": "application/octet-stream"}
    if backup_id is not None:
        headers["x-bootstrap-id"] = backup_id
    if secret is not None:
        headers["x-bootstrap-secret"] = secret
    return headers


def restore_headers(backup_id: str | None, secret: str | None) -> Dict[str, str]:
    """Build headers for a fetch request."""
    headers = {"accept": "application/octet-stream"}
    if backup_id is not None:
        headers["x-bootstrap-id"] = backup_id
    if secret is not None:
        headers["x-bootstrap-secret"] = secret
    return headers


@pytest.fixture
def s3_client() -> FakeS3Client:
    """Create a scripted S3 client with an empty test bucket."""
    return FakeS3Client()


@pytest.fixture
def s3_store(s3_client):
    """Create an S3ObjectStore on the scripted client, reading 4-byte chunks."""
    from snaprelay.store import S3ObjectStore

    return S3ObjectStore(s3_client, TEST_BUCKET, chunk_size=4)
