# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object Store Adapter - The storage operations the relay handlers rely on.

The handlers are written against the ObjectStore protocol only. The S3
implementation maps each operation onto a single aiobotocore call and turns
every failure into a StorageError carrying the original exception as its
cause.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Protocol

import structlog
from botocore.exceptions import ClientError

from snaprelay.config import RelayConfig
from snaprelay.exceptions import StorageError

logger = structlog.get_logger()

# Error codes S3 uses for a missing bucket or key on HEAD/GET
_NOT_FOUND_CODES = frozenset({"404", "NoSuchBucket", "NoSuchKey", "NotFound"})


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata of one stored object."""

    created_at: datetime
    custom: Dict[str, str] = field(default_factory=dict)


class ReadStream(Protocol):
    """
    Chunks of one object being read.

    aclose() releases the underlying connection and is safe to call at any
    point, including before the first chunk and after the last one.
    """

    def __aiter__(self) -> "ReadStream": ...

    async def __anext__(self) -> bytes: ...

    async def aclose(self) -> None: ...


class ObjectStore(Protocol):
    """Storage operations needed by the backup and restore handlers."""

    bucket: str

    async def bucket_exists(self) -> bool: ...

    async def object_exists(self, key: str) -> bool: ...

    async def get_metadata(self, key: str) -> ObjectMetadata: ...

    async def write_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        custom_metadata: Dict[str, str],
    ) -> None: ...

    async def open_read_stream(self, key: str) -> ReadStream: ...


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in _NOT_FOUND_CODES


class S3ObjectStore:
    """
    ObjectStore backed by an S3 bucket.

    Takes an already opened aiobotocore S3 client; use open_s3_store() to
    get one tied to a RelayConfig.
    """

    def __init__(self, client: Any, bucket: str, chunk_size: int = 64 * 1024):
        self._client = client
        self.bucket = bucket
        self._chunk_size = chunk_size

    async def bucket_exists(self) -> bool:
        try:
            await self._client.head_bucket(Bucket=self.bucket)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise StorageError(str(e), details={"bucket": self.bucket}) from e
        except Exception as e:
            raise StorageError(str(e), details={"bucket": self.bucket}) from e

    async def object_exists(self, key: str) -> bool:
        try:
            await self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise StorageError(str(e), details={"key": key}) from e
        except Exception as e:
            raise StorageError(str(e), details={"key": key}) from e

    async def get_metadata(self, key: str) -> ObjectMetadata:
        """
        Read the object's timestamp and user metadata.

        S3 has no separate creation time; LastModified is the time the
        current version was written, which is what the age gate needs since
        every backup replaces the whole object.
        """
        try:
            response = await self._client.head_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(str(e), details={"key": key}) from e

        return ObjectMetadata(
            created_at=response["LastModified"],
            custom=dict(response.get("Metadata") or {}),
        )

    async def write_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        custom_metadata: Dict[str, str],
    ) -> None:
        try:
            await self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
                Metadata=custom_metadata,
            )
        except Exception as e:
            raise StorageError(str(e), details={"key": key}) from e

        logger.debug("s3_object_written", key=key, size=len(content))

    async def open_read_stream(self, key: str) -> "S3ReadStream":
        """
        Start a GET for ``key`` and return a stream over its body.

        Failing to start the GET raises here; failures while reading the
        body are raised by the stream. The body is held open until the
        stream is exhausted, fails, or is closed.
        """
        try:
            response = await self._client.get_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(str(e), details={"key": key}) from e

        stream = S3ReadStream(response["Body"], key, self._chunk_size)
        await stream.open()
        return stream


class S3ReadStream:
    """Chunked reader over an aiobotocore StreamingBody."""

    def __init__(self, body: Any, key: str, chunk_size: int):
        self._body = body
        self._key = key
        self._chunk_size = chunk_size
        self._chunks: Any = None
        self._resources = AsyncExitStack()

    async def open(self) -> None:
        try:
            await self._resources.enter_async_context(self._body)
        except Exception as e:
            raise StorageError(str(e), details={"key": self._key}) from e

    def __aiter__(self) -> "S3ReadStream":
        return self

    async def __anext__(self) -> bytes:
        if self._chunks is None:
            self._chunks = self._body.iter_chunks(self._chunk_size)
            self._resources.push_async_callback(self._chunks.aclose)

        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except Exception as e:
            await self.aclose()
            raise StorageError(str(e), details={"key": self._key}) from e

    async def aclose(self) -> None:
        await self._resources.aclose()


@asynccontextmanager
async def open_s3_store(config: RelayConfig) -> AsyncIterator[S3ObjectStore]:
    """
    Open an aiobotocore S3 client for ``config`` and yield a store on it.

    The client stays open for the lifetime of the context, so use this
    around the whole serving period rather than per request.
    """
    from aiobotocore.session import get_session

    session = get_session()
    async with session.create_client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
    ) as client:
        logger.info(
            "s3_store_opened",
            bucket=config.bucket,
            region=config.region,
            endpoint_url=config.endpoint_url,
        )
        yield S3ObjectStore(client, config.bucket, config.read_chunk_size)
    logger.info("s3_store_closed", bucket=config.bucket)
