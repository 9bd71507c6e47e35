# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Relay Handlers - Gating logic for storing and fetching backups.

Both handlers run the same shape of pipeline: validate the request without
touching storage, then walk through the store lookups one at a time,
stopping at the first rejection. Rejections are raised as RelayHTTPError;
store failures surface as StorageError tagged with the number of the
lookup that failed.
"""

import hmac
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Iterator

import structlog

from snaprelay.config import RelayConfig
from snaprelay.exceptions import RelayHTTPError, StorageError
from snaprelay.store import ObjectStore, ReadStream

logger = structlog.get_logger()

BINARY_CONTENT_TYPE = "application/octet-stream"
ID_HEADER = "x-bootstrap-id"
SECRET_HEADER = "x-bootstrap-secret"

SECRET_METADATA_KEY = "secret"

# Store call numbers reported with StorageError
STAGE_BUCKET_CHECK = 1
STAGE_OBJECT_EXISTS = 2
STAGE_METADATA_READ = 3
STAGE_STREAM_READ = 4
STAGE_OBJECT_WRITE = 5


@dataclass(frozen=True)
class BackupRequest:
    """The parts of an inbound store request the backup handler looks at."""

    method: str
    content_type: str | None
    backup_id: str | None
    secret: str | None
    body: bytes = b""


@dataclass(frozen=True)
class RestoreRequest:
    """The parts of an inbound fetch request the restore handler looks at."""

    method: str
    accept: str | None
    backup_id: str | None
    secret: str | None


@contextmanager
def _stage(number: int) -> Iterator[None]:
    try:
        yield
    except StorageError as e:
        raise e.at_stage(number) from e.__cause__


async def _require_bucket(store: ObjectStore) -> None:
    with _stage(STAGE_BUCKET_CHECK):
        exists = await store.bucket_exists()
    if not exists:
        raise RelayHTTPError(500, f"bucket {store.bucket} doesn't exist")


def _validate_backup(request: BackupRequest) -> None:
    if request.method != "POST":
        raise RelayHTTPError(405, "method must be POST")
    if request.content_type != BINARY_CONTENT_TYPE:
        raise RelayHTTPError(406, f"content-type must be {BINARY_CONTENT_TYPE}")
    if not request.backup_id:
        raise RelayHTTPError(400, "id is required")
    if not request.secret:
        raise RelayHTTPError(400, "secret is required")


def _validate_restore(request: RestoreRequest) -> None:
    if request.method != "GET":
        raise RelayHTTPError(405, "method must be GET")
    if request.accept != BINARY_CONTENT_TYPE:
        raise RelayHTTPError(400, f"accept must be {BINARY_CONTENT_TYPE}")
    if not request.backup_id:
        raise RelayHTTPError(400, "id is required")
    # A missing secret is an auth failure, not a malformed request
    if not request.secret:
        raise RelayHTTPError(401, "unauthorized")


async def handle_backup(
    config: RelayConfig,
    store: ObjectStore,
    request: BackupRequest,
) -> str:
    """
    Store one backup, subject to the age gate.

    Steps:
    1. Validate method, content type, id and secret
    2. Check the bucket exists
    3. If an object already exists for the id, reject when it is younger
       than config.min_backup_age
    4. Write the body with the secret as object metadata

    Args:
        config: Relay configuration
        store: Object store holding the backups
        request: The inbound store request

    Returns:
        Acknowledgement text for the caller

    Raises:
        RelayHTTPError: If the request is invalid or rate-gated, or the
            bucket is missing
        StorageError: If a store call fails (tagged with its stage)
    """
    _validate_backup(request)
    backup_id = request.backup_id

    await _require_bucket(store)

    with _stage(STAGE_OBJECT_EXISTS):
        exists = await store.object_exists(backup_id)

    if exists:
        with _stage(STAGE_METADATA_READ):
            metadata = await store.get_metadata(backup_id)

        age = datetime.now(UTC) - metadata.created_at
        if age < config.min_backup_age:
            logger.info(
                "backup_too_recent",
                backup_id=backup_id,
                age_seconds=age.total_seconds(),
                min_backup_age_seconds=config.min_backup_age.total_seconds(),
            )
            raise RelayHTTPError(429, "no need for backup right now")

    # Not atomic with the check above: concurrent backups for the same id
    # may both pass the gate, the last write wins.
    with _stage(STAGE_OBJECT_WRITE):
        await store.write_object(
            backup_id,
            request.body,
            BINARY_CONTENT_TYPE,
            {SECRET_METADATA_KEY: request.secret},
        )

    logger.info(
        "backup_stored",
        backup_id=backup_id,
        size=len(request.body),
        replaced=exists,
    )

    return f"Thank you, {backup_id}."


async def handle_restore(
    config: RelayConfig,
    store: ObjectStore,
    request: RestoreRequest,
) -> "RestoreStream":
    """
    Fetch one backup, gated by its secret.

    All checks, including opening the read on the store, happen before
    this returns, so the caller can still answer with an error status.
    The returned stream must be drained or closed to release the store
    connection.

    Raises:
        RelayHTTPError: If the request is invalid, the id is unknown or
            the secret does not match
        StorageError: If a store call fails (tagged with its stage)
    """
    _validate_restore(request)
    backup_id = request.backup_id

    await _require_bucket(store)

    with _stage(STAGE_OBJECT_EXISTS):
        exists = await store.object_exists(backup_id)
    if not exists:
        raise RelayHTTPError(404, f"file {backup_id} doesn't exist")

    with _stage(STAGE_METADATA_READ):
        metadata = await store.get_metadata(backup_id)

    stored_secret = metadata.custom.get(SECRET_METADATA_KEY)
    if stored_secret is None or not hmac.compare_digest(
        stored_secret.encode("utf-8"), request.secret.encode("utf-8")
    ):
        raise RelayHTTPError(403, "not allowed")

    with _stage(STAGE_STREAM_READ):
        stream = await store.open_read_stream(backup_id)

    logger.info("restore_started", backup_id=backup_id)

    return RestoreStream(stream, backup_id)


class RestoreStream:
    """
    Chunks of a restored backup.

    Store failures while reading are raised as StorageError tagged with the
    stream read stage. The store stream is closed when reading finishes,
    fails, or aclose() is called, whichever comes first.
    """

    def __init__(self, stream: ReadStream, backup_id: str):
        self._stream = stream
        self.backup_id = backup_id
        self.size = 0

    def __aiter__(self) -> "RestoreStream":
        return self

    async def __anext__(self) -> bytes:
        try:
            with _stage(STAGE_STREAM_READ):
                chunk = await self._stream.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            logger.info("restore_completed", backup_id=self.backup_id, size=self.size)
            raise
        except StorageError:
            await self.aclose()
            raise

        self.size += len(chunk)
        return chunk

    async def aclose(self) -> None:
        await self._stream.aclose()
