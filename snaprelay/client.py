# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Relay Client - Upload and download snapshots through the relay endpoints.

A backup that the relay turns away as too recent is not an error:
send_backup() reports it by returning False. Any other non-200 answer
raises BootstrapError with the status and the relay's message.
"""

import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Dict

import aiofiles
import httpx
import structlog

from snaprelay.exceptions import BootstrapError
from snaprelay.handlers import BINARY_CONTENT_TYPE, ID_HEADER, SECRET_HEADER

logger = structlog.get_logger()

DEFAULT_TIMEOUT = httpx.Timeout(180.0)
UPLOAD_CHUNK_SIZE = 64 * 1024


@asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as owned:
        yield owned


def _headers(backup_id: str, secret: str) -> Dict[str, str]:
    return {ID_HEADER: backup_id, SECRET_HEADER: secret}


async def send_backup(
    uri: str,
    backup_id: str,
    secret: str,
    data: bytes | AsyncIterable[bytes],
    client: httpx.AsyncClient | None = None,
) -> bool:
    """
    Upload a snapshot to the relay's backup endpoint.

    Args:
        uri: Full URL of the backup endpoint
        backup_id: Id to store the snapshot under
        secret: Secret required later to restore it
        data: Snapshot bytes, or an async iterable streaming them
        client: Optional httpx client to reuse

    Returns:
        True if the snapshot was stored, False if the relay declined it
        because the previous backup is too recent

    Raises:
        BootstrapError: If the relay answers with any other status
    """
    headers = _headers(backup_id, secret)
    headers["content-type"] = BINARY_CONTENT_TYPE

    async with _client_scope(client) as http:
        response = await http.post(uri, content=data, headers=headers)

    if response.status_code == 200:
        logger.debug(
            "backup_uploaded",
            backup_id=backup_id,
            size=len(data) if isinstance(data, bytes) else None,
        )
        return True
    if response.status_code == 429:
        logger.debug("backup_not_needed", backup_id=backup_id)
        return False

    raise BootstrapError(response.status_code, response.text)


async def send_backup_file(
    uri: str,
    backup_id: str,
    secret: str,
    path: Path,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Stream the contents of ``path`` to the relay; see send_backup()."""
    return await send_backup(uri, backup_id, secret, _read_chunks(path), client=client)


async def _read_chunks(path: Path) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


async def fetch_backup(
    uri: str,
    backup_id: str,
    secret: str,
    client: httpx.AsyncClient | None = None,
) -> bytes:
    """
    Download a snapshot from the relay's restore endpoint.

    Raises:
        BootstrapError: If the relay answers with anything but 200
    """
    headers = _headers(backup_id, secret)
    headers["accept"] = BINARY_CONTENT_TYPE

    async with _client_scope(client) as http:
        response = await http.get(uri, headers=headers)

    if response.status_code != 200:
        raise BootstrapError(response.status_code, response.text)

    return response.content


async def fetch_backup_to(
    uri: str,
    backup_id: str,
    secret: str,
    dest: Path,
    client: httpx.AsyncClient | None = None,
) -> int:
    """
    Stream a snapshot from the relay into ``dest``.

    The body is written to a temp file next to ``dest`` and renamed once
    complete, so ``dest`` never holds a partial snapshot.

    Returns:
        Number of bytes written

    Raises:
        BootstrapError: If the relay answers with anything but 200
    """
    headers = _headers(backup_id, secret)
    headers["accept"] = BINARY_CONTENT_TYPE
    temp_path = dest.with_name(f"{dest.name}.{uuid.uuid4().hex}.tmp")
    written = 0

    async with _client_scope(client) as http:
        async with http.stream("GET", uri, headers=headers) as response:
            if response.status_code != 200:
                message = (await response.aread()).decode("utf-8", errors="replace")
                raise BootstrapError(response.status_code, message)

            dest.parent.mkdir(parents=True, exist_ok=True)
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        await f.write(chunk)
                        written += len(chunk)
            except BaseException:
                temp_path.unlink(missing_ok=True)
                raise

    temp_path.rename(dest)

    logger.debug("backup_downloaded", backup_id=backup_id, path=str(dest), size=written)

    return written
