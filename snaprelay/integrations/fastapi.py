# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Relay FastAPI Integration - HTTP surface for the relay handlers.

This module provides:
- The /backup and /restore endpoints
- Lifespan management for the S3 client
- An application factory for running the relay on its own
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from snaprelay.config import RelayConfig
from snaprelay.exceptions import RelayHTTPError, StorageError
from snaprelay.handlers import (
    BINARY_CONTENT_TYPE,
    ID_HEADER,
    SECRET_HEADER,
    BackupRequest,
    RestoreRequest,
    RestoreStream,
    handle_backup,
    handle_restore,
)
from snaprelay.store import ObjectStore, open_s3_store

logger = structlog.get_logger()

# Every method reaches the handlers, which answer 405 themselves
_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _error_response(event: str, error: Exception, backup_id: str | None) -> Response:
    """Log a failed request and turn it into a plain text response."""
    if isinstance(error, RelayHTTPError):
        status_code = error.status_code
        message = error.message
    else:
        status_code = 500
        message = str(error)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        event,
        status=status_code,
        error=message,
        stage=getattr(error, "stage", None),
        backup_id=backup_id,
    )
    return PlainTextResponse(message, status_code=status_code)


class RestoreResponse(StreamingResponse):
    """
    Streams a restored backup and always releases the store stream.

    Once headers are sent a read failure can only be logged; the exception
    then escapes so the server drops the connection. The stream is closed
    whether the body was fully sent, failed, or the client went away.
    """

    def __init__(self, stream: RestoreStream):
        super().__init__(stream, media_type=BINARY_CONTENT_TYPE)
        self.stream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except StorageError as e:
            logger.error(
                "restore_stream_failed",
                backup_id=self.stream.backup_id,
                error=str(e),
                stage=e.stage,
            )
            raise
        finally:
            await self.stream.aclose()


def register_relay_routes(
    app: FastAPI,
    config: RelayConfig,
    store: ObjectStore,
    prefix: str = "",
) -> None:
    """
    Register the backup and restore endpoints on a FastAPI app.

    Args:
        app: FastAPI application
        config: Relay configuration
        store: Object store holding the backups
        prefix: URL prefix for both endpoints (default: none)
    """

    @app.api_route(f"{prefix}/backup", methods=_ALL_METHODS)
    async def backup(request: Request) -> Response:
        """
        Store the request body as the backup for the given id.

        Requires content-type application/octet-stream and the id and
        secret headers. Answers 429 when the existing backup is too recent.
        """
        backup_id = request.headers.get(ID_HEADER)
        body = await request.body() if request.method == "POST" else b""

        backup_request = BackupRequest(
            method=request.method,
            content_type=request.headers.get("content-type"),
            backup_id=backup_id,
            secret=request.headers.get(SECRET_HEADER),
            body=body,
        )

        try:
            ack = await handle_backup(config, store, backup_request)
        except (RelayHTTPError, StorageError) as e:
            return _error_response("backup_failed", e, backup_id)

        return PlainTextResponse(ack)

    @app.api_route(f"{prefix}/restore", methods=_ALL_METHODS)
    async def restore(request: Request) -> Response:
        """
        Stream back the backup for the given id.

        Requires accept application/octet-stream and the id and secret
        headers; the secret must match the one stored with the backup.
        """
        backup_id = request.headers.get(ID_HEADER)

        restore_request = RestoreRequest(
            method=request.method,
            accept=request.headers.get("accept"),
            backup_id=backup_id,
            secret=request.headers.get(SECRET_HEADER),
        )

        try:
            stream = await handle_restore(config, store, restore_request)
        except (RelayHTTPError, StorageError) as e:
            return _error_response("restore_failed", e, backup_id)

        return RestoreResponse(stream)


@asynccontextmanager
async def relay_lifespan(app: FastAPI, config: RelayConfig, prefix: str = ""):
    """
    Lifespan context manager for a FastAPI app serving the relay.

    Opens the S3 client, registers the routes, and closes the client on
    shutdown:

        app = FastAPI(lifespan=lambda app: relay_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Relay configuration
        prefix: URL prefix for the endpoints
    """
    logger.info(
        "relay_lifespan_starting",
        bucket=config.bucket,
        min_backup_age_seconds=config.min_backup_age.total_seconds(),
    )

    async with open_s3_store(config) as store:
        app.state.relay_config = config
        app.state.relay_store = store

        register_relay_routes(app, config, store, prefix)

        logger.info("relay_lifespan_started")
        try:
            yield
        finally:
            logger.info("relay_lifespan_stopping")

    logger.info("relay_lifespan_stopped")


def create_app(config: RelayConfig, prefix: str = "") -> FastAPI:
    """
    Create a FastAPI app that serves the relay against S3.

    Args:
        config: Relay configuration
        prefix: URL prefix for the endpoints

    Returns:
        FastAPI application
    """
    return FastAPI(
        title="Snapshot Relay",
        description="Gated backup/restore relay for opaque snapshots",
        lifespan=lambda app: relay_lifespan(app, config, prefix),
    )


def get_relay_store(app: FastAPI) -> ObjectStore:
    """
    Get the object store from a FastAPI app.

    Raises:
        RuntimeError: If the relay lifespan has not started
    """
    store = getattr(app.state, "relay_store", None)
    if store is None:
        raise RuntimeError("Relay not initialized. Start the app's lifespan first.")
    return store
