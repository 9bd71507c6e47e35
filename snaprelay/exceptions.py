# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Relay Exceptions - Custom exceptions for the snaprelay package.
"""


class SnapRelayError(Exception):
    """Base exception for all snaprelay errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(SnapRelayError):
    """Raised when configuration is invalid."""

    pass


class RelayHTTPError(SnapRelayError):
    """
    Raised by the handlers when a request is turned away.

    Covers malformed requests, policy rejections (age gate, secret
    mismatch, unknown id) and a missing bucket. The HTTP layer writes
    ``message`` as the response body with ``status_code``.
    """

    def __init__(self, status_code: int, message: str, details: dict | None = None):
        self.status_code = status_code
        super().__init__(message, details)


class StorageError(SnapRelayError):
    """
    Raised when an object store call fails.

    ``stage`` numbers the backend call that failed so that log lines can be
    matched to the code path:

        1 bucket check, 2 object existence, 3 metadata read,
        4 stream read, 5 object write
    """

    def __init__(self, message: str, details: dict | None = None, stage: int | None = None):
        self.stage = stage
        super().__init__(message, details)

    def at_stage(self, stage: int) -> "StorageError":
        """Return a copy of this error tagged with ``stage``."""
        return StorageError(self.message, self.details, stage=stage)

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        return f"{self.message} ({self.stage})"


class BootstrapError(SnapRelayError):
    """Raised by the client when the relay answers with an unexpected status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message, {"status": status_code})

    def __str__(self) -> str:
        return f"backup error, status: {self.status_code}, message: {self.message}"
