# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Relay Configuration - Immutable configuration for the backup/restore relay.

The configuration is built once at process start and handed to both
handlers; it is frozen so nothing can change it while requests are served.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import List
import re

DEFAULT_BUCKET = "transicator-bootstrap-data"
DEFAULT_MIN_BACKUP_AGE = timedelta(hours=1)
DEFAULT_REGION = "us-east-1"
DEFAULT_READ_CHUNK_SIZE = 64 * 1024


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


@dataclass(frozen=True)
class RelayConfig:
    """
    Immutable configuration for the backup/restore relay.

    Every field has a default, so a relay started without any
    configuration source runs against the default bucket with a one hour
    backup interval.
    """

    # Bucket holding one object per backup id
    bucket: str = DEFAULT_BUCKET

    # A backup younger than this blocks a new one for the same id
    min_backup_age: timedelta = DEFAULT_MIN_BACKUP_AGE

    # AWS region (default: us-east-1)
    region: str = DEFAULT_REGION

    # Custom S3 endpoint (MinIO, LocalStack); None uses AWS
    endpoint_url: str | None = None

    # Chunk size used when streaming a backup back to the caller
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            from snaprelay.errors import explain_invalid_bucket

            errors.append(explain_invalid_bucket(self.bucket))

        if self.min_backup_age < timedelta(0):
            errors.append(f"min_backup_age must be >= 0, got {self.min_backup_age}")

        if self.read_chunk_size < 1:
            errors.append(f"read_chunk_size must be >= 1, got {self.read_chunk_size}")

        if errors:
            from snaprelay.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "RelayConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return RelayConfig(**current)
