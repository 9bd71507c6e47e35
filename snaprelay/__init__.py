# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Relay - Gated backup/restore relay for opaque snapshots on S3.

Stores one snapshot per caller-supplied id, bound to a shared secret that
must be presented to restore it, and refuses new backups for an id until
the previous one is older than a configured minimum age. Package name:
snaprelay.
"""

__version__ = "0.1.0"

# Configuration
from snaprelay.config import RelayConfig
from snaprelay.env import create_config_from_env, load_config_file

# Request handling
from snaprelay.handlers import (
    BackupRequest,
    RestoreRequest,
    handle_backup,
    handle_restore,
)

# Storage
from snaprelay.store import ObjectMetadata, ObjectStore, S3ObjectStore, open_s3_store

# Client
from snaprelay.client import (
    fetch_backup,
    fetch_backup_to,
    send_backup,
    send_backup_file,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "RelayConfig",
    "create_config_from_env",
    "load_config_file",
    # Handlers
    "BackupRequest",
    "RestoreRequest",
    "handle_backup",
    "handle_restore",
    # Storage
    "ObjectMetadata",
    "ObjectStore",
    "S3ObjectStore",
    "open_s3_store",
    # Client
    "send_backup",
    "send_backup_file",
    "fetch_backup",
    "fetch_backup_to",
]
