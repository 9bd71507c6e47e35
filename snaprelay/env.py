# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Config file and environment based configuration helpers.

Configuration is resolved once at start-up, in this order:

- RelayConfig defaults
- values from a JSON config file (``bucketName``, ``minBackupAge`` in ms)
- environment variable overrides

A missing config file or unset variable is not an error; the previous
layer's value is kept.
"""

from __future__ import annotations

import json
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict

import structlog

from snaprelay.config import RelayConfig
from snaprelay.errors import (
    explain_invalid_config_file,
    explain_invalid_min_backup_age_env,
)
from snaprelay.exceptions import ConfigurationError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path("./config.json")


def _parse_min_backup_age(value: str | None) -> timedelta | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_min_backup_age_env(value)) from exc
    if seconds < 0:
        raise ConfigurationError(explain_invalid_min_backup_age_env(value))
    return timedelta(seconds=seconds)


def _read_config_file(path: Path) -> Dict[str, Any] | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ConfigurationError(explain_invalid_config_file(str(path), str(exc))) from exc

    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_config_file(str(path), str(exc))) from exc

    if not isinstance(data, dict):
        raise ConfigurationError(
            explain_invalid_config_file(str(path), "top level is not an object")
        )
    return data


def load_config_file(path: Path, base: RelayConfig | None = None) -> RelayConfig:
    """
    Apply a JSON config file on top of ``base`` (defaults if omitted).

    Recognised keys:
        - bucketName: bucket holding the backups
        - minBackupAge: minimum backup interval in milliseconds

    A missing file leaves ``base`` untouched.
    """
    config = base or RelayConfig()
    data = _read_config_file(path)

    if data is None:
        logger.info("config_file_not_found", path=str(path), using="defaults")
        return config

    logger.info("config_file_found", path=str(path))

    updates: Dict[str, Any] = {}

    bucket = data.get("bucketName")
    if bucket is not None:
        if not isinstance(bucket, str):
            raise ConfigurationError(
                explain_invalid_config_file(str(path), "bucketName must be a string")
            )
        updates["bucket"] = bucket

    min_age_ms = data.get("minBackupAge")
    if min_age_ms is not None:
        if isinstance(min_age_ms, bool) or not isinstance(min_age_ms, (int, float)):
            raise ConfigurationError(
                explain_invalid_config_file(str(path), "minBackupAge must be a number")
            )
        if min_age_ms < 0:
            raise ConfigurationError(
                explain_invalid_config_file(str(path), "minBackupAge must be >= 0")
            )
        updates["min_backup_age"] = timedelta(milliseconds=min_age_ms)

    return config.with_updates(**updates) if updates else config


def create_config_from_env(config_path: Path | None = None) -> RelayConfig:
    """
    Create a RelayConfig from the config file plus environment variables.

    Optional environment variables:
        - SNAPRELAY_CONFIG: Path to the JSON config file (default: ./config.json)
        - SNAPRELAY_BUCKET: Bucket name, overrides the file's bucketName
        - SNAPRELAY_MIN_BACKUP_AGE: Minimum backup interval in seconds
        - AWS_REGION: AWS region (default: us-east-1)
        - SNAPRELAY_S3_ENDPOINT_URL: Custom S3 endpoint (MinIO, LocalStack)
    """

    if config_path is None:
        path_env = os.getenv("SNAPRELAY_CONFIG")
        config_path = Path(path_env) if path_env else DEFAULT_CONFIG_PATH

    config = load_config_file(config_path)

    updates: Dict[str, Any] = {}

    bucket = os.getenv("SNAPRELAY_BUCKET")
    if bucket:
        updates["bucket"] = bucket

    min_backup_age = _parse_min_backup_age(os.getenv("SNAPRELAY_MIN_BACKUP_AGE"))
    if min_backup_age is not None:
        updates["min_backup_age"] = min_backup_age

    region = os.getenv("AWS_REGION")
    if region:
        updates["region"] = region

    endpoint_url = os.getenv("SNAPRELAY_S3_ENDPOINT_URL")
    if endpoint_url:
        updates["endpoint_url"] = endpoint_url

    return config.with_updates(**updates) if updates else config
