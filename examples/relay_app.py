# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example standalone relay application.

Run with:
    uvicorn examples.relay_app:app

Environment variables:
    AWS_ACCESS_KEY_ID: AWS access key
    AWS_SECRET_ACCESS_KEY: AWS secret key
    SNAPRELAY_CONFIG: Path to config.json (default: ./config.json)
    SNAPRELAY_BUCKET: Bucket holding the backups
    SNAPRELAY_MIN_BACKUP_AGE: Minimum seconds between backups of one id
    SNAPRELAY_S3_ENDPOINT_URL: Custom endpoint for MinIO or LocalStack
"""

import structlog

from snaprelay.env import create_config_from_env
from snaprelay.integrations.fastapi import create_app

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

config = create_config_from_env()

app = create_app(config)
