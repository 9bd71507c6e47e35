# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for the snapshot relay.

These helpers centralize wording for configuration errors so that the
config file loader and the environment loader report problems the same way.
"""


def explain_invalid_bucket(value: str | None) -> str:
    """
    Explain that the configured bucket name is not a valid S3 bucket name.
    """

    return (
        f"Invalid bucket name: {value!r}. "
        "Bucket names are 3-63 lowercase letters, digits, dots or hyphens "
        "and must start and end with a letter or digit."
    )


def explain_invalid_min_backup_age_env(value: str | None) -> str:
    """
    Explain that SNAPRELAY_MIN_BACKUP_AGE is invalid.
    """

    return (
        f"Invalid SNAPRELAY_MIN_BACKUP_AGE value: {value!r}. "
        "It must be a non-negative number of seconds."
    )


def explain_invalid_config_file(path: str, reason: str) -> str:
    """
    Explain that the JSON config file exists but cannot be used.
    """

    return (
        f"Config file {path} could not be loaded: {reason}. "
        "Expected a JSON object with optional 'bucketName' (string) and "
        "'minBackupAge' (milliseconds) keys."
    )
