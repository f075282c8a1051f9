# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

create_config_from_env() reads a small set of well-known environment
variables and passes them through to create_config(). Keyword overrides,
typically parsed command-line flags, take precedence over the environment.
"""

from __future__ import annotations

import os
from typing import Any

from plexbackup.builder import create_config
from plexbackup.config import BackupConfig, CompressionFormat
from plexbackup.errors import (
    explain_invalid_compression_env,
    explain_invalid_flag_env,
    explain_invalid_integer_env,
    explain_missing_bucket_env,
)
from plexbackup.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_flag(name: str, value: str | None) -> bool:
    if value is None:
        return False
    lower = value.strip().lower()
    if lower in _TRUE:
        return True
    if lower in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_flag_env(name, value))


def _parse_positive_int(name: str, value: str | None) -> int | None:
    if not value:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_integer_env(name, value)) from exc
    if number < 1:
        raise ConfigurationError(explain_invalid_integer_env(name, value))
    return number


def _parse_compression(value: str | None) -> CompressionFormat | None:
    if not value:
        return None
    try:
        return CompressionFormat(value.lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_compression_env(value)) from exc


def create_config_from_env(**overrides: Any) -> BackupConfig:
    """
    Create a BackupConfig from environment variables plus explicit overrides.

    Overrides whose value is None are ignored, so an argparse namespace
    with unset flags can be passed straight through.

    Required (environment or override):
        - PLEXBACKUP_BUCKET: Name of the S3 bucket to upload to

    Optional environment variables:
        - AWS_REGION: AWS region (default: us-east-1)
        - PLEXBACKUP_PREFIX: Key prefix (default: plex/)
        - PLEXBACKUP_DIRECTORY: 'Plex Media Server' directory to back up
        - PLEXBACKUP_SERVICE: systemd unit to stop (default: plexmediaserver.service)
        - PLEXBACKUP_NO_PAUSE: '1'/'true' to back up without stopping the service
        - PLEXBACKUP_COMPRESSION: 'zstd' | 'gzip' (default: zstd)
        - PLEXBACKUP_COMPRESSION_LEVEL: Level for the chosen format
        - PLEXBACKUP_PART_SIZE: Multipart part size in bytes
        - PLEXBACKUP_ENDPOINT_URL: Custom S3 endpoint
    """

    settings: dict[str, Any] = {
        "bucket": os.getenv("PLEXBACKUP_BUCKET"),
        "region": os.getenv("AWS_REGION"),
        "prefix": os.getenv("PLEXBACKUP_PREFIX"),
        "directory": os.getenv("PLEXBACKUP_DIRECTORY"),
        "service": os.getenv("PLEXBACKUP_SERVICE"),
        "no_pause": _parse_flag("PLEXBACKUP_NO_PAUSE", os.getenv("PLEXBACKUP_NO_PAUSE")),
        "compression": _parse_compression(os.getenv("PLEXBACKUP_COMPRESSION")),
        "compression_level": _parse_positive_int(
            "PLEXBACKUP_COMPRESSION_LEVEL", os.getenv("PLEXBACKUP_COMPRESSION_LEVEL")
        ),
        "part_size": _parse_positive_int("PLEXBACKUP_PART_SIZE", os.getenv("PLEXBACKUP_PART_SIZE")),
        "endpoint_url": os.getenv("PLEXBACKUP_ENDPOINT_URL") or None,
    }
    settings.update({key: value for key, value in overrides.items() if value is not None})

    bucket = settings.pop("bucket")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    # Unset optional values fall back to create_config()'s defaults
    return create_config(
        bucket=bucket,
        **{key: value for key, value in settings.items() if value is not None},
    )
