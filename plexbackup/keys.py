# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object key naming for uploaded backups.

Keys are ``<prefix><RFC3339 UTC timestamp>.<extension>``, for example
``plex/2019-01-06T22:38:21Z.tar.zst``. The fixed-width timestamp makes keys
under one prefix sort chronologically.
"""

from datetime import datetime, UTC

from plexbackup.config import ARCHIVE_EXTENSIONS, CompressionFormat

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(when: datetime) -> str:
    """Render ``when`` as a second-resolution RFC3339 timestamp in UTC."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return when.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def generate_backup_key(
    prefix: str,
    compression: CompressionFormat,
    when: datetime | None = None,
) -> str:
    """
    Build the object key for a backup taken at ``when`` (default: now).

    No separator is inserted after the prefix.
    """
    if when is None:
        when = datetime.now(UTC)
    return f"{prefix}{format_timestamp(when)}.{ARCHIVE_EXTENSIONS[compression]}"
