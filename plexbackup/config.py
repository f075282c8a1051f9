# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
plexbackup Configuration - Immutable configuration data structures.

A BackupConfig describes one backup run. It is frozen after creation so the
orchestrator and every pipeline stage see the same values for the whole run.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List
import re

from plexbackup.errors import explain_missing_service


class CompressionFormat(str, Enum):
    """Compression applied to the tar stream."""

    ZSTD = "zstd"  # In-process zstandard
    GZIP = "gzip"  # External pigz or gzip process


# Suffix appended to the timestamp in each object key
ARCHIVE_EXTENSIONS: Dict[CompressionFormat, str] = {
    CompressionFormat.ZSTD: "tar.zst",
    CompressionFormat.GZIP: "tar.gz",
}

DEFAULT_COMPRESSION_LEVELS: Dict[CompressionFormat, int] = {
    CompressionFormat.ZSTD: 3,
    CompressionFormat.GZIP: 6,
}

COMPRESSION_LEVEL_RANGES: Dict[CompressionFormat, range] = {
    CompressionFormat.ZSTD: range(1, 23),
    CompressionFormat.GZIP: range(1, 10),
}

DEFAULT_DIRECTORY = Path(
    "/var/lib/plexmediaserver/Library/Application Support/Plex Media Server"
)
DEFAULT_SERVICE = "plexmediaserver.service"
DEFAULT_PREFIX = "plex/"

MIB = 1024 * 1024
MIN_PART_SIZE = 5 * MIB  # S3 minimum for every part but the last
MAX_PART_SIZE = 5 * 1024 * MIB
DEFAULT_PART_SIZE = 8 * MIB
DEFAULT_CHUNK_SIZE = 1 * MIB


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
class BackupConfig:
    """
    Immutable configuration for a single backup run.

    The source directory is not checked here: it must exist when the
    pipeline starts, which may be long after the config was built.
    """

    # Required: S3 bucket to upload the backup to
    bucket: str

    # Prepended to "<RFC3339 date>.<ext>" to form the key. No slash is added,
    # and old backups are only discovered under this same prefix.
    prefix: str = DEFAULT_PREFIX

    # The 'Plex Media Server' directory; it becomes the archive's root entry
    directory: Path = field(default_factory=lambda: DEFAULT_DIRECTORY)

    # systemd unit stopped for the duration of the backup
    service: str = DEFAULT_SERVICE

    # Back up without stopping the service (the archive may be inconsistent)
    no_pause: bool = False

    # AWS region of the bucket
    region: str = "us-east-1"

    # Custom S3 endpoint (MinIO, moto, ...). Disables dual-stack endpoints.
    endpoint_url: str | None = None

    compression: CompressionFormat = CompressionFormat.ZSTD

    # None selects the format's default level
    compression_level: int | None = None

    # Multipart part size; at most one part is held in memory
    part_size: int = DEFAULT_PART_SIZE

    # Read size for the tar and compressor streams
    chunk_size: int = DEFAULT_CHUNK_SIZE

    # Capacity of the in-memory channel between compressor and uploader, in chunks
    queue_depth: int = 4

    # Prefix systemctl invocations with sudo
    use_sudo: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        if not isinstance(self.directory, Path):
            object.__setattr__(self, "directory", Path(self.directory))
        if not isinstance(self.compression, CompressionFormat):
            object.__setattr__(self, "compression", CompressionFormat(self.compression))

        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        if self.prefix.startswith("/"):
            errors.append(f"prefix must not start with '/', got {self.prefix!r}")

        if not self.directory.name or self.directory.parent == self.directory:
            errors.append(f"directory must name a folder below the root, got {str(self.directory)!r}")

        if not self.no_pause and not self.service:
            errors.append(explain_missing_service())

        if self.compression_level is not None:
            allowed = COMPRESSION_LEVEL_RANGES[self.compression]
            if self.compression_level not in allowed:
                errors.append(
                    f"compression_level for {self.compression.value} must be in "
                    f"{allowed.start}..{allowed.stop - 1}, got {self.compression_level}"
                )

        if not MIN_PART_SIZE <= self.part_size <= MAX_PART_SIZE:
            errors.append(
                f"part_size must be between {MIN_PART_SIZE} and {MAX_PART_SIZE} bytes, got {self.part_size}"
            )

        if self.chunk_size < 1:
            errors.append(f"chunk_size must be >= 1, got {self.chunk_size}")

        if self.queue_depth < 1:
            errors.append(f"queue_depth must be >= 1, got {self.queue_depth}")

        # Raise all errors at once
        if errors:
            from plexbackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def archive_extension(self) -> str:
        """Extension of the uploaded object, e.g. ``tar.zst``."""
        return ARCHIVE_EXTENSIONS[self.compression]

    @property
    def effective_compression_level(self) -> int:
        if self.compression_level is None:
            return DEFAULT_COMPRESSION_LEVELS[self.compression]
        return self.compression_level

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
