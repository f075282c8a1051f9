# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
plexbackup - Streaming Plex Media Server backups to S3.

Stops the Plex service, streams its data directory through tar and a
compressor straight into S3 without touching local disk, starts the
service again and prunes the previous backup. Package name: plexbackup.
"""

from plexbackup.version import __version__

# Configuration creation (user-facing API)
from plexbackup.builder import create_config
from plexbackup.config import BackupConfig, CompressionFormat

# Core functions
from plexbackup.core import BackupResult, BackupStage, run_backup

# Environment-based configuration
from plexbackup.env import create_config_from_env

from plexbackup.exceptions import (
    BackupAggregateError,
    ConfigurationError,
    PauseError,
    PipelineError,
    PlexBackupError,
    ResumeError,
    RetentionLookupError,
    ServiceControlError,
    UploadError,
)

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "BackupConfig",
    "CompressionFormat",
    # Core orchestration
    "run_backup",
    "BackupResult",
    "BackupStage",
    # Errors
    "PlexBackupError",
    "ConfigurationError",
    "RetentionLookupError",
    "ServiceControlError",
    "PauseError",
    "ResumeError",
    "PipelineError",
    "UploadError",
    "BackupAggregateError",
]
