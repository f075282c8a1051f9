# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example nightly Plex backup script.

This example demonstrates how to drive plexbackup from Python with the
functional builder, for example from a cron job or a systemd timer.

Run with:
    python examples/basic_backup.py

Environment variables:
    AWS_ACCESS_KEY_ID: AWS access key
    AWS_SECRET_ACCESS_KEY: AWS secret key
    BACKUP_BUCKET: Bucket to upload to
    BACKUP_HOST: Host name used as the key prefix
"""

import asyncio
import os
import socket
import sys

from plexbackup.builder import (
    build_config,
    create_empty_config,
    from_directory,
    pause_service,
    with_bucket,
    with_prefix,
    with_region,
    zstd_compression,
)
from plexbackup.exceptions import BackupAggregateError, PlexBackupError
from plexbackup.core import run_backup
from plexbackup.logs import configure_logging


def create_backup_config():
    """
    Create the backup configuration from environment variables.

    One prefix per host keeps exactly one backup per server.
    """
    bucket = os.getenv("BACKUP_BUCKET", "my-plex-backups")
    host = os.getenv("BACKUP_HOST", socket.gethostname())

    # Start with empty config
    config = create_empty_config()

    # Set bucket, region and a per-host prefix
    config = with_bucket(config, bucket)
    config = with_region(config, os.getenv("AWS_REGION", "us-east-1"))
    config = with_prefix(config, f"plex/{host}/")

    # Snap and Docker installs keep the data directory elsewhere
    data_dir = os.getenv("PLEX_DATA_DIR")
    if data_dir:
        config = from_directory(config, data_dir)

    # Stop the server while archiving; the library database is not
    # safe to copy while it is being written
    config = pause_service(config, "plexmediaserver.service")

    # Slightly stronger compression than the default
    config = zstd_compression(config, level=6)

    # Build and validate configuration
    return build_config(config)


async def main() -> int:
    configure_logging(debug=os.getenv("BACKUP_DEBUG", "false").lower() == "true")
    config = create_backup_config()

    try:
        result = await run_backup(config)
    except BackupAggregateError as e:
        for error in e.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    except PlexBackupError as e:
        print(f"Backup failed: {e}", file=sys.stderr)
        return 1

    print(
        f"Uploaded s3://{config.bucket}/{result.key} "
        f"({result.compressed_bytes / 1024 ** 3:.3f} GiB in {result.elapsed_seconds:.1f}s)"
    )
    if result.prune and not result.prune.deleted:
        print(f"Previous backup {result.prune.key} was not deleted: {result.prune.error}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
