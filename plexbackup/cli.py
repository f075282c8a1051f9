# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command-line entry point: ``plexbackup --bucket my-bucket``.

Flags override the PLEXBACKUP_* environment variables read by
create_config_from_env(). Exits 0 after a successful backup and 1 on any
error; argparse itself exits 2 on unknown flags.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from plexbackup.config import CompressionFormat
from plexbackup.core import run_backup
from plexbackup.env import create_config_from_env
from plexbackup.exceptions import ConfigurationError, PlexBackupError
from plexbackup.logs import configure_logging
from plexbackup.version import get_build_info

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plexbackup",
        description="Back up a Plex Media Server data directory to S3.",
    )
    parser.add_argument("--version", action="store_true", help="print version information and exit")
    parser.add_argument("--debug", action="store_true", help="human-readable debug logging")
    parser.add_argument("--bucket", help="S3 bucket to upload to (env: PLEXBACKUP_BUCKET)")
    parser.add_argument("--region", help="AWS region of the bucket (default: us-east-1)")
    parser.add_argument("--prefix", help="key prefix for backups (default: plex/)")
    parser.add_argument(
        "--no-pause",
        action="store_true",
        default=None,
        help="do not stop the service while backing up (the backup may be inconsistent)",
    )
    parser.add_argument("--service", help="systemd unit to stop (default: plexmediaserver.service)")
    parser.add_argument("--directory", help="'Plex Media Server' directory to back up")
    parser.add_argument(
        "--compression",
        choices=[fmt.value for fmt in CompressionFormat],
        help="archive compression (default: zstd)",
    )
    parser.add_argument(
        "--compression-level",
        type=int,
        help="compression level; zstd 1-22, gzip 1-9",
    )
    parser.add_argument("--endpoint-url", help="custom S3 endpoint, e.g. for MinIO")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(get_build_info().summary())
        return 0

    configure_logging(debug=args.debug)

    try:
        config = create_config_from_env(
            bucket=args.bucket,
            region=args.region,
            prefix=args.prefix,
            no_pause=args.no_pause,
            service=args.service,
            directory=args.directory,
            compression=args.compression,
            compression_level=args.compression_level,
            endpoint_url=args.endpoint_url,
        )
    except ConfigurationError as e:
        print(f"plexbackup: {e}", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(run_backup(config))
    except PlexBackupError as e:
        logger.error("backup_run_failed", error_type=type(e).__name__, error=str(e))
        print(f"plexbackup: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.warning("backup_interrupted")
        return 1

    logger.info("backup_run_succeeded", key=result.key, run_id=result.run_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
