# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retention - finding and pruning the previous backup.

One backup is kept per prefix: the oldest object is looked up before the
new backup starts and deleted only once the new one is safely uploaded.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from plexbackup.exceptions import RetentionLookupError

logger = structlog.get_logger()


@dataclass(frozen=True)
class RemoteObjectRef:
    """An existing object under the backup prefix."""

    key: str
    last_modified: datetime


@dataclass(frozen=True)
class PruneOutcome:
    """
    Result of the best-effort delete of the previous backup.

    Pruning never fails a run; a failed delete is reported here and logged.
    """

    key: str
    deleted: bool
    error: str | None = None


async def find_oldest(s3_client: Any, bucket: str, prefix: str) -> RemoteObjectRef | None:
    """
    Return the object with the oldest LastModified under ``prefix``.

    Only the first listing page is read, so this assumes the prefix holds
    at most 1000 objects; anything past the first page is not considered.

    Returns:
        The oldest object, or None if there are no objects under the prefix

    Raises:
        RetentionLookupError: If the listing fails
    """
    try:
        response = await s3_client.list_objects_v2(Bucket=bucket, Prefix=prefix)
    except Exception as e:
        raise RetentionLookupError(
            f"failed to retrieve oldest backup: {e}",
            details={"bucket": bucket, "prefix": prefix},
        ) from e

    if response.get("IsTruncated"):
        logger.warning(
            "backup_listing_truncated",
            bucket=bucket,
            prefix=prefix,
            listed=len(response.get("Contents", [])),
        )

    oldest: RemoteObjectRef | None = None
    for obj in response.get("Contents", []):
        if oldest is None or obj["LastModified"] < oldest.last_modified:
            oldest = RemoteObjectRef(key=obj["Key"], last_modified=obj["LastModified"])
    return oldest


async def prune_object(s3_client: Any, bucket: str, ref: RemoteObjectRef) -> PruneOutcome:
    """
    Delete ``ref`` from ``bucket``.

    Failures are not regarded as significant enough to fail the backup:
    they are logged as warnings and returned in the outcome.
    """
    try:
        await s3_client.delete_object(Bucket=bucket, Key=ref.key)
    except Exception as e:
        logger.warning(
            "prune_failed",
            bucket=bucket,
            key=ref.key,
            error=str(e),
        )
        return PruneOutcome(key=ref.key, deleted=False, error=str(e))

    logger.info("old_backup_deleted", key=ref.key, last_modified=ref.last_modified.isoformat())
    return PruneOutcome(key=ref.key, deleted=True)
