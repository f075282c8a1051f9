# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 access - client construction and streaming uploads.

upload_stream() accepts an incrementally produced stream of unknown length.
It buffers at most one part: streams shorter than a part are sent with a
single put_object, longer ones with a multipart upload that is aborted on
any failure or cancellation so no partial object is ever completed.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Protocol

import structlog
from aiobotocore.config import AioConfig
from aiobotocore.session import get_session

from plexbackup.config import DEFAULT_PART_SIZE, BackupConfig
from plexbackup.exceptions import PlexBackupError, UploadError

logger = structlog.get_logger()

# S3 rejects multipart uploads with more parts than this
MAX_PARTS = 10_000


class AsyncReader(Protocol):
    """Anything with an awaitable ``read(size)`` returning b"" at end of stream."""

    async def read(self, size: int = -1) -> bytes: ...


@asynccontextmanager
async def create_s3_client(config: BackupConfig) -> AsyncIterator[Any]:
    """
    Open an aiobotocore S3 client for ``config``.

    Credentials come from the usual AWS sources (environment, shared
    config, instance profile). Dual-stack endpoints are used unless a
    custom endpoint is configured.
    """
    session = get_session()
    client_config = AioConfig(
        s3={"use_dualstack_endpoint": config.endpoint_url is None},
    )
    async with session.create_client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=client_config,
    ) as s3_client:
        yield s3_client


async def _read_part(reader: AsyncReader, part_size: int) -> bytes:
    """Read until ``part_size`` bytes are collected or the stream ends."""
    buffer = bytearray()
    while len(buffer) < part_size:
        chunk = await reader.read(part_size - len(buffer))
        if not chunk:
            break
        buffer.extend(chunk)
    return bytes(buffer)


async def upload_stream(
    s3_client: Any,
    bucket: str,
    key: str,
    reader: AsyncReader,
    part_size: int = DEFAULT_PART_SIZE,
) -> int:
    """
    Upload everything ``reader`` yields to ``s3://bucket/key``.

    Args:
        s3_client: aiobotocore S3 client
        bucket: Destination bucket
        key: Destination key
        reader: Stream to upload; must raise rather than end early on failure
        part_size: Multipart part size in bytes

    Returns:
        Number of bytes uploaded

    Raises:
        UploadError: If an S3 call fails
        PipelineError: If the stream being uploaded fails
    """
    first = await _read_part(reader, part_size)

    if len(first) < part_size:
        try:
            await s3_client.put_object(Bucket=bucket, Key=key, Body=first)
        except PlexBackupError:
            raise
        except Exception as e:
            raise UploadError(
                f"failed to upload new backup: {e}",
                details={"bucket": bucket, "key": key},
            ) from e
        logger.debug("object_uploaded", key=key, size=len(first), parts=1)
        return len(first)

    try:
        response = await s3_client.create_multipart_upload(Bucket=bucket, Key=key)
    except Exception as e:
        raise UploadError(
            f"failed to start multipart upload: {e}",
            details={"bucket": bucket, "key": key},
        ) from e
    upload_id = response["UploadId"]

    parts: List[Dict[str, Any]] = []
    uploaded = 0
    try:
        part = first
        while part:
            part_number = len(parts) + 1
            if part_number > MAX_PARTS:
                raise UploadError(
                    f"backup exceeds {MAX_PARTS} parts of {part_size} bytes; increase the part size",
                    details={"bucket": bucket, "key": key, "uploaded_bytes": uploaded},
                )
            result = await s3_client.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=part,
            )
            parts.append({"PartNumber": part_number, "ETag": result["ETag"]})
            uploaded += len(part)
            logger.debug("part_uploaded", key=key, part_number=part_number, size=len(part))
            part = await _read_part(reader, part_size)

        await s3_client.complete_multipart_upload(
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )
    except (Exception, asyncio.CancelledError) as e:
        await _abort_multipart_upload(s3_client, bucket, key, upload_id)
        if isinstance(e, (PlexBackupError, asyncio.CancelledError)):
            raise
        raise UploadError(
            f"failed to upload new backup: {e}",
            details={"bucket": bucket, "key": key, "uploaded_bytes": uploaded},
        ) from e

    logger.debug("object_uploaded", key=key, size=uploaded, parts=len(parts))
    return uploaded


async def _abort_multipart_upload(s3_client: Any, bucket: str, key: str, upload_id: str) -> None:
    """Discard the uploaded parts; failures are logged since the upload already failed."""
    try:
        await asyncio.shield(
            s3_client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
        )
    except Exception as e:
        logger.warning(
            "multipart_abort_failed",
            key=key,
            upload_id=upload_id,
            error=str(e),
        )
    else:
        logger.info("multipart_upload_aborted", key=key, upload_id=upload_id)
