# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Streaming pipeline - tar, compression and upload as one concurrent flow.

    tar stdout -> compressor -> ByteChannel -> CountingReader -> S3 upload

Nothing touches local disk. The producer (tar + compressor) and the
consumer (upload) run in a single asyncio.TaskGroup: if either fails the
other is cancelled, which kills any running process and aborts any
multipart upload in progress.
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from plexbackup.config import BackupConfig
from plexbackup.exceptions import PipelineError, first_error
from plexbackup.pipeline.archiver import read_tail, spawn_archiver
from plexbackup.pipeline.channel import ByteChannel, CountingReader
from plexbackup.pipeline.compressor import CompressorSpec, compress_stream
from plexbackup.storage import upload_stream

logger = structlog.get_logger()


@dataclass(frozen=True)
class PipelineResult:
    """Byte counts and duration of one pipeline run, for reporting only."""

    uncompressed_bytes: int
    compressed_bytes: int
    duration_seconds: float

    @property
    def compression_ratio(self) -> float:
        if not self.compressed_bytes:
            return 0.0
        return self.uncompressed_bytes / self.compressed_bytes


async def produce_archive(
    directory: Path,
    spec: CompressorSpec,
    sink: ByteChannel,
    chunk_size: int,
) -> int:
    """
    Archive ``directory`` and write the compressed stream into ``sink``.

    The sink is closed only after both the compressor and tar finished
    cleanly; on any failure it is failed instead so the reader never
    mistakes a truncated stream for a complete one.

    Returns:
        Size of the uncompressed tar stream in bytes

    Raises:
        PipelineError: If tar or the compressor fails
    """
    try:
        process = await spawn_archiver(directory)
    except PipelineError as e:
        sink.fail(e)
        raise

    stderr_reader = asyncio.ensure_future(read_tail(process.stderr))
    try:
        uncompressed = await compress_stream(spec, process.stdout, sink, chunk_size)

        returncode = await process.wait()
        stderr = await stderr_reader
        if returncode != 0:
            raise PipelineError(
                f"tar completed improperly (exit status {returncode})",
                details={"stderr": stderr.decode("utf-8", "replace").strip()},
            )

        await sink.close()
        return uncompressed
    except Exception as e:
        sink.fail(e)
        raise
    finally:
        if not stderr_reader.done():
            stderr_reader.cancel()
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()


async def stream_backup(
    s3_client: Any,
    config: BackupConfig,
    key: str,
    spec: CompressorSpec,
) -> PipelineResult:
    """
    Archive, compress and upload ``config.directory`` to ``key``.

    The upload starts consuming as soon as the first compressed bytes are
    produced; memory use is bounded by the channel and one upload part.

    Raises:
        PipelineError: If tar or the compressor fails
        UploadError: If S3 rejects the upload
    """
    channel = ByteChannel(config.queue_depth)
    reader = CountingReader(channel)
    start = time.monotonic()

    logger.info(
        "pipeline_started",
        key=key,
        directory=str(config.directory),
        compressor=spec.name,
        level=spec.level,
        threads=spec.threads,
    )

    try:
        async with asyncio.TaskGroup() as tg:
            producer = tg.create_task(
                produce_archive(config.directory, spec, channel, config.chunk_size)
            )
            tg.create_task(
                upload_stream(s3_client, config.bucket, key, reader, part_size=config.part_size)
            )
    except ExceptionGroup as group:
        error = first_error(group)
        logger.error("pipeline_failed", key=key, error=str(error))
        raise error from group

    return PipelineResult(
        uncompressed_bytes=producer.result(),
        compressed_bytes=reader.read_bytes,
        duration_seconds=time.monotonic() - start,
    )
