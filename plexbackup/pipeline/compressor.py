# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Compression stage - turns the tar stream into the uploaded byte stream.

Two implementations share one interface:
1. zstd: in-process streaming compression with zstandard. Compression calls
   run in the default executor so the event loop keeps serving the upload.
2. gzip: an external pigz (preferred) or gzip process. tar's output is
   pumped into its stdin while its stdout is drained into the channel.

Both return the number of uncompressed bytes they consumed, and neither
closes the output channel: that is the pipeline's job once tar has also
exited cleanly.
"""

import asyncio
import contextlib
import os
import shutil
from dataclasses import dataclass
from typing import Tuple

import structlog
import zstandard as zstd

from plexbackup.config import ARCHIVE_EXTENSIONS, CompressionFormat
from plexbackup.exceptions import PipelineError
from plexbackup.pipeline.archiver import read_tail
from plexbackup.pipeline.channel import ByteChannel
from plexbackup.storage import AsyncReader

logger = structlog.get_logger()


@dataclass(frozen=True)
class CompressorSpec:
    """The compressor chosen for a run."""

    format: CompressionFormat
    level: int
    threads: int  # zstd worker threads; 0 is zstandard's single-threaded mode
    command: Tuple[str, ...] | None = None  # argv of an external compressor

    @property
    def extension(self) -> str:
        return ARCHIVE_EXTENSIONS[self.format]

    @property
    def name(self) -> str:
        if self.command:
            return os.path.basename(self.command[0])
        return self.format.value


def select_compressor(compression: CompressionFormat, level: int) -> CompressorSpec:
    """
    Pick the fastest available implementation of ``compression``.

    This only inspects the host (CPU count, executables on PATH) and has no
    side effects; call it once per run before the pipeline starts.
    """
    cpus = os.cpu_count() or 1

    if compression is CompressionFormat.ZSTD:
        return CompressorSpec(
            format=compression,
            level=level,
            threads=cpus if cpus > 1 else 0,
        )

    pigz = shutil.which("pigz")
    if pigz:
        return CompressorSpec(
            format=compression,
            level=level,
            threads=cpus,
            command=(pigz, "-c", f"-{level}"),
        )
    # Assume gzip exists; if it does not, spawning it fails the pipeline.
    gzip = shutil.which("gzip") or "gzip"
    return CompressorSpec(
        format=compression,
        level=level,
        threads=1,
        command=(gzip, "-c", f"-{level}"),
    )


async def compress_stream(
    spec: CompressorSpec,
    source: AsyncReader,
    sink: ByteChannel,
    chunk_size: int,
) -> int:
    """
    Compress ``source`` into ``sink`` until ``source`` is exhausted.

    Returns:
        Number of uncompressed bytes read from ``source``

    Raises:
        PipelineError: If the compressor fails
    """
    if spec.command:
        return await _compress_external(spec, spec.command, source, sink, chunk_size)
    return await _compress_zstd(spec, source, sink, chunk_size)


async def _compress_zstd(
    spec: CompressorSpec,
    source: AsyncReader,
    sink: ByteChannel,
    chunk_size: int,
) -> int:
    """Stream ``source`` through an in-process zstd compressor."""
    loop = asyncio.get_running_loop()
    try:
        cctx = zstd.ZstdCompressor(level=spec.level, threads=spec.threads)
        compressor = cctx.compressobj()
    except zstd.ZstdError as e:
        raise PipelineError(f"failed to initialise zstd: {e}", details={"level": spec.level}) from e

    consumed = 0
    try:
        while True:
            chunk = await source.read(chunk_size)
            if not chunk:
                break
            consumed += len(chunk)
            compressed = await loop.run_in_executor(None, compressor.compress, chunk)
            await sink.write(compressed)

        await sink.write(await loop.run_in_executor(None, compressor.flush))
    except zstd.ZstdError as e:
        raise PipelineError(
            f"zstd compression failed: {e}",
            details={"consumed_bytes": consumed},
        ) from e

    return consumed


async def _compress_external(
    spec: CompressorSpec,
    command: Tuple[str, ...],
    source: AsyncReader,
    sink: ByteChannel,
    chunk_size: int,
) -> int:
    """Stream ``source`` through an external compressor process."""
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise PipelineError(
            f"failed to start {spec.name}: {e}",
            details={"command": list(command)},
        ) from e

    logger.debug("compressor_started", compressor=spec.name, pid=process.pid)

    feeder = asyncio.ensure_future(_feed(source, process, chunk_size))
    stderr_reader = asyncio.ensure_future(read_tail(process.stderr))
    try:
        while True:
            chunk = await process.stdout.read(chunk_size)
            if not chunk:
                break
            await sink.write(chunk)

        try:
            consumed = await feeder
        except (BrokenPipeError, ConnectionResetError) as e:
            raise PipelineError(f"{spec.name} stopped reading its input: {e}") from e

        returncode = await process.wait()
        stderr = await stderr_reader
        if returncode != 0:
            raise PipelineError(
                f"{spec.name} completed improperly (exit status {returncode})",
                details={"stderr": stderr.decode("utf-8", "replace").strip()},
            )
        return consumed
    finally:
        for task in (feeder, stderr_reader):
            if not task.done():
                task.cancel()
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()


async def _feed(source: AsyncReader, process: asyncio.subprocess.Process, chunk_size: int) -> int:
    """Copy ``source`` into the compressor's stdin, closing it at the end."""
    consumed = 0
    stdin = process.stdin
    try:
        while True:
            chunk = await source.read(chunk_size)
            if not chunk:
                break
            consumed += len(chunk)
            stdin.write(chunk)
            await stdin.drain()
    finally:
        # Closing stdin lets the compressor finish even when the source
        # failed, so the drain loop above never waits forever.
        stdin.close()
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            await stdin.wait_closed()
    return consumed
