# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive stage - runs tar over the Plex data directory.

tar is started with ``-C`` on the directory's parent and given only the
directory's name, so the archive has a single 'Plex Media Server' root
entry. Caches, crash reports, diagnostics and the pid file are excluded.
"""

import asyncio
import os
from pathlib import Path
from typing import List

import structlog

from plexbackup.exceptions import PipelineError

logger = structlog.get_logger()

# Matched by name anywhere within the tree
EXCLUDED_NAMES = (
    "Cache",
    "Crash Reports",
    "Diagnostics",
    "plexmediaserver.pid",
)


def build_tar_command(directory: Path) -> List[str]:
    """
    Return the tar argv that writes an uncompressed archive of
    ``directory`` to stdout.

    tar interprets archive names containing colons as network locations,
    so the archive always goes through ``-f -`` rather than a file name.
    """
    command = ["tar", "-cf", "-", "-C", str(directory.parent)]
    for name in EXCLUDED_NAMES:
        command.extend(["--exclude", name])
    command.append(directory.name)
    return command


def check_source_directory(directory: Path) -> None:
    """Raise PipelineError unless ``directory`` is an existing, readable folder."""
    if not directory.is_dir():
        raise PipelineError(
            f"source directory does not exist: {directory}",
            details={"directory": str(directory)},
        )
    if not os.access(directory, os.R_OK | os.X_OK):
        raise PipelineError(
            f"source directory is not readable: {directory}",
            details={"directory": str(directory)},
        )


async def spawn_archiver(directory: Path) -> asyncio.subprocess.Process:
    """
    Start tar with its archive on a stdout pipe.

    The caller owns the returned process: it must read stdout and stderr,
    wait for it, and kill it if the pipeline is abandoned.
    """
    check_source_directory(directory)
    command = build_tar_command(directory)

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise PipelineError(
            f"failed to start tar: {e}",
            details={"command": command},
        ) from e

    logger.debug("archiver_started", pid=process.pid, directory=str(directory))
    return process


# tar warns once per changed file when the service keeps running; only the
# end of its diagnostics is kept for error reports
STDERR_TAIL_BYTES = 64 * 1024


async def read_tail(stream: asyncio.StreamReader, limit: int = STDERR_TAIL_BYTES) -> bytes:
    """Drain ``stream`` to EOF and return at most its last ``limit`` bytes."""
    tail = bytearray()
    while True:
        chunk = await stream.read(limit)
        if not chunk:
            return bytes(tail)
        tail.extend(chunk)
        if len(tail) > limit:
            del tail[:-limit]
