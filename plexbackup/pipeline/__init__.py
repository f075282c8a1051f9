# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Streaming Archive Pipeline - tar, compression and byte counting.
"""

from plexbackup.pipeline.archiver import (
    EXCLUDED_NAMES,
    build_tar_command,
    read_tail,
    spawn_archiver,
)

from plexbackup.pipeline.channel import (
    ByteChannel,
    CountingReader,
)

from plexbackup.pipeline.compressor import (
    CompressorSpec,
    compress_stream,
    select_compressor,
)

from plexbackup.pipeline.stream import (
    PipelineResult,
    produce_archive,
    stream_backup,
)

__all__ = [
    # Archive stage
    "EXCLUDED_NAMES",
    "build_tar_command",
    "read_tail",
    "spawn_archiver",
    # Streams
    "ByteChannel",
    "CountingReader",
    # Compression stage
    "CompressorSpec",
    "compress_stream",
    "select_compressor",
    # Pipeline
    "PipelineResult",
    "produce_archive",
    "stream_backup",
]
