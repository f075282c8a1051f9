# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
plexbackup Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from plexbackup.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DIRECTORY,
    DEFAULT_PART_SIZE,
    DEFAULT_PREFIX,
    DEFAULT_SERVICE,
    BackupConfig,
    CompressionFormat,
)
from plexbackup.errors import explain_invalid_compression_env
from plexbackup.exceptions import ConfigurationError


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "bucket": "",
        "prefix": DEFAULT_PREFIX,
        "directory": DEFAULT_DIRECTORY,
        "service": DEFAULT_SERVICE,
        "no_pause": False,
        "region": "us-east-1",
        "endpoint_url": None,
        "compression": CompressionFormat.ZSTD,
        "compression_level": None,
        "part_size": DEFAULT_PART_SIZE,
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "queue_depth": 4,
        "use_sudo": True,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the S3 bucket name.

    Args:
        config: Current configuration dictionary
        bucket_name: Name of the S3 bucket to upload the backup to

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """
    Set the key prefix backups are stored and looked up under.

    Include a trailing slash if you want one; none is added.
    """
    return {**config, "prefix": prefix}


def with_region(config: ConfigDict, region: str) -> ConfigDict:
    """
    Set the AWS region.

    Args:
        config: Current configuration dictionary
        region: AWS region (e.g., 'us-east-1', 'eu-west-2')

    Returns:
        New configuration dictionary with region set
    """
    return {**config, "region": region}


def with_endpoint(config: ConfigDict, endpoint_url: str) -> ConfigDict:
    """Point the S3 client at a custom endpoint (MinIO, moto server, ...)."""
    return {**config, "endpoint_url": endpoint_url}


def from_directory(config: ConfigDict, directory: Path | str) -> ConfigDict:
    """
    Set the 'Plex Media Server' directory to back up.

    Args:
        config: Current configuration dictionary
        directory: Path of the directory; its name becomes the archive root

    Returns:
        New configuration dictionary with directory set
    """
    path = Path(directory) if isinstance(directory, str) else directory
    return {**config, "directory": path}


def pause_service(config: ConfigDict, service: str, use_sudo: bool = True) -> ConfigDict:
    """
    Stop ``service`` for the duration of the backup.

    This is the default behaviour and the recommended setting.
    """
    return {**config, "service": service, "no_pause": False, "use_sudo": use_sudo}


def no_pause(config: ConfigDict) -> ConfigDict:
    """
    Back up without stopping the service.

    WARNING: the server keeps writing while it is archived, so the
    backup may be unusable.

    Args:
        config: Current configuration dictionary

    Returns:
        New configuration dictionary with pausing disabled
    """
    return {**config, "no_pause": True}


def zstd_compression(config: ConfigDict, level: int | None = None) -> ConfigDict:
    """Compress in-process with zstandard (``.tar.zst``)."""
    return {**config, "compression": CompressionFormat.ZSTD, "compression_level": level}


def gzip_compression(config: ConfigDict, level: int | None = None) -> ConfigDict:
    """Compress with an external pigz or gzip process (``.tar.gz``)."""
    return {**config, "compression": CompressionFormat.GZIP, "compression_level": level}


def with_part_size(config: ConfigDict, part_size: int) -> ConfigDict:
    """
    Set the multipart upload part size in bytes.

    Larger parts raise the maximum backup size (10 000 parts) at the cost
    of memory, since one part is buffered at a time.
    """
    if part_size < 1:
        raise ValueError(f"part_size must be positive, got {part_size}")
    return {**config, "part_size": part_size}


def build_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Build an immutable BackupConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Frozen BackupConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    return BackupConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose builder functions into a single function.

    Example:
        configure = pipe(
            lambda c: with_bucket(c, "my-backups"),
            lambda c: with_prefix(c, "plex/newton/"),
            no_pause,
        )
        config = build_config(configure(create_empty_config()))
    """

    def composed(config: ConfigDict) -> ConfigDict:
        for func in funcs:
            config = func(config)
        return config

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """
    Build a config by applying steps to the defaults.

    This is a convenience function that combines pipe() and build_config().
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    bucket: str,
    prefix: str | None = None,
    directory: Path | str | None = None,
    service: str | None = None,
    no_pause: bool = False,
    region: str | None = None,
    compression: CompressionFormat | str | None = None,
    compression_level: int | None = None,
    **kwargs: Any,
) -> BackupConfig:
    """
    Create a validated BackupConfig in one call.

    Example:
        config = create_config(
            bucket="my-backups",
            prefix="plex/newton/",
            region="eu-west-2",
        )

        # Skip stopping the server, gzip instead of zstd
        config = create_config(
            bucket="my-backups",
            no_pause=True,
            compression="gzip",
        )
    """
    config_dict = with_bucket(create_empty_config(), bucket)

    if prefix is not None:
        config_dict = with_prefix(config_dict, prefix)

    if directory is not None:
        config_dict = from_directory(config_dict, directory)

    if service:
        config_dict = {**config_dict, "service": service}

    if no_pause:
        config_dict = {**config_dict, "no_pause": True}

    if region:
        config_dict = with_region(config_dict, region)

    if compression is not None:
        if isinstance(compression, str):
            try:
                fmt = CompressionFormat(compression.lower())
            except ValueError as exc:
                raise ConfigurationError(explain_invalid_compression_env(compression)) from exc
        else:
            fmt = compression
        if fmt is CompressionFormat.GZIP:
            config_dict = gzip_compression(config_dict, compression_level)
        else:
            config_dict = zstd_compression(config_dict, compression_level)
    elif compression_level is not None:
        config_dict = {**config_dict, "compression_level": compression_level}

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
