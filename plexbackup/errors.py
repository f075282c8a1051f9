# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for plexbackup.

These helpers centralize wording for common configuration errors so that
the environment loader, the builder and the CLI present consistent,
actionable messages.
"""


def explain_missing_bucket_env() -> str:
    """
    Explain that the destination bucket is not configured.
    """

    return (
        "S3 bucket is not configured. "
        "Set the PLEXBACKUP_BUCKET environment variable or pass --bucket."
    )


def explain_invalid_compression_env(value: str | None) -> str:
    """
    Explain that PLEXBACKUP_COMPRESSION is invalid.
    """

    return (
        f"Invalid PLEXBACKUP_COMPRESSION value: {value!r}. "
        "Expected 'zstd' or 'gzip'."
    )


def explain_invalid_integer_env(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable could not be parsed.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a positive integer."
    )


def explain_invalid_flag_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable could not be parsed.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: '1', 'true', 'yes', '0', 'false', 'no'."
    )


def explain_missing_service() -> str:
    """
    Explain that a service name is needed unless pausing is disabled.
    """

    return (
        "service name is required to pause the server during the backup. "
        "Pass the systemd unit name, or disable pausing with --no-pause."
    )
