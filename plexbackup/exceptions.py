# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
plexbackup Exceptions - Custom exceptions for the plexbackup package.
"""

from typing import Iterator, List, Sequence


class PlexBackupError(Exception):
    """Base exception for all plexbackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PlexBackupError):
    """Raised when configuration is invalid."""

    pass


class RetentionLookupError(PlexBackupError):
    """Raised when the existing backups under the prefix cannot be listed."""

    pass


class ServiceControlError(PlexBackupError):
    """Raised when a service control command fails to launch or exits non-zero."""

    pass


class PauseError(ServiceControlError):
    """Raised when the service could not be stopped before the backup."""

    pass


class ResumeError(ServiceControlError):
    """Raised when the service could not be started again after the backup."""

    pass


class PipelineError(PlexBackupError):
    """Raised when the archive or compression stage fails."""

    pass


class UploadError(PlexBackupError):
    """Raised when S3 operations fail while storing the new backup."""

    pass


class BackupAggregateError(PlexBackupError):
    """
    Raised when the backup failed and the service could not be resumed.

    Both failures are kept in ``errors`` so neither masks the other.
    """

    def __init__(self, errors: Sequence[PlexBackupError], details: dict | None = None):
        self.errors: List[PlexBackupError] = list(errors)
        message = "; ".join(str(error) for error in self.errors)
        super().__init__(message, details)


def _leaves(group: BaseExceptionGroup) -> Iterator[BaseException]:
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            yield from _leaves(exc)
        else:
            yield exc


def first_error(group: BaseExceptionGroup) -> BaseException:
    """
    Pick the most descriptive failure out of a task group's exception group.

    Stage failures are preferred over upload failures, which are preferred
    over anything else, so the caller sees the root cause rather than a
    consequence of it.
    """
    leaves = list(_leaves(group))
    for kind in (PipelineError, UploadError, PlexBackupError):
        for exc in leaves:
            if isinstance(exc, kind):
                return exc
    return leaves[0]
