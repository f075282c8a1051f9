# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
plexbackup Core - Backup orchestrator.

run_backup() performs one backup:
1. Look up the oldest existing backup under the prefix
2. Stop the service (unless pausing is disabled)
3. Stream tar -> compression -> S3 upload
4. Start the service again, whether or not step 3 succeeded
5. Delete the backup found in step 1 (best-effort)

A caller that gets a BackupResult back can trust the backup exists and,
if it was stopped, the service is running again.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

import structlog
from ulid import ULID

from plexbackup.config import BackupConfig
from plexbackup.exceptions import (
    BackupAggregateError,
    PauseError,
    PipelineError,
    PlexBackupError,
    ResumeError,
    RetentionLookupError,
    ServiceControlError,
    UploadError,
)
from plexbackup.keys import generate_backup_key
from plexbackup.pipeline import PipelineResult, select_compressor, stream_backup
from plexbackup.retention import PruneOutcome, RemoteObjectRef, find_oldest, prune_object
from plexbackup.service import ServiceController, SystemctlController
from plexbackup.storage import create_s3_client

logger = structlog.get_logger()

GIBIBYTE = 1024 * 1024 * 1024


class BackupStage(str, Enum):
    """Stages a run moves through."""

    IDLE = "idle"
    LOOKUP_OLDEST = "lookup_oldest"
    PAUSED = "paused"
    SKIP_PAUSE = "skip_pause"
    PIPELINING = "pipelining"
    RESUMING = "resuming"
    PRUNING_OLDEST = "pruning_oldest"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class BackupRun:
    """Mutable bookkeeping for the run in progress. Owned by run_backup()."""

    run_id: str
    stage: BackupStage = BackupStage.IDLE
    stages: List[BackupStage] = field(default_factory=lambda: [BackupStage.IDLE])

    def enter(self, stage: BackupStage) -> None:
        self.stage = stage
        self.stages.append(stage)
        logger.debug("backup_stage", run_id=self.run_id, stage=stage.value)


@dataclass
class BackupResult:
    """Result of a successful backup run."""

    run_id: str  # ULID
    key: str
    pipeline: PipelineResult
    paused: bool
    oldest: RemoteObjectRef | None
    prune: PruneOutcome | None
    stages: List[BackupStage] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        return self.pipeline.duration_seconds

    @property
    def uncompressed_bytes(self) -> int:
        return self.pipeline.uncompressed_bytes

    @property
    def compressed_bytes(self) -> int:
        return self.pipeline.compressed_bytes


async def run_backup(
    config: BackupConfig,
    s3_client: Any = None,
    controller: ServiceController | None = None,
) -> BackupResult:
    """
    Run one backup described by ``config``.

    Args:
        config: Backup configuration
        s3_client: aiobotocore S3 client; one is created from ``config``
            when omitted
        controller: Service controller; defaults to systemctl

    Returns:
        BackupResult with the uploaded key and byte counts

    Raises:
        RetentionLookupError: Listing existing backups failed (nothing touched)
        PauseError: The service could not be stopped (no backup attempted)
        PipelineError: tar or compression failed (service resumed)
        UploadError: S3 rejected the upload (service resumed)
        ResumeError: The backup succeeded but the service did not start
        BackupAggregateError: The backup failed and so did the resume
    """
    if s3_client is None:
        async with create_s3_client(config) as client:
            return await run_backup(config, client, controller)

    if controller is None:
        controller = SystemctlController(use_sudo=config.use_sudo)

    run = BackupRun(run_id=str(ULID()))
    log = logger.bind(run_id=run.run_id, bucket=config.bucket, prefix=config.prefix)
    log.info(
        "backup_started",
        directory=str(config.directory),
        service=None if config.no_pause else config.service,
        compression=config.compression.value,
    )

    # Step 1: find what to prune once the new backup exists
    run.enter(BackupStage.LOOKUP_OLDEST)
    try:
        oldest = await find_oldest(s3_client, config.bucket, config.prefix)
    except RetentionLookupError as e:
        run.enter(BackupStage.ABORTED)
        log.error("backup_aborted", stage=BackupStage.LOOKUP_OLDEST.value, error=str(e))
        raise
    if oldest is not None:
        log.info("oldest_backup_found", key=oldest.key, last_modified=oldest.last_modified.isoformat())
    else:
        log.info("no_previous_backup")

    paused = False
    compressor = select_compressor(config.compression, config.effective_compression_level)
    key = ""

    try:
        # Step 2: pause
        if config.no_pause:
            run.enter(BackupStage.SKIP_PAUSE)
            log.warning("pause_disabled", detail="the backup may be inconsistent")
        else:
            try:
                await controller.stop(config.service)
            except ServiceControlError as e:
                run.enter(BackupStage.ABORTED)
                log.error("backup_aborted", stage="pause", error=str(e))
                raise PauseError(
                    f"failed to stop {config.service}: {e.message}",
                    details={"service": config.service, **e.details},
                ) from e
            paused = True
            run.enter(BackupStage.PAUSED)
            log.info("service_stopped", service=config.service)

        # Step 3: archive, compress and upload concurrently
        key = generate_backup_key(config.prefix, config.compression)
        run.enter(BackupStage.PIPELINING)
        outcome: PipelineResult | PlexBackupError
        try:
            outcome = await stream_backup(s3_client, config, key, compressor)
        except (PipelineError, UploadError) as e:
            outcome = e
        except Exception as e:
            outcome = PipelineError(f"backup pipeline failed: {e}", details={"key": key})
            outcome.__cause__ = e
    except asyncio.CancelledError:
        # Never leave the server stopped because the caller gave up
        if not config.no_pause:
            log.warning("backup_cancelled", resume=True)
            await _resume_shielded(controller, config.service, log)
        raise

    if isinstance(outcome, PlexBackupError):
        run.enter(BackupStage.ABORTED)
        log.error("backup_failed", key=key, error=str(outcome))

    # Step 4: resume regardless of the outcome above
    resume_error: ResumeError | None = None
    if paused:
        run.enter(BackupStage.RESUMING)
        resume_error = await _resume_shielded(controller, config.service, log)

    if isinstance(outcome, PlexBackupError):
        if resume_error is not None:
            raise BackupAggregateError(
                [outcome, resume_error],
                details={"run_id": run.run_id},
            ) from outcome
        raise outcome

    pipeline = outcome
    log.info(
        "backup_uploaded",
        key=key,
        gib=round(pipeline.compressed_bytes / GIBIBYTE, 3),
        compressed_bytes=pipeline.compressed_bytes,
        uncompressed_bytes=pipeline.uncompressed_bytes,
        compression_ratio=f"{pipeline.compression_ratio:.2f}x",
        elapsed=round(pipeline.duration_seconds, 3),
    )

    # Step 5: best-effort prune of the previous backup
    prune: PruneOutcome | None = None
    if oldest is not None:
        if oldest.key == key:
            # Same-second rerun: the "oldest" object is the one just written
            log.warning("prune_skipped", key=oldest.key, reason="oldest backup is the new backup")
        else:
            run.enter(BackupStage.PRUNING_OLDEST)
            prune = await prune_object(s3_client, config.bucket, oldest)

    if resume_error is not None:
        run.enter(BackupStage.ABORTED)
        raise resume_error

    run.enter(BackupStage.DONE)
    log.info("backup_completed", key=key, pruned=prune.key if prune and prune.deleted else None)

    return BackupResult(
        run_id=run.run_id,
        key=key,
        pipeline=pipeline,
        paused=paused,
        oldest=oldest,
        prune=prune,
        stages=list(run.stages),
    )


async def _resume(controller: ServiceController, service: str) -> ResumeError | None:
    """Start ``service``; a failure is returned so it can be combined with earlier ones."""
    try:
        await controller.start(service)
    except ServiceControlError as e:
        error = ResumeError(
            f"resume failed: could not start {service}: {e.message}",
            details={"service": service, **e.details},
        )
        error.__cause__ = e
        return error
    return None


async def _resume_shielded(controller: ServiceController, service: str, log: Any) -> ResumeError | None:
    """
    Start ``service`` without letting a cancellation interrupt the start.

    If the caller is cancelled meanwhile, the start still runs to completion
    and its result is logged before the cancellation is re-raised.
    """
    task = asyncio.ensure_future(_resume(controller, service))
    try:
        error = await asyncio.shield(task)
    except asyncio.CancelledError:
        error = await task
        _log_resume(log, service, error)
        raise
    _log_resume(log, service, error)
    return error


def _log_resume(log: Any, service: str, error: ResumeError | None) -> None:
    if error is not None:
        log.error("service_start_failed", service=service, error=str(error))
    else:
        log.info("service_started", service=service)
