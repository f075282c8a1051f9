# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Orchestration Tests for plexbackup.

These tests verify the ordering and consistency guarantees of run_backup():
- The service is always resumed once it was stopped
- Only the object found oldest before the upload is deleted
- Failures stop the run before anything destructive happens
"""

import asyncio
import re
from datetime import datetime, timedelta, UTC

import pytest

from plexbackup import core
from plexbackup.core import BackupStage, run_backup
from plexbackup.exceptions import (
    BackupAggregateError,
    PauseError,
    PipelineError,
    ResumeError,
    RetentionLookupError,
    UploadError,
)


SERVICE = "plexmediaserver.service"
OLD_KEY = "plex/2020-01-01T00:00:00Z.tar.gz"
NEW_KEY = re.compile(r"^plex/\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z\.tar\.zst$")


def add_old_backup(fake_s3, key: str = OLD_KEY, when: datetime | None = None) -> None:
    fake_s3.add_object(key, last_modified=when or datetime(2020, 1, 1, tzinfo=UTC))


# ============================================================================
# End-to-end Scenarios
# ============================================================================

@pytest.mark.asyncio
async def test_backup_with_pause(test_config, fake_s3, fake_controller, calls):
    """list -> stop -> upload -> start -> delete"""
    add_old_backup(fake_s3)

    result = await run_backup(test_config, fake_s3, fake_controller)

    assert NEW_KEY.match(result.key)
    assert calls == [
        ("list", "plex/"),
        ("stop", SERVICE),
        ("put", result.key),
        ("start", SERVICE),
        ("delete", OLD_KEY),
    ]
    assert result.paused is True
    assert result.oldest.key == OLD_KEY
    assert result.prune.deleted is True
    assert result.compressed_bytes == len(fake_s3.objects[result.key][0])
    assert result.uncompressed_bytes > result.compressed_bytes
    assert result.stages == [
        BackupStage.IDLE,
        BackupStage.LOOKUP_OLDEST,
        BackupStage.PAUSED,
        BackupStage.PIPELINING,
        BackupStage.RESUMING,
        BackupStage.PRUNING_OLDEST,
        BackupStage.DONE,
    ]
    assert len(result.run_id) == 26
    assert set(fake_s3.objects) == {result.key}


@pytest.mark.asyncio
async def test_backup_without_pause(test_config, fake_s3, fake_controller, calls):
    """Same as above with no stop/start calls."""
    add_old_backup(fake_s3)
    config = test_config.with_updates(no_pause=True)

    result = await run_backup(config, fake_s3, fake_controller)

    assert calls == [
        ("list", "plex/"),
        ("put", result.key),
        ("delete", OLD_KEY),
    ]
    assert result.paused is False
    assert BackupStage.SKIP_PAUSE in result.stages
    assert BackupStage.RESUMING not in result.stages


@pytest.mark.asyncio
async def test_pipeline_failure_resumes(test_config, fake_s3, fake_controller, calls, failing_tar):
    """A failed archive still resumes the service exactly once and deletes nothing."""
    add_old_backup(fake_s3)

    with pytest.raises(PipelineError) as exc_info:
        await run_backup(test_config, fake_s3, fake_controller)

    assert "exit status 2" in str(exc_info.value)
    assert calls == [
        ("list", "plex/"),
        ("stop", SERVICE),
        ("start", SERVICE),
    ]
    assert set(fake_s3.objects) == {OLD_KEY}


@pytest.mark.asyncio
async def test_resume_failure_after_backup(test_config, fake_s3, fake_controller, calls):
    """The backup and the prune still happen; the run is reported as failed."""
    add_old_backup(fake_s3)
    fake_controller.fail_start = True

    with pytest.raises(ResumeError) as exc_info:
        await run_backup(test_config, fake_s3, fake_controller)

    assert "resume failed" in str(exc_info.value)
    assert [operation for operation, _ in calls] == ["list", "stop", "put", "start", "delete"]
    assert OLD_KEY not in fake_s3.objects
    assert len(fake_s3.objects) == 1


@pytest.mark.asyncio
async def test_upload_failure_resumes(test_config, fake_s3, fake_controller, calls):
    """S3 refusing the new backup still resumes the service and keeps the old one."""
    add_old_backup(fake_s3)
    fake_s3.fail_on.add("put_object")

    with pytest.raises(UploadError):
        await run_backup(test_config, fake_s3, fake_controller)

    assert [operation for operation, _ in calls] == ["list", "stop", "put", "start"]
    assert calls[-1] == ("start", SERVICE)
    assert fake_controller.started.is_set()
    assert set(fake_s3.objects) == {OLD_KEY}


# ============================================================================
# Failure Ordering Tests
# ============================================================================

@pytest.mark.asyncio
async def test_lookup_failure_touches_nothing(test_config, fake_s3, fake_controller, calls):
    fake_s3.fail_on.add("list_objects_v2")

    with pytest.raises(RetentionLookupError):
        await run_backup(test_config, fake_s3, fake_controller)

    assert calls == [("list", "plex/")]


@pytest.mark.asyncio
async def test_pause_failure_skips_backup(test_config, fake_s3, fake_controller, calls):
    add_old_backup(fake_s3)
    fake_controller.fail_stop = True

    with pytest.raises(PauseError) as exc_info:
        await run_backup(test_config, fake_s3, fake_controller)

    assert str(exc_info.value).startswith(f"failed to stop {SERVICE}")
    assert calls == [("list", "plex/"), ("stop", SERVICE)]
    assert set(fake_s3.objects) == {OLD_KEY}


@pytest.mark.asyncio
async def test_pipeline_and_resume_failure(test_config, fake_s3, fake_controller, failing_tar):
    """Neither error hides the other."""
    fake_controller.fail_start = True

    with pytest.raises(BackupAggregateError) as exc_info:
        await run_backup(test_config, fake_s3, fake_controller)

    error = exc_info.value
    assert [type(e) for e in error.errors] == [PipelineError, ResumeError]
    assert "exit status 2" in str(error)
    assert "resume failed" in str(error)


# ============================================================================
# Retention Tests
# ============================================================================

@pytest.mark.asyncio
async def test_no_previous_backup_no_delete(test_config, fake_s3, fake_controller, calls):
    result = await run_backup(test_config, fake_s3, fake_controller)

    assert result.oldest is None
    assert result.prune is None
    assert "delete" not in [operation for operation, _ in calls]
    assert BackupStage.PRUNING_OLDEST not in result.stages


@pytest.mark.asyncio
async def test_deletes_only_the_oldest(test_config, fake_s3, fake_controller, calls):
    base = datetime(2023, 1, 1, tzinfo=UTC)
    add_old_backup(fake_s3, "plex/2023-01-03T00:00:00Z.tar.zst", base + timedelta(days=2))
    add_old_backup(fake_s3, "plex/2023-01-01T00:00:00Z.tar.zst", base)
    add_old_backup(fake_s3, "other/2019-01-01T00:00:00Z.tar.zst", base - timedelta(days=900))

    result = await run_backup(test_config, fake_s3, fake_controller)

    deletes = [key for operation, key in calls if operation == "delete"]
    assert deletes == ["plex/2023-01-01T00:00:00Z.tar.zst"]
    assert set(fake_s3.objects) == {
        "plex/2023-01-03T00:00:00Z.tar.zst",
        "other/2019-01-01T00:00:00Z.tar.zst",
        result.key,
    }


@pytest.mark.asyncio
async def test_prune_failure_is_not_fatal(test_config, fake_s3, fake_controller):
    add_old_backup(fake_s3)
    fake_s3.fail_on.add("delete_object")

    result = await run_backup(test_config, fake_s3, fake_controller)

    assert result.prune.deleted is False
    assert result.prune.error
    assert BackupStage.DONE in result.stages
    assert OLD_KEY in fake_s3.objects


@pytest.mark.asyncio
async def test_prune_skipped_when_oldest_is_new_key(
    test_config, fake_s3, fake_controller, calls, monkeypatch
):
    """A rerun within the same second must not delete the backup it just wrote."""
    add_old_backup(fake_s3)
    monkeypatch.setattr(core, "generate_backup_key", lambda prefix, compression: OLD_KEY)

    result = await run_backup(test_config, fake_s3, fake_controller)

    assert result.key == OLD_KEY
    assert result.prune is None
    assert "delete" not in [operation for operation, _ in calls]
    assert OLD_KEY in fake_s3.objects


# ============================================================================
# Cancellation Tests
# ============================================================================

@pytest.mark.asyncio
async def test_cancellation_resumes_service(test_config, fake_s3, fake_controller, calls, slow_tar):
    add_old_backup(fake_s3)
    task = asyncio.create_task(run_backup(test_config, fake_s3, fake_controller))

    await asyncio.wait_for(fake_controller.stopped.wait(), timeout=5)
    await asyncio.sleep(0.2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert calls[-1] == ("start", SERVICE)
    assert [operation for operation, _ in calls].count("start") == 1
    assert "delete" not in [operation for operation, _ in calls]
    assert set(fake_s3.objects) == {OLD_KEY}


@pytest.mark.asyncio
async def test_cancellation_during_resume_lets_start_finish(test_config, fake_s3, fake_controller, calls):
    """Cancelling while the service is being started must not abandon the start."""
    add_old_backup(fake_s3)
    fake_controller.start_delay = 0.3
    task = asyncio.create_task(run_backup(test_config, fake_s3, fake_controller))

    await asyncio.wait_for(fake_controller.start_began.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert fake_controller.started.is_set()
    assert [operation for operation, _ in calls].count("start") == 1
    assert "delete" not in [operation for operation, _ in calls]
    assert OLD_KEY in fake_s3.objects
