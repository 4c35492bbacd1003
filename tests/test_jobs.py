"""Tests for JobManager."""

import asyncio
import time
from datetime import timedelta
from pathlib import Path

import pytest

from sf_time_machine._utils import utc_now
from sf_time_machine.backup.models import BackupType, DownloadStats, RunResult
from sf_time_machine.backup.utils import MANIFEST_FILENAME
from sf_time_machine.exceptions import BackupOptionsError, DataClientError, JobNotFoundError
from sf_time_machine.jobs import JobManager, JobStatus
from sf_time_machine.time_machine import TimeMachine
from tests.utils import FakeDataClient


class GatedManager:
    """Stand-in for BackupManager that waits for the test to release it."""

    def __init__(self, client, options, config):
        self.options = options
        self.backup_dir = Path(config.backup.output_directory) / "gated-run"
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def run(self, progress_callback=None):
        self.started.set()
        progress_callback(40, "Halfway there")
        await self.release.wait()
        return RunResult(
            backup_directory=str(self.backup_dir),
            timestamp=utc_now(),
            backup_type=self.options.backup_type,
            duration=0.5,
            stats=DownloadStats(records=10, errors=2)
        )


def gated_job_manager(config):
    managers = []

    def factory(client, options, config):
        manager = GatedManager(client, options, config)
        managers.append(manager)
        return manager

    return JobManager(config, manager_factory=factory), managers


@pytest.mark.asyncio
async def test_start_returns_before_backup_finishes(fast_config):
    job_manager, managers = gated_job_manager(fast_config)

    start = time.perf_counter()
    handle = await job_manager.start_backup_job(FakeDataClient(), {"backupType": "full"})
    elapsed = time.perf_counter() - start

    assert elapsed < 0.1
    assert handle.status == JobStatus.QUEUED
    assert handle.backup_directory.endswith("gated-run")
    assert job_manager.is_job_running(handle.job_id)

    await managers[0].started.wait()
    job = job_manager.get_job_status(handle.job_id)
    assert job.status == JobStatus.RUNNING
    assert job.progress == 40
    assert job.message == "Halfway there"
    assert job.started_at is not None

    managers[0].release.set()
    job = await job_manager.wait_for_job(handle.job_id, timeout=5)

    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    assert job.result.stats.records == 10
    assert job.message == "Backup completed with 2 errors"
    assert job.finished_at >= job.started_at
    assert not job_manager.is_job_running(handle.job_id)


@pytest.mark.asyncio
async def test_completed_backup_end_to_end(fast_config, temp_backup_dir):
    client = FakeDataClient(objects={"Account": [{"Id": "001A", "Name": "Acme"}]})
    job_manager = JobManager(fast_config)

    handle = await job_manager.start_backup_job(client, {"includeFiles": False, "includeAttachments": False,
                                                         "includeDocuments": False})
    job = await job_manager.wait_for_job(handle.job_id, timeout=5)

    assert job.status == JobStatus.COMPLETED
    assert job.error is None
    assert job.result.backup_directory == handle.backup_directory
    assert (Path(handle.backup_directory) / MANIFEST_FILENAME).exists()
    assert Path(handle.backup_directory).parent == temp_backup_dir


@pytest.mark.asyncio
async def test_failed_backup(fast_config):
    client = FakeDataClient(describe_global_error=DataClientError("Remote service unavailable", 503))
    job_manager = JobManager(fast_config)

    handle = await job_manager.start_backup_job(client)
    job = await job_manager.wait_for_job(handle.job_id, timeout=5)

    assert job.status == JobStatus.FAILED
    assert job.error == "Remote service unavailable"
    assert job.result is None
    assert job.finished_at is not None
    assert not (Path(handle.backup_directory) / MANIFEST_FILENAME).exists()


@pytest.mark.asyncio
async def test_back_to_back_jobs_get_distinct_runs(fast_config, temp_backup_dir):
    client = FakeDataClient(objects={"Account": [{"Id": "001A", "Name": "Acme"}]})
    job_manager = JobManager(fast_config)
    options = {"includeFiles": False, "includeAttachments": False, "includeDocuments": False}

    handles = [await job_manager.start_backup_job(client, options) for _ in range(5)]
    directories = [handle.backup_directory for handle in handles]
    assert len(set(directories)) == 5

    for handle in handles:
        job = await job_manager.wait_for_job(handle.job_id, timeout=5)
        assert job.status == JobStatus.COMPLETED
        assert (Path(handle.backup_directory) / MANIFEST_FILENAME).exists()

    runs = TimeMachine(temp_backup_dir).list_runs()
    assert len(runs) == 5
    assert len({run.timestamp for run in runs}) == 5


@pytest.mark.asyncio
async def test_object_failure_completes_job_with_errors(fast_config):
    client = FakeDataClient(objects={"Account": [{"Id": "001A", "Name": "Acme"}]})
    client.fail_object("Broken__c", DataClientError("describe failed", 500))
    job_manager = JobManager(fast_config)

    handle = await job_manager.start_backup_job(client, {"includeFiles": False, "includeAttachments": False,
                                                         "includeDocuments": False})
    job = await job_manager.wait_for_job(handle.job_id, timeout=5)

    assert job.status == JobStatus.COMPLETED
    assert job.error is None
    assert job.result.stats.errors >= 1
    assert job.result.stats.records == 1
    assert (Path(handle.backup_directory) / "data" / "Account.json").exists()


@pytest.mark.asyncio
async def test_invalid_options_create_no_job(fast_config):
    job_manager, managers = gated_job_manager(fast_config)

    with pytest.raises(BackupOptionsError, match="since_date is required"):
        await job_manager.start_backup_job(FakeDataClient(), {"backupType": "incremental"})

    assert job_manager.list_jobs() == []
    assert managers == []


@pytest.mark.asyncio
async def test_unknown_job(fast_config):
    job_manager = JobManager(fast_config)

    with pytest.raises(JobNotFoundError, match="missing-id"):
        job_manager.get_job_status("missing-id")
    with pytest.raises(JobNotFoundError):
        await job_manager.wait_for_job("missing-id")


@pytest.mark.asyncio
async def test_list_jobs_and_status_filter(fast_config):
    job_manager, managers = gated_job_manager(fast_config)

    first = await job_manager.start_backup_job(FakeDataClient(), None)
    await asyncio.sleep(0.001)
    second = await job_manager.start_backup_job(
        FakeDataClient(), {"backupType": "files_only"}
    )

    managers[0].release.set()
    await job_manager.wait_for_job(first.job_id, timeout=5)

    jobs = job_manager.list_jobs()
    assert [j.job_id for j in jobs] == [second.job_id, first.job_id]
    assert jobs[0].backup_type == BackupType.FILES_ONLY

    completed = job_manager.list_jobs(status=JobStatus.COMPLETED)
    assert [j.job_id for j in completed] == [first.job_id]

    managers[1].release.set()
    await job_manager.wait_for_job(second.job_id, timeout=5)


@pytest.mark.asyncio
async def test_status_is_a_copy(fast_config):
    job_manager, managers = gated_job_manager(fast_config)
    handle = await job_manager.start_backup_job(FakeDataClient())

    snapshot = job_manager.get_job_status(handle.job_id)
    snapshot.status = JobStatus.FAILED
    snapshot.message = "tampered"

    assert job_manager.get_job_status(handle.job_id).message != "tampered"

    managers[0].release.set()
    job = await job_manager.wait_for_job(handle.job_id, timeout=5)
    assert job.status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_cleanup_finished_jobs(fast_config):
    job_manager, managers = gated_job_manager(fast_config)

    finished = await job_manager.start_backup_job(FakeDataClient())
    running = await job_manager.start_backup_job(FakeDataClient())
    managers[0].release.set()
    await job_manager.wait_for_job(finished.job_id, timeout=5)

    # Nothing is old enough yet
    assert job_manager.cleanup_finished_jobs(max_age_hours=1) == 0

    job_manager._jobs[finished.job_id].finished_at = utc_now() - timedelta(hours=2)
    assert job_manager.cleanup_finished_jobs(max_age_hours=1) == 1

    with pytest.raises(JobNotFoundError):
        job_manager.get_job_status(finished.job_id)
    # Unfinished jobs are never removed
    assert job_manager.get_job_status(running.job_id).status in (JobStatus.QUEUED, JobStatus.RUNNING)

    managers[1].release.set()
    await job_manager.wait_for_job(running.job_id, timeout=5)


@pytest.mark.asyncio
async def test_cancelled_job_is_failed(fast_config):
    job_manager, managers = gated_job_manager(fast_config)
    handle = await job_manager.start_backup_job(FakeDataClient())
    await managers[0].started.wait()

    job_manager._tasks[handle.job_id].cancel()
    with pytest.raises(asyncio.CancelledError):
        await job_manager.wait_for_job(handle.job_id, timeout=5)

    job = job_manager.get_job_status(handle.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == "Backup cancelled"
