"""Example: back up an org, then look at it as of an earlier moment.

Requires SF_INSTANCE_URL and SF_ACCESS_TOKEN in the environment.
"""

import asyncio
import logging
import os

from sf_time_machine import JobManager, TimeMachine
from sf_time_machine.client import RestDataClient
from sf_time_machine.config import TimeMachineConfig

logging.basicConfig(level=logging.WARNING)
logging.getLogger("sf-time-machine").setLevel(logging.INFO)


async def run_backup(config: TimeMachineConfig) -> None:
    async with RestDataClient(
        os.environ["SF_INSTANCE_URL"],
        os.environ["SF_ACCESS_TOKEN"],
        api_version=config.backup.api_version
    ) as client:
        jobs = JobManager(config)
        handle = await jobs.start_backup_job(client, {
            "backupType": "full",
            "objectsFilter": ["Account", "Contact", "Opportunity"],
            "parallelDownloads": 5,
        })
        print(f"Started job {handle.job_id} -> {handle.backup_directory}")

        job = await jobs.wait_for_job(handle.job_id)
        if job.error:
            print(f"Backup failed: {job.error}")
        else:
            stats = job.result.stats
            print(f"Backup done: {stats.records} records, {stats.total_files} files, {stats.errors} errors")


def explore(config: TimeMachineConfig) -> None:
    tm = TimeMachine(config.backup.output_directory, config.backup.run_prefix)

    for summary in tm.summarize_runs():
        print(summary.name, summary.timestamp, summary.read_error or f"{summary.size_mb} MB")

    result = tm.query_at_point_in_time("2024-01-01T15:30:00Z", "Account", {"Type": "Customer"})
    print(result.message, result.count)

    comparison = tm.compare_data_over_time("2024-01-01T00:00:00Z", "2024-06-01T00:00:00Z", "Account")
    print(f"Accounts changed by {comparison.count_difference:+d}")


if __name__ == "__main__":
    config = TimeMachineConfig.from_env()
    asyncio.run(run_backup(config))
    explore(config)
