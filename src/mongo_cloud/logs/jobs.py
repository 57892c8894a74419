"""Polling for log collection jobs.

A created job is polled at a fixed interval while its status is
``IN_PROGRESS``. ``SUCCESS`` ends the wait; any other status is an error.
The optional *deadline* bounds the total wait.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mongo_cloud.config import DEFAULT_POLL_INTERVAL
from mongo_cloud.errors import LogCollectionError, LogCollectionTimeout
from mongo_cloud.models import LogCollectionJobStatus

if TYPE_CHECKING:
    from mongo_cloud.sdk.client import MongoCloudClient

logger = logging.getLogger(__name__)


def wait_for_log_collection_job(
    client: MongoCloudClient,
    project_id: str,
    job_id: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    deadline: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """Poll until the job succeeds and return its final state.

    Args:
        deadline: Maximum seconds to wait, or ``None`` to wait indefinitely.

    Raises:
        LogCollectionError: The job reached a status other than success.
        LogCollectionTimeout: *deadline* elapsed while still in progress.
    """
    started = clock()
    while True:
        job = client.get_log_collection_job(project_id, job_id)
        raw_status = job.get("status", "")
        status = LogCollectionJobStatus.parse(raw_status)

        if status is LogCollectionJobStatus.SUCCESS:
            logger.info("Log collection job %s finished", job_id)
            return job
        if status is not LogCollectionJobStatus.IN_PROGRESS:
            raise LogCollectionError(
                f"Log collection job {job_id} is in unexpected state: {raw_status}"
            )
        if deadline is not None and clock() - started + poll_interval > deadline:
            raise LogCollectionTimeout(
                f"Log collection job {job_id} still in progress after {deadline:g}s"
            )

        logger.info("Log collection job %s in progress, retrying in %gs", job_id, poll_interval)
        sleep(poll_interval)


def download_log_collection_job(
    client: MongoCloudClient,
    job: dict[str, Any],
    dest: str | Path,
) -> Path:
    """Write a finished job's archive to *dest* (a file or a directory)."""
    dest = Path(dest)
    if dest.is_dir():
        dest = dest / f"logs-{job['id']}.tar.gz"
    dest.write_bytes(client.download_log_collection_job(job))
    return dest
