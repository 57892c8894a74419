"""Windowed download of a process log up to the present.

Atlas caps how much of a log one request returns, so a long range is
fetched as consecutive windows. The loop ends once the window start
reaches *end_time* (default: now).
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from mongo_cloud.errors import UsageError

if TYPE_CHECKING:
    from mongo_cloud.models import LogName
    from mongo_cloud.sdk.client import MongoCloudClient

DEFAULT_WINDOW = timedelta(hours=1)


def iter_log_windows(
    start_time: datetime,
    end_time: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> Iterator[tuple[datetime, datetime]]:
    """Yield ``(start, end)`` pairs covering ``[start_time, end_time)``."""
    if window <= timedelta(0):
        raise UsageError("Log window must be positive")
    current = start_time
    while current < end_time:
        upper = min(current + window, end_time)
        yield current, upper
        current = upper


def download_full_log(
    client: MongoCloudClient,
    project_id: str,
    hostname: str,
    name: LogName,
    start_time: datetime,
    end_time: datetime | None = None,
    window: timedelta = DEFAULT_WINDOW,
    now: Callable[[], datetime] | None = None,
) -> Iterator[str]:
    """Yield the decompressed log text of each window in order.

    *now* supplies the default *end_time* (current UTC time).
    """
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=UTC)
    if end_time is None:
        end_time = now() if now is not None else datetime.now(tz=UTC)
    if end_time.tzinfo is None:
        end_time = end_time.replace(tzinfo=UTC)

    for lower, upper in iter_log_windows(start_time, end_time, window):
        text = client.get_process_log(
            project_id=project_id,
            hostname=hostname,
            name=name,
            start_time=lower,
            end_time=upper,
            decompress=True,
        )
        yield text
