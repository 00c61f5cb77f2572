from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.settings import Settings
from ingest.bmkg_sync import BmkgSync, SyncResult


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncJob:
    name: str
    kind: str
    interval_seconds: int


def scheduled_jobs(settings: Settings) -> list[SyncJob]:
    return [
        SyncJob(
            name="bmkg-sync-latest",
            kind="latest",
            interval_seconds=settings.sync_interval_seconds,
        ),
    ]


async def run_job_once(
    job: SyncJob, sync: BmkgSync, locks: dict[str, asyncio.Lock]
) -> SyncResult | None:
    """Run ``job`` unless a previous run of it still holds its lock.

    Returns ``None`` when the tick was skipped.
    """
    lock = locks.setdefault(job.name, asyncio.Lock())
    if lock.locked():
        LOGGER.info("skipping %s: previous run still in progress", job.name)
        return None

    async with lock:
        try:
            result = await sync.sync(job.kind)
        except Exception:
            LOGGER.exception("%s raised", job.name)
            return None

    if result.success:
        LOGGER.info("BMKG sync completed (%s): %s", job.name, result.message)
    else:
        LOGGER.error("BMKG sync failed (%s): %s", job.name, result.message)
    return result


async def run_scheduler(*, settings: Settings, sync: BmkgSync) -> None:
    jobs = scheduled_jobs(settings)
    locks: dict[str, asyncio.Lock] = {}
    running: set[asyncio.Task] = set()
    loop = asyncio.get_running_loop()
    next_run_at = {job.name: loop.time() for job in jobs}

    try:
        while True:
            now = loop.time()
            for job in jobs:
                if now < next_run_at[job.name]:
                    continue
                next_run_at[job.name] = now + job.interval_seconds
                task = asyncio.create_task(run_job_once(job, sync, locks))
                running.add(task)
                task.add_done_callback(running.discard)

            wake_at = min(next_run_at.values())
            await asyncio.sleep(max(0.5, wake_at - loop.time()))
    finally:
        pending = list(running)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
