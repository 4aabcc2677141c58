"""APScheduler-based sweeper that expires cache entries periodically."""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from lexsearch.cache.tiered_cache import TieredCache

log = structlog.get_logger(__name__)


class CacheSweeper:
    """Runs ``TieredCache.cleanup`` on an interval using a BackgroundScheduler.

    The library is synchronous, so jobs run on the scheduler's own thread pool
    instead of an event loop.
    """

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the underlying scheduler if not already started."""
        if not self._started:
            self._scheduler.start(paused=False)
            self._started = True

    def shutdown(self, *, wait: bool = True) -> None:
        """Shut down the scheduler."""
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False

    def schedule_cleanup(
        self,
        cache: TieredCache,
        *,
        interval: Optional[timedelta] = None,
        job_id: str = "lexsearch-cache-cleanup",
        replace_existing: bool = True,
    ) -> None:
        """Schedule periodic execution of ``cache.cleanup()``.

        Parameters
        ----------
        cache: TieredCache
            The cache to sweep.
        interval: Optional[timedelta]
            How often to sweep; defaults to the cache's ``cleanup_interval``.
        job_id: str
            Job id, so a later call replaces rather than duplicates the job.
        replace_existing: bool
            If True, replace any existing job with the same id.
        """
        if interval is None:
            interval = timedelta(seconds=cache.config.cleanup_interval)

        def _job() -> None:
            removed = cache.cleanup()
            log.debug("Cache sweep finished", removed=removed)

        trigger = IntervalTrigger(seconds=max(1, int(interval.total_seconds())))
        self._scheduler.add_job(
            _job,
            trigger=trigger,
            id=job_id,
            replace_existing=replace_existing,
            max_instances=1,
            coalesce=True,
        )

    def cancel(self, job_id: str = "lexsearch-cache-cleanup") -> None:
        self._scheduler.remove_job(job_id)
