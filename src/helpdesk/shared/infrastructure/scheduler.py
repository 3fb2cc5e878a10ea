"""
Background Job Scheduler
========================

Wrapper for APScheduler running the periodic maintenance jobs
(SLA violation sweep, retention cleanup).

Manages the lifecycle of the scheduler and its jobs.
"""

from typing import Awaitable, Callable, List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

JobFunc = Callable[[], Awaitable[object]]


class JobScheduler:
    """Runs registered coroutine jobs on fixed intervals."""

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: List[Tuple[str, JobFunc, int]] = []
        self._running = False

    def add_interval_job(self, job_id: str, job_func: JobFunc, seconds: int) -> None:
        """Register a job; an interval of 0 leaves it disabled."""
        if seconds <= 0:
            logger.info("Job disabled", extra={"job_id": job_id})
            return
        self._jobs.append((job_id, job_func, seconds))

    async def start(self) -> None:
        """Start the scheduler with the registered jobs."""
        if self._running:
            logger.warning("Job scheduler already running")
            return
        if not self._jobs:
            logger.info("No background jobs registered, scheduler not started")
            return

        self._scheduler = AsyncIOScheduler()

        for job_id, job_func, seconds in self._jobs:
            self._scheduler.add_job(
                self._wrap(job_id, job_func),
                "interval",
                seconds=seconds,
                id=job_id,
                name=job_id,
                misfire_grace_time=60,
                max_instances=1,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Job scheduler started",
            extra={"jobs": [job_id for job_id, _, _ in self._jobs]}
        )

    @staticmethod
    def _wrap(job_id: str, job_func: JobFunc) -> JobFunc:
        async def run() -> None:
            try:
                result = await job_func()
                logger.info("Background job finished", extra={"job_id": job_id, "result": str(result)})
            except Exception as e:
                logger.error("Background job failed", extra={"job_id": job_id, "error": str(e)})
        return run

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Job scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
