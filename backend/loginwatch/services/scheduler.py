"""
Scheduler service for background maintenance jobs.

Uses APScheduler to run the login attempt retention cycle on a fixed
interval. With multiple workers, a Redis lock ensures only one worker
executes each run.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loginwatch.core.config import Settings, settings as app_settings
from loginwatch.core.redis import get_redis
from loginwatch.services.retention import RetentionManager

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

RETENTION_JOB_ID = "login_attempt_retention"
RETENTION_LOCK_NAME = "scheduler:login_attempt_retention"


class SchedulerService:
    """Service for managing scheduled background jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or app_settings
        self._engine = None
        self._session_factory = session_factory

    def _get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Lazy initialization of database engine."""
        if self._session_factory is None:
            self._engine = create_async_engine(self.settings.DATABASE_URL, pool_pre_ping=True)
            self._session_factory = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        return self._session_factory

    def start(self):
        """Start the scheduler and register the retention job."""
        self._schedule_retention()
        if not scheduler.running:
            scheduler.start()
            logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    async def dispose(self):
        """Release the lazily created engine, if any."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    def _schedule_retention(self):
        """Schedule the retention cycle."""
        interval = self.settings.RETENTION_INTERVAL_MINUTES
        scheduler.add_job(
            self._run_retention,
            trigger=IntervalTrigger(minutes=interval),
            id=RETENTION_JOB_ID,
            name="login attempt retention",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=interval * 60,
        )
        logger.info("Scheduled %s job (every %s minutes)", RETENTION_JOB_ID, interval)

    async def _run_with_lock(self, lock_name: str, timeout: int, job_func):
        """
        Execute a job function with distributed locking.

        Only one worker will execute the job; others will skip.

        Args:
            lock_name: Unique name for the lock
            timeout: Lock timeout in seconds
            job_func: Async function to execute if lock acquired
        """
        try:
            redis = await get_redis()
        except Exception as e:
            logger.warning("Redis unavailable, running job without lock: %s", e)
            await job_func()
            return

        lock = redis.lock(lock_name, timeout=timeout, blocking=False)

        try:
            try:
                acquired = await lock.acquire(blocking=False)
            except RedisConnectionError as e:
                logger.warning("Redis unreachable, running %s without lock: %s", lock_name, e)
                await job_func()
                return

            if not acquired:
                logger.debug("Lock %s held by another worker, skipping", lock_name)
                return

            try:
                await job_func()
            finally:
                try:
                    await lock.release()
                except Exception as e:
                    logger.debug("Lock %s already released: %s", lock_name, e)
        except Exception as e:
            logger.error("Error in locked job %s: %s", lock_name, e)

    async def run_retention_now(self):
        """Run one retention cycle outside the schedule."""
        await self._run_retention()

    async def _run_retention(self):
        """Execute the retention cycle with distributed lock."""
        await self._run_with_lock(
            RETENTION_LOCK_NAME,
            timeout=self.settings.RETENTION_INTERVAL_MINUTES * 60,
            job_func=self._execute_retention,
        )

    async def _execute_retention(self):
        """Actual retention execution."""
        manager = RetentionManager(self._get_session_factory(), self.settings)
        await manager.run_cycle()


scheduler_service = SchedulerService()
