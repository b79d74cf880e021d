"""
Retention of login attempts.

Deletes attempts older than RETENTION_DAYS. Each cycle is a single DELETE,
so concurrent readers see a row either whole or not at all. A failed cycle
is logged and retried on the next run.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loginwatch.core.config import Settings, settings as default_settings
from loginwatch.core.exceptions import RetentionError, StoreUnavailableError
from loginwatch.services.attempt_store import AttemptStore

logger = logging.getLogger(__name__)


class RetentionManager:
    """Runs retention cycles against the attempt store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or default_settings

    async def expire(self, now: datetime | None = None) -> int:
        """
        Delete expired attempts and commit.

        Raises:
            RetentionError: if the sweep could not complete
        """
        try:
            async with self.session_factory() as session:
                store = AttemptStore(session)
                deleted = await store.expire_older_than(self.settings.retention_seconds, now=now)
                await store.commit()
        except (SQLAlchemyError, StoreUnavailableError) as e:
            raise RetentionError(str(e)) from e
        return deleted

    async def run_cycle(self, now: datetime | None = None) -> int:
        """Run one retention cycle; never raises. Returns the number of rows deleted."""
        try:
            deleted = await self.expire(now=now)
        except RetentionError as e:
            logger.error("Login attempt retention cycle failed, will retry next cycle: %s", e.reason)
            return 0

        if deleted:
            logger.info(
                "Deleted %s login attempt(s) older than %s days", deleted, self.settings.RETENTION_DAYS
            )
        else:
            logger.debug("No login attempts older than %s days", self.settings.RETENTION_DAYS)
        return deleted
