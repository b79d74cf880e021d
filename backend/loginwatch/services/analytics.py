"""
Read-only login analytics for the administrative view.

Nothing here writes to the attempt store.
"""

import math
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from loginwatch.core.config import Settings, settings as default_settings
from loginwatch.models.login_attempt import LoginAttempt, ensure_utc
from loginwatch.schemas.login_attempt import (
    AttemptFilter,
    AttemptPage,
    DailyStatistic,
    LoginAttemptResponse,
    LoginSummary,
    RateLimitStatus,
)
from loginwatch.services.attempt_store import AttemptStore


class AnalyticsService:
    """Aggregations and lookups over recorded login attempts."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.settings = settings or default_settings
        self.store = AttemptStore(db)

    async def daily_statistics(self, days: int) -> list[DailyStatistic]:
        return await self.store.daily_statistics(days, tz=self.settings.STATS_TIMEZONE)

    async def list_suspicious(self, limit: int = 50) -> list[LoginAttempt]:
        return await self.store.list_suspicious(limit)

    async def count_failures(self, email: str, window_minutes: int = 60) -> int:
        return await self.store.count_failures(email, window_minutes)

    async def list_by_ip(self, ip_address: str, window_minutes: int = 60) -> list[LoginAttempt]:
        return await self.store.list_by_ip(ip_address, window_minutes)

    async def list_by_email(self, email: str, window_minutes: int = 60) -> list[LoginAttempt]:
        return await self.store.list_by_email(email, window_minutes)

    async def login_summary(self, days: int = 7, suspicious_limit: int = 20) -> LoginSummary:
        """Totals, success rate, daily buckets and the suspicious feed for a period."""
        since = datetime.now(UTC) - timedelta(days=days)
        total, successful = await self.store.totals(since)
        daily = await self.daily_statistics(days)
        suspicious = await self.store.list_suspicious(suspicious_limit)

        return LoginSummary(
            period_days=days,
            total_attempts=total,
            successful_logins=successful,
            failed_logins=total - successful,
            success_rate=round(successful / total * 100) if total else 0,
            daily_statistics=daily,
            suspicious_activity=[LoginAttemptResponse.model_validate(a) for a in suspicious],
        )

    async def search_attempts(
        self,
        filters: AttemptFilter | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> AttemptPage:
        """Paginated attempt log, newest first."""
        filters = filters or AttemptFilter()
        page = max(page, 1)
        limit = max(limit, 1)
        rows, total = await self.store.search(filters, page=page, limit=limit)
        total_pages = math.ceil(total / limit)

        return AttemptPage(
            items=[LoginAttemptResponse.model_validate(a) for a in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )

    async def rate_limit_status(
        self,
        email: str,
        ip_address: str,
        window_minutes: int = 15,
        max_attempts: int = 5,
    ) -> RateLimitStatus:
        """
        Report whether recent failures for an email or IP reached a limit.

        Advisory only: enforcing the limit is up to the authentication flow.
        """
        email_failures = await self.store.count_failures(email, window_minutes)
        ip_failures = await self.store.count_failures_by_ip(ip_address, window_minutes)

        if email_failures >= max_attempts or ip_failures >= max_attempts:
            last = await self.store.last_failure(email, ip_address, window_minutes)
            window = timedelta(minutes=window_minutes)
            reset_from = ensure_utc(last.attempted_at) if last else datetime.now(UTC)
            return RateLimitStatus(
                is_limited=True,
                remaining_attempts=0,
                reset_time=reset_from + window,
            )

        return RateLimitStatus(
            is_limited=False,
            remaining_attempts=max_attempts - max(email_failures, ip_failures),
        )
