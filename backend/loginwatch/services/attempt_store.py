"""
Attempt store: persistence and window queries for login attempts.

All window queries are bounded by ``attempted_at`` and served by the
composite indexes declared on the model.
"""

import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from typing import ParamSpec, TypeVar
from zoneinfo import ZoneInfo

from sqlalchemy import Date, case, cast, delete, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from loginwatch.core.exceptions import StoreUnavailableError, ValidationError
from loginwatch.models.login_attempt import LoginAttempt
from loginwatch.schemas.login_attempt import AttemptFilter, DailyStatistic

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError)


def translate_store_errors(func_: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Re-raise connection-level database failures as StoreUnavailableError."""

    @functools.wraps(func_)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func_(*args, **kwargs)
        except UNAVAILABLE_ERRORS as e:
            logger.error("Attempt store unavailable during %s: %s", func_.__name__, e)
            raise StoreUnavailableError(str(e)) from e

    return wrapper


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


class AttemptStore:
    """Queryable storage of login attempts bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _validate(attempt: LoginAttempt) -> None:
        errors = []
        for field in ("email", "ip_address", "user_agent"):
            value = getattr(attempt, field)
            if not value or not value.strip():
                errors.append({"field": field, "message": "must not be empty"})

        if attempt.success is None:
            errors.append({"field": "success", "message": "is required"})
        elif not attempt.success and attempt.failure_reason is None:
            errors.append({"field": "failure_reason", "message": "is required when success is false"})
        elif attempt.success and attempt.failure_reason is not None:
            errors.append({"field": "failure_reason", "message": "must be empty when success is true"})

        if errors:
            raise ValidationError(errors)

    @translate_store_errors
    async def record(self, attempt: LoginAttempt) -> uuid.UUID:
        """Add an attempt to the session and flush it. The caller commits."""
        self._validate(attempt)
        if attempt.id is None:
            attempt.id = uuid.uuid4()
        if attempt.attempted_at is None:
            attempt.attempted_at = datetime.now(UTC)
        if attempt.suspicious_reasons is None:
            attempt.suspicious_reasons = []
        attempt.is_suspicious = bool(attempt.is_suspicious)
        self.db.add(attempt)
        await self.db.flush()
        return attempt.id

    @translate_store_errors
    async def commit(self) -> None:
        await self.db.commit()

    @translate_store_errors
    async def get(self, attempt_id: uuid.UUID) -> LoginAttempt | None:
        return await self.db.get(LoginAttempt, attempt_id)

    @translate_store_errors
    async def count_failures(
        self,
        email: str,
        window_minutes: int,
        now: datetime | None = None,
    ) -> int:
        """Exact count of failed attempts for an email in [now - window, now]."""
        now = _now(now)
        since = now - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(func.count()).select_from(LoginAttempt).where(
                LoginAttempt.email == email.strip().lower(),
                LoginAttempt.success.is_(False),
                LoginAttempt.attempted_at >= since,
                LoginAttempt.attempted_at <= now,
            )
        )
        return result.scalar() or 0

    @translate_store_errors
    async def count_failures_by_ip(
        self,
        ip_address: str,
        window_minutes: int,
        now: datetime | None = None,
    ) -> int:
        now = _now(now)
        since = now - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(func.count()).select_from(LoginAttempt).where(
                LoginAttempt.ip_address == ip_address,
                LoginAttempt.success.is_(False),
                LoginAttempt.attempted_at >= since,
                LoginAttempt.attempted_at <= now,
            )
        )
        return result.scalar() or 0

    @translate_store_errors
    async def most_recent_attempt(
        self,
        email: str,
        lookback_seconds: int = 60,
        now: datetime | None = None,
    ) -> LoginAttempt | None:
        """Latest attempt of any outcome for an email within the lookback."""
        now = _now(now)
        since = now - timedelta(seconds=lookback_seconds)
        result = await self.db.execute(
            select(LoginAttempt)
            .where(
                LoginAttempt.email == email.strip().lower(),
                LoginAttempt.attempted_at >= since,
                LoginAttempt.attempted_at <= now,
            )
            .order_by(LoginAttempt.attempted_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @translate_store_errors
    async def last_failure(
        self,
        email: str,
        ip_address: str,
        window_minutes: int,
        now: datetime | None = None,
    ) -> LoginAttempt | None:
        """Latest failed attempt matching the email or the IP within the window."""
        now = _now(now)
        since = now - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(LoginAttempt)
            .where(
                (LoginAttempt.email == email.strip().lower()) | (LoginAttempt.ip_address == ip_address),
                LoginAttempt.success.is_(False),
                LoginAttempt.attempted_at >= since,
                LoginAttempt.attempted_at <= now,
            )
            .order_by(LoginAttempt.attempted_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @translate_store_errors
    async def list_suspicious(self, limit: int) -> list[LoginAttempt]:
        result = await self.db.execute(
            select(LoginAttempt)
            .where(LoginAttempt.is_suspicious.is_(True))
            .order_by(LoginAttempt.attempted_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @translate_store_errors
    async def list_by_ip(
        self,
        ip_address: str,
        window_minutes: int,
        now: datetime | None = None,
    ) -> list[LoginAttempt]:
        now = _now(now)
        since = now - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(LoginAttempt)
            .where(
                LoginAttempt.ip_address == ip_address,
                LoginAttempt.attempted_at >= since,
                LoginAttempt.attempted_at <= now,
            )
            .order_by(LoginAttempt.attempted_at.desc())
        )
        return list(result.scalars().all())

    @translate_store_errors
    async def list_by_email(
        self,
        email: str,
        window_minutes: int,
        now: datetime | None = None,
    ) -> list[LoginAttempt]:
        now = _now(now)
        since = now - timedelta(minutes=window_minutes)
        result = await self.db.execute(
            select(LoginAttempt)
            .where(
                LoginAttempt.email == email.strip().lower(),
                LoginAttempt.attempted_at >= since,
                LoginAttempt.attempted_at <= now,
            )
            .order_by(LoginAttempt.attempted_at.desc())
        )
        return list(result.scalars().all())

    def _day_bucket(self, tz: str):
        """
        SQL expression mapping attempted_at to a calendar date in ``tz``.

        PostgreSQL converts each row with its own offset, so buckets stay
        correct across DST changes. Any other dialect is the SQLite test
        backend, which has no zone database: every row is shifted by the
        zone's offset at call time, so buckets on the far side of a DST
        change are off by the DST delta.
        """
        if self.db.get_bind().dialect.name == "postgresql":
            return cast(func.timezone(tz, LoginAttempt.attempted_at), Date)
        # SQLite test backend only: uniform current offset
        offset = datetime.now(ZoneInfo(tz)).utcoffset() or timedelta(0)
        modifier = f"{int(offset.total_seconds())} seconds"
        return func.date(LoginAttempt.attempted_at, modifier)

    @translate_store_errors
    async def daily_statistics(
        self,
        days: int,
        tz: str = "UTC",
        now: datetime | None = None,
    ) -> list[DailyStatistic]:
        """
        Per-day totals for today and the ``days - 1`` preceding calendar days.

        Day boundaries follow ``tz``. Returns at most ``days`` buckets,
        ascending by date; days without attempts are omitted.
        """
        if days < 1:
            return []

        now = _now(now)
        zone = ZoneInfo(tz)
        first_day = now.astimezone(zone).date() - timedelta(days=days - 1)
        since = datetime.combine(first_day, datetime.min.time(), tzinfo=zone).astimezone(UTC)

        bucket = self._day_bucket(tz).label("day")
        successful = func.sum(case((LoginAttempt.success.is_(True), 1), else_=0))
        result = await self.db.execute(
            select(bucket, func.count().label("total"), successful.label("success"))
            .where(LoginAttempt.attempted_at >= since, LoginAttempt.attempted_at <= now)
            .group_by(bucket)
            .order_by(bucket)
        )

        stats = []
        for day, total, success in result.all():
            if isinstance(day, str):
                day = date.fromisoformat(day)
            success = int(success or 0)
            stats.append(DailyStatistic(date=day, total=total, success=success, failed=total - success))
        return stats

    @translate_store_errors
    async def totals(self, since: datetime) -> tuple[int, int]:
        """Return (total, successful) attempt counts since a point in time."""
        successful = func.sum(case((LoginAttempt.success.is_(True), 1), else_=0))
        result = await self.db.execute(
            select(func.count(), successful).select_from(LoginAttempt).where(
                LoginAttempt.attempted_at >= since
            )
        )
        total, success = result.one()
        return total or 0, int(success or 0)

    @translate_store_errors
    async def search(
        self,
        filters: AttemptFilter,
        page: int = 1,
        limit: int = 20,
        now: datetime | None = None,
    ) -> tuple[list[LoginAttempt], int]:
        """Filtered, paginated listing, newest first. Returns (rows, total)."""
        conditions = []
        if filters.success is not None:
            conditions.append(LoginAttempt.success.is_(filters.success))
        if filters.suspicious:
            conditions.append(LoginAttempt.is_suspicious.is_(True))
        if filters.email:
            pattern = f"%{filters.email.strip().lower()}%"
            conditions.append(LoginAttempt.email.ilike(pattern))
        if filters.ip_address:
            conditions.append(LoginAttempt.ip_address == filters.ip_address)
        if filters.days:
            conditions.append(LoginAttempt.attempted_at >= _now(now) - timedelta(days=filters.days))

        count_result = await self.db.execute(
            select(func.count()).select_from(LoginAttempt).where(*conditions)
        )
        total = count_result.scalar() or 0

        page = max(page, 1)
        result = await self.db.execute(
            select(LoginAttempt)
            .where(*conditions)
            .order_by(LoginAttempt.attempted_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    @translate_store_errors
    async def expire_older_than(self, retention_seconds: int, now: datetime | None = None) -> int:
        """Delete attempts older than the retention cutoff. Returns count deleted."""
        cutoff = _now(now) - timedelta(seconds=retention_seconds)
        result = await self.db.execute(
            delete(LoginAttempt)
            .where(LoginAttempt.attempted_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
