"""
Suspicion classifier for failed login attempts.

Runs before a failed attempt is persisted and looks at the recent history
of the same email. Two rules are active:

- MULTIPLE_FAILED_ATTEMPTS: the attempt would be at least the
  FAILED_ATTEMPTS_THRESHOLD-th failure within the trailing window
- RAPID_ATTEMPTS: the previous attempt for the email was less than
  RAPID_ATTEMPT_INTERVAL_MS earlier

The remaining SuspiciousReason values are only set by manual re-flagging.
Concurrent failures for the same email may not see each other; the next
attempt observes both.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from loginwatch.core.config import Settings
from loginwatch.core.exceptions import ClassificationError, StoreUnavailableError
from loginwatch.models.login_attempt import SuspiciousReason, ensure_utc
from loginwatch.services.attempt_store import AttemptStore


@dataclass(frozen=True)
class AttemptHistory:
    """History of an email as seen from the moment of a new attempt."""

    prior_failures: int
    last_attempt_at: datetime | None


def evaluate(history: AttemptHistory, attempted_at: datetime, settings: Settings) -> set[SuspiciousReason]:
    """Apply the suspicion rules to an already-fetched history."""
    reasons: set[SuspiciousReason] = set()

    # The candidate itself counts towards the threshold
    if history.prior_failures + 1 >= settings.FAILED_ATTEMPTS_THRESHOLD:
        reasons.add(SuspiciousReason.MULTIPLE_FAILED_ATTEMPTS)

    if history.last_attempt_at is not None:
        gap = ensure_utc(attempted_at) - ensure_utc(history.last_attempt_at)
        gap_ms = gap.total_seconds() * 1000
        if 0 <= gap_ms < settings.RAPID_ATTEMPT_INTERVAL_MS:
            reasons.add(SuspiciousReason.RAPID_ATTEMPTS)

    return reasons


async def load_history(store: AttemptStore, email: str, attempted_at: datetime, settings: Settings) -> AttemptHistory:
    """Run the two bounded history queries needed by the rules."""
    try:
        prior_failures = await store.count_failures(
            email, settings.FAILED_ATTEMPTS_WINDOW_MINUTES, now=attempted_at
        )
        last_attempt = await store.most_recent_attempt(
            email, settings.RAPID_ATTEMPT_LOOKBACK_SECONDS, now=attempted_at
        )
    except (SQLAlchemyError, StoreUnavailableError) as e:
        raise ClassificationError(str(e)) from e

    return AttemptHistory(
        prior_failures=prior_failures,
        last_attempt_at=last_attempt.attempted_at if last_attempt else None,
    )


async def classify(
    store: AttemptStore,
    email: str,
    attempted_at: datetime,
    settings: Settings,
) -> set[SuspiciousReason]:
    """
    Compute suspicion tags for a new failed attempt.

    Raises:
        ClassificationError: if the history could not be read
    """
    history = await load_history(store, email, attempted_at, settings)
    return evaluate(history, attempted_at, settings)
