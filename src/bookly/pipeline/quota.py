"""Daily token budget tracking for the remote extraction model."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from bookly.models import QuotaStats

logger = logging.getLogger(__name__)

DAILY_TOKEN_LIMIT = 1_000_000
WARNING_THRESHOLD = 0.7
CRITICAL_THRESHOLD = 0.9
LOW_QUOTA_RATIO = 0.2

# Charged for a request that failed without reporting real usage.
FAILED_REQUEST_TOKENS = 100


class QuotaTracker:
    """
    In-memory counter of requests and tokens spent today.

    Counters reset lazily: every read or write first checks whether the
    calendar day of the last reset differs from today's. Once usage passes
    the critical threshold the tracker latches into the exhausted state for
    the rest of the day. State is not persisted; a new process starts with
    a fresh budget.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        daily_limit: int = DAILY_TOKEN_LIMIT,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            clock: Returns the current local time (injectable for tests)
            daily_limit: Token budget per calendar day
        """
        self._clock = clock
        self.daily_limit = daily_limit
        self._lock = threading.Lock()
        self._reset(clock())

    def _reset(self, now: datetime) -> None:
        self._requests_today = 0
        self._tokens_used_today = 0
        self._last_reset_time = now
        self._estimated_tokens_remaining = self.daily_limit
        self._quota_exhausted = False

    def _reset_if_new_day(self) -> None:
        now = self._clock()
        if now.date() != self._last_reset_time.date():
            self._reset(now)
            logger.info("Daily API quota reset")

    def track_usage(self, tokens: int = FAILED_REQUEST_TOKENS) -> None:
        """
        Record one request consuming ``tokens`` tokens.

        Args:
            tokens: Tokens consumed by the request
        """
        with self._lock:
            self._reset_if_new_day()

            self._requests_today += 1
            self._tokens_used_today += tokens
            self._estimated_tokens_remaining = max(
                0, self.daily_limit - self._tokens_used_today
            )

            usage = self._tokens_used_today / self.daily_limit
            if usage > CRITICAL_THRESHOLD:
                self._quota_exhausted = True
                logger.error(
                    "CRITICAL: API quota at %d%%! %s / %s tokens used. "
                    "Switching to fallback mode.",
                    round(usage * 100),
                    f"{self._tokens_used_today:,}",
                    f"{self.daily_limit:,}",
                )
            elif usage > WARNING_THRESHOLD:
                logger.warning(
                    "API quota warning: %d%% used (%s / %s tokens)",
                    round(usage * 100),
                    f"{self._tokens_used_today:,}",
                    f"{self.daily_limit:,}",
                )

    def is_exhausted(self) -> bool:
        """Return True once usage has crossed the critical threshold today."""
        with self._lock:
            self._reset_if_new_day()
            return self._quota_exhausted

    def is_low(self) -> bool:
        """Return True when less than 20% of the daily budget remains."""
        with self._lock:
            self._reset_if_new_day()
            return self._estimated_tokens_remaining < self.daily_limit * LOW_QUOTA_RATIO

    def get_stats(self) -> QuotaStats:
        """Return a snapshot of the current counters."""
        with self._lock:
            self._reset_if_new_day()
            return QuotaStats(
                requests_today=self._requests_today,
                tokens_used_today=self._tokens_used_today,
                last_reset_time=self._last_reset_time,
                estimated_tokens_remaining=self._estimated_tokens_remaining,
                quota_exhausted=self._quota_exhausted,
            )

    def time_until_reset(self) -> tuple[int, int, int]:
        """Return (hours, minutes, seconds) until 24h after the last reset."""
        with self._lock:
            self._reset_if_new_day()
            next_reset = self._last_reset_time + timedelta(days=1)
            remaining = max(0, int((next_reset - self._clock()).total_seconds()))
        hours, rest = divmod(remaining, 3600)
        minutes, seconds = divmod(rest, 60)
        return hours, minutes, seconds

    def format_stats(self) -> str:
        """Render a one-line usage summary for display."""
        stats = self.get_stats()
        percent = round(stats.tokens_used_today / self.daily_limit * 100)
        hours, minutes, _ = self.time_until_reset()
        return (
            f"API Quota: {percent}% used | "
            f"{stats.tokens_used_today:,} / {self.daily_limit:,} tokens | "
            f"Reset in {hours}h {minutes}m"
        )
