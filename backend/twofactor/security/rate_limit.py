"""
Rate limiting for 2FA code checks.
Prevents brute-forcing the 10^6 code space using exponential backoff.
"""
from threading import Lock

from twofactor.core.clock import Clock, SystemClock
from twofactor.core.config import settings


class RateLimiter:
    """
    Simple in-memory rate limiter with exponential backoff.
    Tracks failed attempts per key (principal id + operation).
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 2.0,
        max_delay: float = 300.0,
        clock: Clock | None = None,
    ):
        self._attempts: dict[str, dict] = {}
        self._lock = Lock()
        self.clock = clock or SystemClock()

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _required_delay(self, count: int) -> float:
        return min(
            self.base_delay * (2 ** (count - self.max_attempts)),
            self.max_delay,
        )

    def is_allowed(self, key: str) -> bool:
        """
        Check if an attempt is allowed for this key.
        Returns False while a backoff period is active.
        """
        with self._lock:
            entry = self._attempts.get(key)
            if entry is None:
                return True
            now = self.clock.now()

            # Forget keys that have been quiet for a long time
            if now - entry["last_time"] > self.max_delay * 2:
                del self._attempts[key]
                return True

            if entry["count"] >= self.max_attempts:
                return now - entry["last_time"] >= self._required_delay(entry["count"])

            return True

    def record_attempt(self, key: str, success: bool = False) -> None:
        """
        Record an attempt (failed by default).
        Reset counter on success.
        """
        with self._lock:
            if success:
                self._attempts.pop(key, None)
                return

            entry = self._attempts.setdefault(key, {"count": 0, "last_time": 0.0})
            entry["last_time"] = self.clock.now()
            entry["count"] += 1

    def get_retry_after(self, key: str) -> float:
        """
        Get seconds to wait before next attempt.
        Returns 0 if attempt is allowed.
        """
        with self._lock:
            entry = self._attempts.get(key)

            if entry is None or entry["count"] < self.max_attempts:
                return 0.0

            time_since_last = self.clock.now() - entry["last_time"]
            return max(0.0, self._required_delay(entry["count"]) - time_since_last)

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()


# Global instance
_limiter = RateLimiter(
    max_attempts=settings.verify_max_attempts,
    base_delay=settings.verify_base_delay,
    max_delay=settings.verify_max_delay,
)


def get_rate_limiter() -> RateLimiter:
    return _limiter


def is_rate_limited(key: str) -> bool:
    """Check if a request should be rate limited."""
    return not _limiter.is_allowed(key)


def record_auth_attempt(key: str, success: bool = False) -> None:
    """Record a code check."""
    _limiter.record_attempt(key, success=success)


def get_rate_limit_delay(key: str) -> float:
    """Get time to wait in seconds."""
    return _limiter.get_retry_after(key)
