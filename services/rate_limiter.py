"""
Run-scoped throttling, dedup and cancellation.

The marketplace blocks clients that fire item requests back to back, so
every API call waits a random 2-5s first. One CheckRunContext is built
per upload and thrown away afterwards; nothing here is process-wide.
"""

import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from config import Settings, settings as default_settings
from exceptions import RunCancelledError

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Randomized delay before each outbound API call.

    The lock makes one limiter global across workers: concurrent callers
    queue up and each still waits its own interval.
    """

    def __init__(
        self,
        min_delay: float,
        max_delay: float,
        sleep: Callable[[float], None] = time.sleep,
        uniform: Callable[[float, float], float] = random.uniform,
    ):
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._uniform = uniform
        self._lock = threading.Lock()
        self.calls = 0

    def wait(self) -> float:
        """Block for a random interval inside the window. Returns the delay."""
        with self._lock:
            delay = self._uniform(self.min_delay, self.max_delay)
            self.calls += 1
            logger.debug("rate_limit_wait", delay=round(delay, 2), call=self.calls)
            self._sleep(delay)
            return delay


class DedupTracker:
    """Identifier keys already resolved in the current run. Write-once per key."""

    def __init__(self):
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def mark(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class CancellationToken:
    """Set once by the user; checked at row boundaries and before network calls."""

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.run_id)


@dataclass
class CheckRunContext:
    """Everything a single run shares between checks."""

    limiter: RateLimiter
    dedup: DedupTracker = field(default_factory=DedupTracker)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)

    @classmethod
    def create(
        cls,
        config: Optional[Settings] = None,
        run_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "CheckRunContext":
        """Build a fresh context from settings."""
        config = config or default_settings
        return cls(
            limiter=RateLimiter(
                config.rate_limit_min_seconds,
                config.rate_limit_max_seconds,
                sleep=sleep,
            ),
            dedup=DedupTracker(),
            cancel_token=CancellationToken(run_id),
        )
