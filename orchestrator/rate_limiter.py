"""
Growth Coach — per-client request quota in front of the completion endpoint.
Fixed window per client: the first request opens a window, at most
max_requests fit in it, and the counter resets when the window expires.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger("coach.rate_limit")

UNKNOWN_CLIENT = "unknown-client"


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0  # seconds, advisory


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Owned by the web app and passed to handlers; one lock guards the window map."""

    def __init__(self, max_requests: int, window_seconds: float,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._next_sweep = clock() + window_seconds
        self._lock = threading.Lock()

    def check(self, client_id: str) -> RateLimitDecision:
        """Count one request for client_id and say whether it may proceed."""
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            window = self._windows.get(client_id)
            if window is None or now > window.reset_at:
                self._windows[client_id] = _Window(count=1, reset_at=now + self.window_seconds)
                return RateLimitDecision(allowed=True)

            if window.count >= self.max_requests:
                retry_after = max(1, math.ceil(window.reset_at - now))
                logger.warning(
                    f"Rate limit hit for {client_id}: {window.count}/{self.max_requests} "
                    f"— retry in {retry_after}s"
                )
                return RateLimitDecision(allowed=False, retry_after=retry_after)

            window.count += 1
            return RateLimitDecision(allowed=True)

    def reset(self):
        with self._lock:
            self._windows.clear()

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: float):
        # Caller holds the lock. An expired window counts the same as no window.
        expired = [cid for cid, w in self._windows.items() if now > w.reset_at]
        for cid in expired:
            del self._windows[cid]
        self._next_sweep = now + self.window_seconds
        if expired:
            logger.debug(f"Dropped {len(expired)} expired rate-limit windows")


def client_identity(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """Rate-limit key for a request: proxy headers first, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer or UNKNOWN_CLIENT
