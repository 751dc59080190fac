import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class RateLimitExceededError(Exception):
    """Raised when a client exceeds its request budget."""

    def __init__(self, client_id: str, retry_after: int):
        self.client_id = client_id
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {client_id}, retry after {retry_after}s")


class SlidingWindowRateLimiter:
    """Per-client rate limiter with a sliding time window."""

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Requests allowed per window; 0 disables limiting
            window_seconds: Window length in seconds
            clock: Time source (injectable for tests)
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        # {client_id: deque([timestamp, ...])}
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    @property
    def tracked_clients(self) -> int:
        """Clients with requests inside the current window."""
        with self._lock:
            return len(self._requests)

    def is_allowed(self, client_id: str) -> bool:
        """Record a request for client_id and report whether it fits the window."""
        if not self.enabled:
            return True
        now = self._clock()
        with self._lock:
            window = self._prune(client_id, now)
            if len(window) < self.max_requests:
                window.append(now)
                self._requests[client_id] = window
                return True
        return False

    def get_remaining(self, client_id: str) -> int:
        if not self.enabled:
            return 0
        with self._lock:
            window = self._prune(client_id, self._clock())
            return max(0, self.max_requests - len(window))

    def retry_after(self, client_id: str) -> int:
        """Seconds until the oldest request in the window expires."""
        with self._lock:
            window = self._prune(client_id, self._clock())
            if not window:
                return 0
            return max(1, math.ceil(window[0] + self.window_seconds - self._clock()))

    def check(self, client_id: str) -> None:
        """Like is_allowed() but raises RateLimitExceededError when over budget."""
        if not self.is_allowed(client_id):
            raise RateLimitExceededError(client_id, self.retry_after(client_id))

    def _prune(self, client_id: str, now: float) -> Deque[float]:
        window = self._requests.get(client_id)
        if window is None:
            return deque()
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        if not window:
            del self._requests[client_id]
        return window

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()
