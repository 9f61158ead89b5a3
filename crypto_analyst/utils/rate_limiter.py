"""Rate limiting utilities to respect API limits."""

import threading
import time
from collections import deque


class RateLimiter:
    """Sliding-window rate limiter, safe to share between threads."""

    def __init__(self, calls_per_minute: int = 30):
        self.calls_per_minute = calls_per_minute
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def wait(self, cancel_event: threading.Event | None = None) -> float:
        """Block until a request is allowed. Returns seconds slept.

        When *cancel_event* is given the sleep ends as soon as it is set;
        the caller is expected to check the event again afterwards.
        """
        if self.calls_per_minute <= 0:
            return 0.0
        with self._lock:
            now = time.time()
            # Remove timestamps older than 60 seconds
            while self._timestamps and now - self._timestamps[0] > 60:
                self._timestamps.popleft()
            sleep_time = 0.0
            if len(self._timestamps) >= self.calls_per_minute:
                sleep_time = max(0.0, 60 - (now - self._timestamps[0]))
                self._timestamps.popleft()
            self._timestamps.append(now + sleep_time)
        if sleep_time <= 0:
            return 0.0
        start = time.monotonic()
        if cancel_event is not None:
            cancel_event.wait(sleep_time)
        else:
            time.sleep(sleep_time)
        return time.monotonic() - start
