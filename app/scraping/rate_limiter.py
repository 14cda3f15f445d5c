"""
Per-host request throttle shared by lookup worker threads.
"""

from __future__ import annotations

import threading
import time
from urllib.parse import urlparse


class HostRateLimiter:
    """
    Enforces a minimum interval between requests to the same host.
    """

    def __init__(self, *, rate_limit_per_second: float) -> None:
        self._min_interval = 1.0 / max(0.1, rate_limit_per_second)
        self._last_request_by_host: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, url: str) -> None:
        """
        Sleep as needed so this request keeps the host under its rate.
        """

        parsed = urlparse(url)
        host = parsed.netloc.lower() or parsed.path.lower()
        if not host:
            return

        # The lock is held while sleeping so concurrent batches queue up
        # behind each other instead of bursting.
        with self._lock:
            now = time.monotonic()
            wait_seconds = self._min_interval - (now - self._last_request_by_host.get(host, 0.0))
            if wait_seconds > 0:
                time.sleep(wait_seconds)
            self._last_request_by_host[host] = time.monotonic()
