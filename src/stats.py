"""Thread-safe server counters."""

import threading
import time
from datetime import datetime, timezone

COUNTERS = (
    "packets_received",
    "packets_converted",
    "batches_sent",
    "conversion_errors",
    "send_errors",
    "records_dropped",
)


class ServerStats:
    def __init__(self):
        self._lock = threading.Lock()
        self._counts: dict[str, int] = dict.fromkeys(COUNTERS, 0)
        self._start_time = time.monotonic()

    def increment(self, counter: str, amount: int = 1):
        """Bump a named counter. Unknown names raise KeyError."""
        with self._lock:
            if counter not in self._counts:
                raise KeyError(f"Unknown counter: {counter}")
            self._counts[counter] += amount

    def get(self, counter: str) -> int:
        with self._lock:
            return self._counts[counter]

    def snapshot(self, buffer_size: int = 0) -> dict:
        """Return a point-in-time snapshot of all counters."""
        with self._lock:
            counts = dict(self._counts)
            elapsed = time.monotonic() - self._start_time

        counts["buffer_size"] = buffer_size
        counts["uptime_seconds"] = round(elapsed, 2)
        counts["timestamp"] = datetime.now(timezone.utc).isoformat()
        return counts
