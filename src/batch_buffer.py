"""Batch buffer: collects encoded lines and flushes on size, time, or cap."""

import logging
import threading
import time
from collections import deque

logger = logging.getLogger(__name__)


class BatchBuffer:
    """Thread-safe buffer that batches line-protocol records.

    A batch is detached from the live buffer when it reaches ``batch_size``
    (or the ``max_buffer_size`` hard cap), or when the worker wakes up and
    at least ``flush_interval`` seconds have passed since the last flush.
    Detached batches are handed to ``on_flush`` by a single worker thread,
    one at a time and in capture order, so producers never wait on sink I/O.

    Once ``stop()`` is called the buffer is draining: ``add()`` rejects new
    lines, the remainder is flushed once, and the worker exits.
    """

    def __init__(
        self,
        batch_size: int,
        flush_interval: float,
        on_flush,
        max_buffer_size: int = 10000,
        drain_timeout: float = 5.0,
        on_drop=None,
    ):
        self._batch_size = batch_size
        self._flush_interval = flush_interval
        self._max_buffer_size = max_buffer_size
        self._drain_timeout = drain_timeout
        self._on_flush = on_flush
        self._on_drop = on_drop

        self._buffer: list[str] = []
        self._pending: deque[list[str]] = deque()
        self._pending_lines = 0
        self._flushing = False
        self._draining = False
        self._stopping = False
        self._cond = threading.Condition(threading.Lock())
        self._last_flush = time.monotonic()

        self._worker = threading.Thread(target=self._run, name="batch-flusher", daemon=True)
        self._worker.start()

    # Public API

    def add(self, line: str) -> bool:
        """Append a line. Returns False if the buffer is draining."""
        with self._cond:
            if self._draining:
                return False
            self._buffer.append(line)
            if len(self._buffer) >= min(self._batch_size, self._max_buffer_size):
                self._detach_locked()
        return True

    def flush(self):
        """Detach whatever is buffered now, regardless of the thresholds."""
        with self._cond:
            if self._buffer:
                self._detach_locked()

    def wait_idle(self, timeout: float = None) -> bool:
        """Block until no batch is queued or being flushed."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not self._pending and not self._flushing, timeout
            )

    def stop(self) -> bool:
        """Stop intake, flush the remainder once, and wait for the worker.

        Returns True if the drain finished within ``drain_timeout``.
        """
        with self._cond:
            self._draining = True
            if self._buffer:
                self._detach_locked()
            self._stopping = True
            self._cond.notify_all()

        self._worker.join(timeout=self._drain_timeout)
        if self._worker.is_alive():
            logger.warning(
                "Drain timed out after %.1fs with %d batch(es) still queued",
                self._drain_timeout,
                len(self._pending),
            )
            return False
        return True

    @property
    def pending_count(self) -> int:
        """Number of lines in the live buffer, not yet detached."""
        with self._cond:
            return len(self._buffer)

    @property
    def queued_count(self) -> int:
        """Number of lines detached but not yet handed to on_flush."""
        with self._cond:
            return self._pending_lines

    @property
    def draining(self) -> bool:
        with self._cond:
            return self._draining

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @batch_size.setter
    def batch_size(self, value: int):
        with self._cond:
            self._batch_size = value
            if self._buffer and len(self._buffer) >= value:
                self._detach_locked()

    @property
    def flush_interval(self) -> float:
        return self._flush_interval

    @flush_interval.setter
    def flush_interval(self, value: float):
        with self._cond:
            self._flush_interval = value
            self._cond.notify_all()

    # Internal helpers

    def _detach_locked(self):
        """Move the live buffer onto the flush queue. Caller holds the lock."""
        batch = self._buffer
        self._buffer = []
        self._last_flush = time.monotonic()
        self._pending.append(batch)
        self._pending_lines += len(batch)

        # Hard cap on everything held in memory: drop the oldest queued batches.
        while self._pending_lines > self._max_buffer_size and len(self._pending) > 1:
            dropped = self._pending.popleft()
            self._pending_lines -= len(dropped)
            logger.warning(
                "Buffer cap of %d reached, dropping oldest queued batch of %d records",
                self._max_buffer_size,
                len(dropped),
            )
            if self._on_drop is not None:
                self._on_drop(len(dropped))

        self._cond.notify_all()

    def _tick(self) -> float:
        return max(0.01, min(self._flush_interval, 1.0))

    def _run(self):
        """Worker loop: wait for queued batches or the flush interval."""
        while True:
            with self._cond:
                if not self._pending and not self._stopping:
                    self._cond.wait(timeout=self._tick())

                if (
                    not self._pending
                    and not self._draining
                    and self._buffer
                    and time.monotonic() - self._last_flush >= self._flush_interval
                ):
                    self._detach_locked()

                if not self._pending:
                    if self._stopping:
                        self._cond.notify_all()
                        return
                    continue

                batch = self._pending.popleft()
                self._pending_lines -= len(batch)
                self._flushing = True

            try:
                self._safe_flush(batch)
            finally:
                with self._cond:
                    self._flushing = False
                    self._cond.notify_all()

    def _safe_flush(self, batch: list[str]):
        """Invoke the on_flush callback so that a failing callback never
        crashes the worker."""
        try:
            self._on_flush(batch)
            logger.debug("Flushed batch of %d records", len(batch))
        except Exception:
            logger.exception("on_flush callback failed for batch of %d records", len(batch))
