"""Batch sinks: HTTP line-protocol write endpoint, or files on disk."""

import logging
import os
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """Raised when a batch could not be delivered."""


class HTTPSink:
    """POSTs newline-joined line protocol to ``{url}/write?db={database}``."""

    def __init__(self, url: str, database: str, timeout: float = 10.0, session=None):
        self._write_url = f"{url.rstrip('/')}/write"
        self._database = database
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    @property
    def write_url(self) -> str:
        return f"{self._write_url}?db={self._database}"

    def send(self, payload: str):
        """Deliver one batch.

        Raises:
            SinkError: On a transport failure, a timeout, or a non-2xx
                response. The batch is not retried.
        """
        try:
            response = self._session.post(
                self._write_url,
                params={"db": self._database},
                data=payload.encode("utf-8"),
                headers={"Content-Type": "text/plain"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise SinkError(f"Write to {self.write_url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise SinkError(
                f"Write to {self.write_url} returned HTTP {response.status_code}: "
                f"{response.text[:200]}"
            )
        if response.status_code != 204:
            logger.warning("Sink returned unexpected status: %d", response.status_code)

    def close(self):
        self._session.close()


class FileSink:
    """Writes each batch to ``hep_<timestamp>.lp`` in an output directory."""

    def __init__(self, output_dir: str):
        self._output_dir = output_dir
        os.makedirs(self._output_dir, exist_ok=True)

    def send(self, payload: str):
        path = self._next_path()
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as exc:
            raise SinkError(f"File write to {path} failed: {exc}") from exc
        logger.debug("Wrote data to file: %s", path)

    def close(self):
        pass

    def _next_path(self) -> str:
        now = datetime.now(timezone.utc)
        stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        stamp = stamp.replace(":", "-").replace(".", "-")
        path = os.path.join(self._output_dir, f"hep_{stamp}.lp")

        # two flushes in the same millisecond get a counter suffix
        n = 1
        while os.path.exists(path):
            path = os.path.join(self._output_dir, f"hep_{stamp}-{n}.lp")
            n += 1
        return path


def create_sink(config):
    """Pick the file sink when writing to disk, otherwise the HTTP sink."""
    if config.write_to_file:
        return FileSink(config.output_dir)
    return HTTPSink(config.influx_url, config.influx_database, config.send_timeout)
