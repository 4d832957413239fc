"""HEP ingestion server: TCP and UDP listeners feeding one batch buffer."""

import logging
import socket
import threading
from enum import Enum

from src.batch_buffer import BatchBuffer
from src.config import Config
from src.converter import HepConverter
from src.sink import SinkError, create_sink
from src.stats import ServerStats

logger = logging.getLogger(__name__)


class BindError(Exception):
    """Raised when either listener cannot be bound."""


class ServerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"


class HepServer:
    """Receives HEP packets over TCP and UDP on the same host:port, converts
    each to line protocol, and flushes batches to the configured sink."""

    def __init__(self, config: Config, shutdown_event: threading.Event,
                 sink=None, converter=None):
        self._config = config
        self._shutdown = shutdown_event
        self._sink = sink if sink is not None else create_sink(config)
        self._converter = converter or HepConverter(config.sip_headers, config.debug)
        self.stats = ServerStats()

        self._state = ServerState.STOPPED
        self._state_lock = threading.Lock()
        self._buffer = None
        self._tcp_sock = None
        self._udp_sock = None
        self._threads: list[threading.Thread] = []
        self._connections: dict[socket.socket, threading.Thread] = {}
        self._conn_lock = threading.Lock()
        self._server_address = None

    @property
    def server_address(self) -> tuple:
        """Return (host, port) both listeners are bound to. Useful when port=0."""
        return self._server_address

    @property
    def state(self) -> ServerState:
        with self._state_lock:
            return self._state

    @property
    def connection_count(self) -> int:
        """Number of TCP clients currently connected."""
        with self._conn_lock:
            return len(self._connections)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Bind both listeners, start the flush worker and receive threads.

        Raises:
            BindError: If the TCP or UDP socket cannot be bound.
        """
        self._set_state(ServerState.STARTING)
        host, port = self._config.host, self._config.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET

        tcp_sock = udp_sock = None
        try:
            tcp_sock = socket.socket(family, socket.SOCK_STREAM)
            tcp_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            tcp_sock.bind((host, port))
            tcp_sock.listen(128)

            # port 0: reuse the port the OS picked for TCP
            bound_port = tcp_sock.getsockname()[1]
            udp_sock = socket.socket(family, socket.SOCK_DGRAM)
            udp_sock.setsockopt(
                socket.SOL_SOCKET, socket.SO_RCVBUF, 4 * 1024 * 1024
            )
            udp_sock.bind((host, bound_port))
        except OSError as exc:
            for sock in (tcp_sock, udp_sock):
                if sock is not None:
                    sock.close()
            self._set_state(ServerState.STOPPED)
            raise BindError(f"Failed to bind {host}:{port}: {exc}") from exc

        tcp_sock.settimeout(1.0)
        udp_sock.settimeout(1.0)
        self._tcp_sock = tcp_sock
        self._udp_sock = udp_sock
        self._server_address = tcp_sock.getsockname()[:2]

        self._buffer = BatchBuffer(
            batch_size=self._config.batch_size,
            flush_interval=self._config.flush_interval,
            on_flush=self._flush_batch,
            max_buffer_size=self._config.max_buffer_size,
            drain_timeout=self._config.drain_timeout,
            on_drop=lambda n: self.stats.increment("records_dropped", n),
        )

        self._set_state(ServerState.RUNNING)
        for target, name in ((self._serve_udp, "hep-udp"), (self._serve_tcp, "hep-tcp")):
            t = threading.Thread(target=target, name=name, daemon=True)
            t.start()
            self._threads.append(t)

        logger.info("HEP server listening on %s:%d (TCP/UDP)", *self._server_address)

    def stop(self) -> dict:
        """Drain: stop intake, flush the buffer once, close the listeners.

        Returns the final stats snapshot.
        """
        with self._state_lock:
            if self._state in (ServerState.STOPPED, ServerState.DRAINING):
                return self.snapshot()
            self._state = ServerState.DRAINING

        logger.info("Shutting down HEP server...")
        self._shutdown.set()

        if self._buffer is not None:
            self._buffer.stop()

        for sock in (self._tcp_sock, self._udp_sock):
            if sock is not None:
                try:
                    sock.close()
                except OSError:
                    pass

        for t in self._threads:
            t.join(timeout=self._config.drain_timeout)
        self._threads.clear()
        self._close_connections()
        self._sink.close()

        self._set_state(ServerState.STOPPED)
        snapshot = self.snapshot()
        logger.info("Server shutdown complete. Final statistics: %s", snapshot)
        return snapshot

    def snapshot(self) -> dict:
        pending = self._buffer.pending_count if self._buffer is not None else 0
        return self.stats.snapshot(buffer_size=pending)

    # ------------------------------------------------------------------
    # Packet handling
    # ------------------------------------------------------------------

    def handle_data(self, data: bytes, addr=None) -> bool:
        """Convert one packet and buffer its line. Never raises.

        Returns True if the line was buffered.
        """
        if self.state is not ServerState.RUNNING:
            return False

        self.stats.increment("packets_received")
        try:
            line = self._converter.convert_packet(data)
        except Exception as exc:
            self.stats.increment("conversion_errors")
            logger.debug("Error handling HEP data from %s: %s", addr, exc)
            return False

        if not line:
            self.stats.increment("conversion_errors")
            logger.debug("Empty line protocol record for packet from %s", addr)
            return False

        if not self._buffer.add(line):
            return False
        self.stats.increment("packets_converted")
        return True

    def _flush_batch(self, batch: list[str]):
        """Flush callback: join the batch and hand it to the sink."""
        try:
            self._sink.send("\n".join(batch))
        except SinkError as exc:
            self.stats.increment("send_errors")
            logger.error("Error flushing %d records: %s", len(batch), exc)
            return

        self.stats.increment("batches_sent")
        logger.debug("Flushed %d records", len(batch))

    # ------------------------------------------------------------------
    # Listener loops
    # ------------------------------------------------------------------

    def _serve_udp(self):
        while not self._shutdown.is_set():
            try:
                data, addr = self._udp_sock.recvfrom(self._config.recv_buffer_size)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._shutdown.is_set():
                    break
                logger.error("UDP receive failed: %s", exc)
                continue

            self.handle_data(data, addr)

    def _serve_tcp(self):
        while not self._shutdown.is_set():
            try:
                conn, addr = self._tcp_sock.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._shutdown.is_set():
                    break
                logger.error("TCP accept failed: %s", exc)
                # back off briefly, e.g. while out of file descriptors
                self._shutdown.wait(0.1)
                continue

            t = threading.Thread(
                target=self._handle_connection,
                args=(conn, addr),
                daemon=True,
            )
            with self._conn_lock:
                self._connections[conn] = t
            t.start()

    def _handle_connection(self, conn: socket.socket, addr: tuple):
        """Handle a single TCP connection; each read is one HEP packet."""
        logger.debug("Client connected: %s:%d", addr[0], addr[1])
        conn.settimeout(1.0)
        try:
            while not self._shutdown.is_set():
                try:
                    data = conn.recv(self._config.recv_buffer_size)
                except socket.timeout:
                    continue
                except OSError:
                    break

                if not data:
                    break

                self.handle_data(data, addr)
        finally:
            with self._conn_lock:
                self._connections.pop(conn, None)
            conn.close()
            logger.debug("Client disconnected: %s:%d", addr[0], addr[1])

    def _close_connections(self):
        """Close open client sockets and join their handler threads."""
        with self._conn_lock:
            connections = list(self._connections.items())
            self._connections.clear()

        for conn, _t in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()
        for _conn, t in connections:
            t.join(timeout=self._config.drain_timeout)

    def _set_state(self, state: ServerState):
        with self._state_lock:
            self._state = state
