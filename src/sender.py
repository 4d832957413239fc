"""HEP sender: builds sample SIP packets and ships them over UDP or TCP."""

import random
import socket
import time
import logging
import uuid

from src.envelope import AF_INET, SIP_PAYLOAD_TYPE, CaptureHeader, encode

logger = logging.getLogger(__name__)

IPPROTO_UDP = 17


def sample_invite(call_id: str = None) -> bytes:
    """Return a minimal SIP INVITE."""
    call_id = call_id or f"{uuid.uuid4().hex[:14]}@example.com"
    return (
        "INVITE sip:alice@example.com SIP/2.0\r\n"
        "Via: SIP/2.0/UDP 192.168.1.1:5060;branch=z9hG4bK776asdhds\r\n"
        "From: Bob <sip:bob@example.com>;tag=1928301774\r\n"
        "To: Alice <sip:alice@example.com>\r\n"
        f"Call-ID: {call_id}\r\n"
        "CSeq: 314159 INVITE\r\n"
        "Contact: <sip:bob@192.168.1.1:5060>\r\n"
        "User-Agent: hep-sender\r\n"
        "Content-Type: application/sdp\r\n"
        "Content-Length: 0\r\n\r\n"
    ).encode("utf-8")


def build_sample_packet(capture_id: int = 2001, capture_pass: str = "myHep",
                        payload: bytes = None) -> bytes:
    """Encapsulate a SIP payload in a HEP v3 packet stamped with the current time."""
    now = time.time()
    seconds = int(now)
    header = CaptureHeader(
        ip_family=AF_INET,
        ip_protocol=IPPROTO_UDP,
        src_ip="192.168.1.1",
        dst_ip="192.168.1.2",
        src_port=5060,
        dst_port=5060,
        time_sec=seconds,
        time_usec=int((now - seconds) * 1_000_000),
        payload_type=SIP_PAYLOAD_TYPE,
        capture_id=capture_id,
        capture_pass=capture_pass,
    )
    return encode(header, payload if payload is not None else sample_invite())


class HepSender:
    """Sends HEP packets to a collector with configurable retry logic."""

    def __init__(self, target_host: str, target_port: int, transport: str = "udp",
                 max_retries: int = 3):
        self._target = (target_host, target_port)
        self._transport = transport
        self._max_retries = max_retries
        self._sock = None

    def send(self, packet: bytes) -> bool:
        """Send one packet, reconnecting between attempts.

        Returns False once ``max_retries`` retries have also failed.
        """
        attempts = self._max_retries + 1
        attempt = 0
        while True:
            try:
                self._send_once(packet)
                return True
            except OSError as exc:
                # a failed TCP stream is unusable; start the next try on a fresh socket
                self._reset()
                attempt += 1
                if attempt >= attempts:
                    logger.error("Dropping packet for %s:%d after %d attempts: %s",
                                 *self._target, attempts, exc)
                    return False
                delay = self._backoff_delay(attempt - 1)
                logger.warning("Send to %s:%d failed (%s), retry %d/%d in %.2fs",
                               *self._target, exc, attempt, self._max_retries, delay)
                time.sleep(delay)

    def _send_once(self, packet: bytes):
        if self._transport == "tcp":
            if self._sock is None:
                self._sock = socket.create_connection(self._target, timeout=5.0)
            self._sock.sendall(packet)
        else:
            if self._sock is None:
                self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._sock.sendto(packet, self._target)

    def _reset(self):
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    @staticmethod
    def _backoff_delay(attempt: int) -> float:
        """Delay before retry ``attempt + 1``: 0.1s doubling up to 2.0s, +/-20% jitter."""
        return min(0.1 * 2 ** attempt, 2.0) * random.uniform(0.8, 1.2)

    def close(self):
        """Close the underlying socket."""
        self._reset()
