"""HEP packet converter: decode envelope -> build record -> encode line."""

import logging

from src.envelope import decode
from src.line_protocol import encode
from src.record import build_record
from src.sip import DEFAULT_SIP_HEADERS

logger = logging.getLogger(__name__)


class HepConverter:
    """Turns raw HEP packets into line-protocol strings."""

    def __init__(self, sip_headers=DEFAULT_SIP_HEADERS, debug: bool = False):
        self._sip_headers = tuple(sip_headers)
        self.debug = debug

    @property
    def sip_headers(self) -> tuple:
        return self._sip_headers

    def convert_packet(self, data: bytes) -> str:
        """Convert one packet. Returns "" if the record could not be encoded.

        Raises:
            DecodeError: If the envelope is malformed.
        """
        header, payload = decode(data)
        if self.debug:
            logger.debug("Decoded HEP v%d packet: %s", header.version, header)

        record = build_record(header, payload, header.payload_type, self._sip_headers)
        return encode(record)

    def convert_packets(self, packets) -> str:
        """Convert several packets and join the non-empty lines with newlines."""
        lines = (self.convert_packet(packet) for packet in packets)
        return "\n".join(line for line in lines if line)
