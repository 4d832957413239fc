"""HEP envelope codec: legacy v1/v2 fixed headers and the v3 chunked format.

v3 layout:
  "HEP3" magic (4 bytes) + total length (uint16, includes the 6-byte header),
  followed by a sequence of chunks:
    vendor id (uint16) | type id (uint16) | length (uint16) | value
  The chunk length includes its own 6-byte header.

v1/v2 layout:
  version | header length | ip family | ip protocol (1 byte each)
  source port | destination port (uint16 each)
  source address | destination address (4 or 16 bytes each)
  v2 only: seconds (uint32) | microseconds (uint32) | capture id (uint16) | padding
  The captured payload follows the fixed header directly.

All multi-byte integers are big-endian.
"""

import ipaddress
import struct
import time
import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

HEP3_MAGIC = b"HEP3"
HEP3_HEADER_FORMAT = "!4sH"
HEP3_HEADER_SIZE = 6
CHUNK_HEADER_FORMAT = "!HHH"  # vendor id, type id, length
CHUNK_HEADER_SIZE = 6
MAX_PACKET_SIZE = 0xFFFF

LEGACY_HEADER_FORMAT = "!BBBBHH"  # version, header length, family, protocol, ports
LEGACY_HEADER_SIZE = 8
LEGACY_TIME_FORMAT = "!IIHH"  # seconds, microseconds, capture id, padding
LEGACY_TIME_SIZE = 12

AF_INET = 2
AF_INET6 = 10

SIP_PAYLOAD_TYPE = 1


class ChunkType(IntEnum):
    IP_FAMILY = 0x01
    IP_PROTOCOL = 0x02
    IPV4_SRC = 0x03
    IPV4_DST = 0x04
    IPV6_SRC = 0x05
    IPV6_DST = 0x06
    SRC_PORT = 0x07
    DST_PORT = 0x08
    TIME_SEC = 0x09
    TIME_USEC = 0x0A
    PROTOCOL_TYPE = 0x0B
    CAPTURE_ID = 0x0C
    KEEP_ALIVE = 0x0D
    AUTH_KEY = 0x0E
    PAYLOAD = 0x0F
    COMPRESSED_PAYLOAD = 0x10
    CORRELATION_ID = 0x11
    VLAN = 0x12
    NODE_NAME = 0x13


# HEP vendor registry
VENDORS: dict[int, str] = {
    0x0001: "freeswitch",
    0x0002: "kamailio",
    0x0003: "opensips",
    0x0004: "asterisk",
    0x0005: "homer",
    0x0006: "sipxecs",
    0x0007: "yeti",
    0x0008: "genesys",
}

_UINT_FORMATS = {1: "!B", 2: "!H", 4: "!I", 8: "!Q"}

_UINT_CHUNKS: dict[int, str] = {
    ChunkType.IP_FAMILY: "ip_family",
    ChunkType.IP_PROTOCOL: "ip_protocol",
    ChunkType.SRC_PORT: "src_port",
    ChunkType.DST_PORT: "dst_port",
    ChunkType.TIME_SEC: "time_sec",
    ChunkType.TIME_USEC: "time_usec",
    ChunkType.PROTOCOL_TYPE: "payload_type",
    ChunkType.CAPTURE_ID: "capture_id",
    ChunkType.VLAN: "vlan",
}

_STRING_CHUNKS: dict[int, str] = {
    ChunkType.AUTH_KEY: "capture_pass",
    ChunkType.CORRELATION_ID: "correlation_id",
    ChunkType.NODE_NAME: "node_name",
}

_ADDRESS_CHUNKS: dict[int, tuple[str, int]] = {
    ChunkType.IPV4_SRC: ("src_ip", 4),
    ChunkType.IPV4_DST: ("dst_ip", 4),
    ChunkType.IPV6_SRC: ("src_ip", 16),
    ChunkType.IPV6_DST: ("dst_ip", 16),
}


class DecodeError(ValueError):
    """Raised when bytes cannot be decoded as a HEP envelope."""


@dataclass(frozen=True)
class CaptureHeader:
    """Capture metadata carried by a HEP envelope (the "rcinfo")."""

    version: int = 3
    ip_family: int = 0
    ip_protocol: int = 0
    src_ip: str = ""
    dst_ip: str = ""
    src_port: int = 0
    dst_port: int = 0
    time_sec: int = 0
    time_usec: int = 0
    payload_type: int = 0
    capture_id: int = 0
    capture_pass: Optional[str] = None
    vlan: Optional[int] = None
    vendor_module: Optional[str] = None
    correlation_id: Optional[str] = None
    node_name: Optional[str] = None


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------


def decode(data: bytes) -> tuple[CaptureHeader, bytes]:
    """Decode a raw HEP packet into ``(CaptureHeader, payload)``.

    Args:
        data: One complete HEP packet (a UDP datagram or a TCP read).

    Returns:
        The decoded header and a copy of the captured payload.

    Raises:
        DecodeError: If the packet is too short, carries an unknown version
            marker, or declares a length past the end of the input.
    """
    data = bytes(data)
    if len(data) < HEP3_HEADER_SIZE:
        raise DecodeError(
            f"Packet too short: {len(data)} bytes, need at least {HEP3_HEADER_SIZE}"
        )

    if data[:4] == HEP3_MAGIC:
        return _decode_v3(data)
    if data[0] in (1, 2):
        return _decode_legacy(data)

    raise DecodeError(f"Unrecognized HEP version marker: {data[:4]!r}")


def _decode_v3(data: bytes) -> tuple[CaptureHeader, bytes]:
    _magic, total_length = struct.unpack_from(HEP3_HEADER_FORMAT, data)
    if total_length < HEP3_HEADER_SIZE:
        raise DecodeError(f"Declared length {total_length} is smaller than the header")
    if total_length > len(data):
        raise DecodeError(
            f"Declared length {total_length} exceeds packet size {len(data)}"
        )

    values: dict = {"version": 3}
    payload = b""
    vendor_id = 0
    offset = HEP3_HEADER_SIZE

    while offset < total_length:
        if total_length - offset < CHUNK_HEADER_SIZE:
            raise DecodeError(f"Truncated chunk header at offset {offset}")

        vendor, chunk_type, length = struct.unpack_from(CHUNK_HEADER_FORMAT, data, offset)
        if length < CHUNK_HEADER_SIZE:
            raise DecodeError(f"Chunk 0x{chunk_type:04x} declares invalid length {length}")
        end = offset + length
        if end > total_length:
            raise DecodeError(
                f"Chunk 0x{chunk_type:04x} at offset {offset} declares {length} bytes, "
                f"only {total_length - offset} remain"
            )

        value = data[offset + CHUNK_HEADER_SIZE:end]
        offset = end

        if vendor and not vendor_id:
            vendor_id = vendor

        if chunk_type in _UINT_CHUNKS:
            values[_UINT_CHUNKS[chunk_type]] = _decode_uint(chunk_type, value)
        elif chunk_type in _STRING_CHUNKS:
            values[_STRING_CHUNKS[chunk_type]] = _decode_string(value)
        elif chunk_type in _ADDRESS_CHUNKS:
            name, size = _ADDRESS_CHUNKS[chunk_type]
            values[name] = _decode_address(chunk_type, value, size)
        elif chunk_type == ChunkType.PAYLOAD:
            payload = value
        elif chunk_type == ChunkType.COMPRESSED_PAYLOAD:
            payload = _inflate(value)
        # keep-alive and unknown chunk ids are skipped

    if vendor_id:
        values["vendor_module"] = VENDORS.get(vendor_id, f"vendor_{vendor_id}")

    if "time_sec" not in values:
        values["time_sec"], values["time_usec"] = _now()
    _check_usec(values.get("time_usec", 0))

    return CaptureHeader(**values), payload


def _decode_legacy(data: bytes) -> tuple[CaptureHeader, bytes]:
    if len(data) < LEGACY_HEADER_SIZE:
        raise DecodeError(f"Packet too short for HEP v{data[0]} header")

    version, header_length, family, protocol, src_port, dst_port = struct.unpack_from(
        LEGACY_HEADER_FORMAT, data
    )
    if family == AF_INET:
        addr_size = 4
    elif family == AF_INET6:
        addr_size = 16
    else:
        raise DecodeError(f"Unsupported IP family {family} in HEP v{version} header")

    expected = LEGACY_HEADER_SIZE + 2 * addr_size
    if version == 2:
        expected += LEGACY_TIME_SIZE
    if header_length != expected:
        raise DecodeError(
            f"HEP v{version} header length {header_length} does not match "
            f"expected {expected}"
        )
    if len(data) < expected:
        raise DecodeError(
            f"Packet too short: {len(data)} bytes, HEP v{version} header needs {expected}"
        )

    offset = LEGACY_HEADER_SIZE
    src_ip = str(ipaddress.ip_address(data[offset:offset + addr_size]))
    offset += addr_size
    dst_ip = str(ipaddress.ip_address(data[offset:offset + addr_size]))
    offset += addr_size

    if version == 2:
        time_sec, time_usec, capture_id, _pad = struct.unpack_from(
            LEGACY_TIME_FORMAT, data, offset
        )
        _check_usec(time_usec)
    else:
        time_sec, time_usec = _now()
        capture_id = 0

    header = CaptureHeader(
        version=version,
        ip_family=family,
        ip_protocol=protocol,
        src_ip=src_ip,
        dst_ip=dst_ip,
        src_port=src_port,
        dst_port=dst_port,
        time_sec=time_sec,
        time_usec=time_usec,
        payload_type=SIP_PAYLOAD_TYPE,
        capture_id=capture_id,
    )
    return header, data[expected:]


def _decode_uint(chunk_type: int, value: bytes) -> int:
    fmt = _UINT_FORMATS.get(len(value))
    if fmt is None:
        raise DecodeError(
            f"Chunk 0x{chunk_type:04x} has unsupported integer size {len(value)}"
        )
    return struct.unpack(fmt, value)[0]


def _decode_string(value: bytes) -> str:
    return value.rstrip(b"\x00").decode("utf-8", errors="replace")


def _decode_address(chunk_type: int, value: bytes, size: int) -> str:
    if len(value) != size:
        raise DecodeError(
            f"Chunk 0x{chunk_type:04x} expects a {size}-byte address, got {len(value)}"
        )
    return str(ipaddress.ip_address(value))


def _inflate(value: bytes) -> bytes:
    # wbits | 32 auto-detects zlib and gzip headers
    try:
        return zlib.decompress(value, zlib.MAX_WBITS | 32)
    except zlib.error as exc:
        raise DecodeError(f"Compressed payload could not be inflated: {exc}") from exc


def _check_usec(time_usec: int):
    if time_usec >= 1_000_000:
        raise DecodeError(f"Microsecond timestamp out of range: {time_usec}")


def _now() -> tuple[int, int]:
    now = time.time()
    seconds = int(now)
    return seconds, int((now - seconds) * 1_000_000)


# ------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------


def encode(header: CaptureHeader, payload: bytes = b"") -> bytes:
    """Build a HEP v3 packet from a header and payload.

    Optional header fields are emitted only when set. When
    ``vendor_module`` names a vendor, every chunk carries its vendor id.

    Raises:
        ValueError: If the vendor is unknown or the packet would exceed
            the 16-bit length field.
    """
    vendor = _vendor_id(header.vendor_module)
    chunks: list[bytes] = []

    def add(chunk_type: int, value: bytes):
        if CHUNK_HEADER_SIZE + len(value) > MAX_PACKET_SIZE:
            raise ValueError(f"Chunk 0x{chunk_type:04x} value of {len(value)} bytes is too large")
        chunks.append(
            struct.pack(CHUNK_HEADER_FORMAT, vendor, chunk_type, CHUNK_HEADER_SIZE + len(value))
            + value
        )

    add(ChunkType.IP_FAMILY, struct.pack("!B", header.ip_family))
    add(ChunkType.IP_PROTOCOL, struct.pack("!B", header.ip_protocol))
    for name, v4_type, v6_type in (
        ("src_ip", ChunkType.IPV4_SRC, ChunkType.IPV6_SRC),
        ("dst_ip", ChunkType.IPV4_DST, ChunkType.IPV6_DST),
    ):
        address = getattr(header, name)
        if address:
            ip = ipaddress.ip_address(address)
            add(v4_type if ip.version == 4 else v6_type, ip.packed)
    add(ChunkType.SRC_PORT, struct.pack("!H", header.src_port))
    add(ChunkType.DST_PORT, struct.pack("!H", header.dst_port))
    add(ChunkType.TIME_SEC, struct.pack("!I", header.time_sec))
    add(ChunkType.TIME_USEC, struct.pack("!I", header.time_usec))
    add(ChunkType.PROTOCOL_TYPE, struct.pack("!B", header.payload_type))
    add(ChunkType.CAPTURE_ID, struct.pack("!I", header.capture_id))
    if header.capture_pass is not None:
        add(ChunkType.AUTH_KEY, header.capture_pass.encode("utf-8"))
    if header.correlation_id is not None:
        add(ChunkType.CORRELATION_ID, header.correlation_id.encode("utf-8"))
    if header.vlan is not None:
        add(ChunkType.VLAN, struct.pack("!H", header.vlan))
    if header.node_name is not None:
        add(ChunkType.NODE_NAME, header.node_name.encode("utf-8"))
    if payload:
        add(ChunkType.PAYLOAD, bytes(payload))

    body = b"".join(chunks)
    total_length = HEP3_HEADER_SIZE + len(body)
    if total_length > MAX_PACKET_SIZE:
        raise ValueError(f"HEP packet of {total_length} bytes exceeds {MAX_PACKET_SIZE}")
    return struct.pack(HEP3_HEADER_FORMAT, HEP3_MAGIC, total_length) + body


def _vendor_id(vendor_module: Optional[str]) -> int:
    if not vendor_module:
        return 0
    for vendor_id, name in VENDORS.items():
        if name == vendor_module:
            return vendor_id
    if vendor_module.startswith("vendor_") and vendor_module[7:].isdigit():
        return int(vendor_module[7:])
    raise ValueError(f"Unknown vendor module: {vendor_module}")
