"""Record model and builder: capture header + payload -> tags, fields, timestamp."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.envelope import SIP_PAYLOAD_TYPE, CaptureHeader
from src.sip import DEFAULT_SIP_HEADERS, extract_sip

logger = logging.getLogger(__name__)

DEFAULT_TAG = ("source", "hep")


class FieldKind(Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    JSON = "json"


@dataclass(frozen=True)
class FieldValue:
    """A field value tagged with the kind that decides its serialization.

    A value of None marks the field as absent; the encoder drops it.
    """

    kind: FieldKind
    value: Any

    @classmethod
    def string(cls, value) -> "FieldValue":
        return cls(FieldKind.STRING, value)

    @classmethod
    def integer(cls, value) -> "FieldValue":
        return cls(FieldKind.INTEGER, value)

    @classmethod
    def float(cls, value) -> "FieldValue":
        return cls(FieldKind.FLOAT, value)

    @classmethod
    def boolean(cls, value) -> "FieldValue":
        return cls(FieldKind.BOOLEAN, value)

    @classmethod
    def json(cls, value) -> "FieldValue":
        return cls(FieldKind.JSON, value)


@dataclass
class Record:
    measurement: str
    tags: dict[str, str] = field(default_factory=dict)
    fields: dict[str, FieldValue] = field(default_factory=dict)
    timestamp_ns: int = 0


def hep_timestamp_ms(time_sec: int, time_usec: int) -> int:
    """Fold a seconds/microseconds capture time into integer milliseconds.

    S*1000 + floor(((100000 + U) / 1000) - 100)
    """
    return time_sec * 1000 + (100000 + time_usec) // 1000 - 100


def escape_newlines(value: str) -> str:
    """Replace CRLF, LF and CR with the two-character sequence ``\\r\\n``."""
    return value.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\\r\\n")


def build_tags(header: CaptureHeader) -> dict[str, str]:
    """Tag set from the header fields that are present, non-zero and non-empty."""
    candidates = (
        ("capture_id", header.capture_id),
        ("capture_pass", header.capture_pass),
        ("src_ip", header.src_ip),
        ("dst_ip", header.dst_ip),
        ("src_port", header.src_port),
        ("dst_port", header.dst_port),
        ("ip_protocol_id", header.ip_protocol),
        ("ip_protocol_family", header.ip_family),
        ("protocol_type", header.payload_type),
        ("vlan", header.vlan),
        ("vendor_module", header.vendor_module),
    )
    tags = {key: str(value) for key, value in candidates if value}
    if not tags:
        tags[DEFAULT_TAG[0]] = DEFAULT_TAG[1]
    return tags


def build_record(
    header: CaptureHeader,
    payload: bytes,
    payload_type: int,
    sip_headers=DEFAULT_SIP_HEADERS,
) -> Record:
    """Build the line-protocol record for one decoded packet.

    Args:
        header: Decoded capture header.
        payload: Captured payload bytes (may be empty).
        payload_type: HEP protocol type; selects the measurement and, for
            SIP (1), enables header extraction.
        sip_headers: SIP header names to extract into ``sip_*`` fields.
    """
    create_date = hep_timestamp_ms(header.time_sec, header.time_usec)

    fields: dict[str, FieldValue] = {
        "create_date": FieldValue.integer(create_date),
        "time_sec": FieldValue.integer(header.time_sec),
        "time_usec": FieldValue.integer(header.time_usec),
    }

    text = payload.decode("utf-8", errors="replace") if payload else ""

    if payload_type == SIP_PAYLOAD_TYPE and text:
        try:
            fields.update(_sip_fields(text, sip_headers))
        except Exception as exc:
            logger.debug("SIP extraction failed, keeping base fields: %s", exc)

    if payload:
        fields["payload"] = FieldValue.string(escape_newlines(text))
        fields["payload_size"] = FieldValue.integer(len(payload))

    return Record(
        measurement=f"hep_{payload_type}",
        tags=build_tags(header),
        fields=fields,
        timestamp_ns=create_date * 1_000_000,
    )


def _sip_fields(text: str, sip_headers) -> dict[str, FieldValue]:
    sip = extract_sip(text, sip_headers)
    if sip is None:
        return {}

    fields: dict[str, FieldValue] = {}
    if sip.is_request:
        fields["sip_method"] = FieldValue.string(sip.method)
        fields["method"] = FieldValue.string(sip.method)
    else:
        fields["sip_status"] = FieldValue.integer(sip.status)
        fields["method"] = FieldValue.string(str(sip.status))

    for name, value in sip.headers.items():
        key = name.lower()
        fields[f"sip_{key}"] = FieldValue.string(escape_newlines(value))
        if key in sip.users:
            fields[f"{key}_user"] = FieldValue.string(sip.users[key])
        if key == "call-id":
            fields["call_id"] = FieldValue.string(escape_newlines(value))

    return fields
