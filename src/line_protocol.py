"""Line-protocol encoder.

Format: <measurement>,<tag>=<value>,... <field>=<value>,... <timestamp_ns>

Escaping:
  keys                  space, comma and '=' are backslash-escaped
  tag values            CR/LF become a literal \\r\\n, then space, comma,
                        '=' and '\\' are backslash-escaped
  string field values   double-quoted; CR/LF become a literal \\r\\n, then
                        '"' and '\\' are backslash-escaped
  float field values    NaN and infinities are dropped like absent values
"""

import json
import logging
import math
import re

from src.record import DEFAULT_TAG, FieldKind, FieldValue, Record, escape_newlines

logger = logging.getLogger(__name__)

_KEY_SPECIALS = re.compile(r"([ ,=])")
_TAG_VALUE_SPECIALS = re.compile(r"([ ,=\\])")
_STRING_SPECIALS = re.compile(r'(["\\])')


def escape_key(key: str) -> str:
    return _KEY_SPECIALS.sub(r"\\\1", key)


def escape_tag_value(value) -> str:
    if value is None:
        return ""
    return _TAG_VALUE_SPECIALS.sub(r"\\\1", escape_newlines(str(value)))


def escape_field_value(value) -> str:
    if value is None:
        return ""
    return _STRING_SPECIALS.sub(r"\\\1", escape_newlines(str(value)))


def format_field(value: FieldValue):
    """Serialize one field value, or return None when the field is absent."""
    if value.value is None:
        return None
    if value.kind is FieldKind.STRING:
        return f'"{escape_field_value(value.value)}"'
    if value.kind is FieldKind.INTEGER:
        return f"{int(value.value)}i"
    if value.kind is FieldKind.FLOAT:
        number = float(value.value)
        if not math.isfinite(number):
            return None
        return repr(number)
    if value.kind is FieldKind.BOOLEAN:
        return "true" if value.value else "false"
    # FieldKind.JSON
    return f'"{escape_field_value(json.dumps(value.value))}"'


def encode(record: Record) -> str:
    """Encode a record as one line of line protocol.

    Returns an empty string when the record is malformed (no measurement or
    no field left to write). The caller counts that as a conversion error.
    """
    try:
        if not record.measurement:
            return ""

        tags = record.tags or dict([DEFAULT_TAG])
        tag_set = ",".join(
            f"{escape_key(key)}={escape_tag_value(value)}" for key, value in tags.items()
        )

        field_parts = []
        for key, value in record.fields.items():
            formatted = format_field(value)
            if formatted is not None:
                field_parts.append(f"{escape_key(key)}={formatted}")
        if not field_parts:
            return ""

        return (
            f"{record.measurement},{tag_set} "
            f"{','.join(field_parts)} {int(record.timestamp_ns)}"
        )
    except (TypeError, ValueError, AttributeError) as exc:
        logger.debug("Could not encode record %r: %s", record, exc)
        return ""
