"""SIP header extraction: start-line classification plus selected header values."""

import re
from dataclasses import dataclass, field
from typing import Optional, Union

DEFAULT_SIP_HEADERS = ("Call-ID", "From", "To", "CSeq", "User-Agent")

# RFC 3261 compact header forms
COMPACT_FORMS = {
    "i": "call-id",
    "f": "from",
    "t": "to",
    "m": "contact",
    "v": "via",
    "c": "content-type",
    "l": "content-length",
    "k": "supported",
    "s": "subject",
    "e": "content-encoding",
}

USER_HEADERS = ("from", "to")

_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_REQUEST_LINE = re.compile(r"^([A-Za-z][A-Za-z0-9_.!%*+`'~-]*) +(\S+) +SIP/\d+\.\d+$")
_STATUS_LINE = re.compile(r"^SIP/\d+\.\d+ +(\d{3})(?: +(.*))?$")
_SIP_USER = re.compile(r"sips?:([^@\s]*)@", re.IGNORECASE)


@dataclass
class SipFields:
    """Values pulled out of one SIP message."""

    method: Optional[str] = None
    status: Optional[int] = None
    reason: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    users: dict[str, str] = field(default_factory=dict)

    @property
    def is_request(self) -> bool:
        return self.method is not None


def extract_sip(
    payload: Union[bytes, str],
    headers=DEFAULT_SIP_HEADERS,
) -> Optional[SipFields]:
    """Parse the start line and the requested headers of a SIP message.

    Header names are matched case-insensitively (compact forms included) and
    only the first occurrence of each is kept. Headers that are missing are
    simply left out.

    Args:
        payload: Raw message bytes or text.
        headers: Header names to extract, in the order they should appear.

    Returns:
        A ``SipFields`` instance, or None when the payload has no
        recognizable SIP request or status line.
    """
    if isinstance(payload, (bytes, bytearray)):
        text = bytes(payload).decode("utf-8", errors="replace")
    else:
        text = payload

    lines = _LINE_BREAK.split(text.lstrip("\r\n"))
    start_line = lines[0].strip()

    result = SipFields()
    request = _REQUEST_LINE.match(start_line)
    if request:
        result.method = request.group(1).upper()
    else:
        status = _STATUS_LINE.match(start_line)
        if not status:
            return None
        result.status = int(status.group(1))
        result.reason = status.group(2)

    wanted = {name.lower(): name for name in headers}
    current = None

    for line in lines[1:]:
        if not line:
            break  # end of the header block
        if line[0] in " \t":
            # folded continuation of the previous header
            if current is not None:
                result.headers[current] += " " + line.strip()
            continue

        name, sep, value = line.partition(":")
        current = None
        if not sep:
            continue

        key = name.strip().lower()
        key = COMPACT_FORMS.get(key, key)
        if key in wanted and wanted[key] not in result.headers:
            current = wanted[key]
            result.headers[current] = value.strip()

    for key in USER_HEADERS:
        name = wanted.get(key)
        if name is not None and name in result.headers:
            result.users[key] = sip_user(result.headers[name])

    return result


def sip_user(value: str) -> str:
    """Return the user part of a From/To header value.

    ``Bob <sip:bob@example.com>;tag=1`` gives ``bob``. A value without an
    ``@`` is returned whole, minus angle brackets.
    """
    cleaned = value.replace("<", "").replace(">", "").strip()
    if "@" not in cleaned:
        return cleaned

    match = _SIP_USER.search(cleaned)
    if match:
        return match.group(1)

    before_at = cleaned.split("@", 1)[0]
    return before_at.split()[-1] if before_at.split() else ""
