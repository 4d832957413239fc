"""Tests for src/sip.py: start-line parsing and header extraction."""

import pytest

from src.sip import DEFAULT_SIP_HEADERS, extract_sip, sip_user


class TestStartLine:
    def test_request_method(self, invite_payload):
        sip = extract_sip(invite_payload)
        assert sip.method == "INVITE"
        assert sip.status is None
        assert sip.is_request

    def test_response_status(self, ok_payload):
        sip = extract_sip(ok_payload)
        assert sip.method is None
        assert sip.status == 200
        assert sip.reason == "OK"
        assert not sip.is_request

    def test_response_without_reason(self):
        sip = extract_sip(b"SIP/2.0 486\r\n\r\n")
        assert sip.status == 486

    def test_accepts_text(self):
        sip = extract_sip("BYE sip:bob@example.com SIP/2.0\r\nCall-ID: x\r\n\r\n")
        assert sip.method == "BYE"

    @pytest.mark.parametrize("payload", [
        b"",
        b"hello world",
        b"GET / HTTP/1.1\r\nHost: example.com\r\n\r\n",
        b"\x00\x01\x02\x03",
        b"SIP/2.0 abc Bad\r\n\r\n",
    ])
    def test_not_sip_returns_none(self, payload):
        assert extract_sip(payload) is None


class TestHeaders:
    def test_default_headers(self, invite_payload):
        sip = extract_sip(invite_payload)
        assert sip.headers == {
            "Call-ID": "a84b4c76e66710@example.com",
            "From": "Bob <sip:bob@example.com>;tag=1928301774",
            "To": "Alice <sip:alice@example.com>",
            "CSeq": "314159 INVITE",
        }

    def test_user_agent_when_present(self):
        payload = b"OPTIONS sip:x@y SIP/2.0\r\nUser-Agent: Kamailio 5.7\r\n\r\n"
        assert extract_sip(payload).headers == {"User-Agent": "Kamailio 5.7"}

    def test_case_insensitive_names(self):
        payload = (
            b"INVITE sip:a@b SIP/2.0\r\n"
            b"CALL-ID: upper@host\r\n"
            b"from: <sip:carol@host>\r\n"
            b"cseq: 1 INVITE\r\n\r\n"
        )
        sip = extract_sip(payload)
        assert sip.headers["Call-ID"] == "upper@host"
        assert sip.headers["From"] == "<sip:carol@host>"
        assert sip.headers["CSeq"] == "1 INVITE"

    def test_compact_forms(self):
        payload = b"INVITE sip:a@b SIP/2.0\r\ni: compact@host\r\nf: <sip:dave@host>\r\nt: <sip:erin@host>\r\n\r\n"
        sip = extract_sip(payload)
        assert sip.headers["Call-ID"] == "compact@host"
        assert sip.users == {"from": "dave", "to": "erin"}

    def test_first_occurrence_wins(self):
        payload = b"INVITE sip:a@b SIP/2.0\r\nCall-ID: first\r\nCall-ID: second\r\n\r\n"
        assert extract_sip(payload).headers["Call-ID"] == "first"

    def test_missing_headers_omitted(self):
        sip = extract_sip(b"ACK sip:a@b SIP/2.0\r\nCSeq: 2 ACK\r\n\r\n")
        assert sip.headers == {"CSeq": "2 ACK"}
        assert sip.users == {}

    def test_stops_at_body(self):
        payload = b"INVITE sip:a@b SIP/2.0\r\nCSeq: 1 INVITE\r\n\r\nCall-ID: in-body\r\n"
        assert "Call-ID" not in extract_sip(payload).headers

    def test_folded_header(self):
        payload = b"INVITE sip:a@b SIP/2.0\r\nUser-Agent: Foo\r\n  Bar/1.0\r\n\r\n"
        assert extract_sip(payload).headers["User-Agent"] == "Foo Bar/1.0"

    def test_bare_lf_line_endings(self):
        payload = b"INVITE sip:a@b SIP/2.0\nCall-ID: lf@host\n\n"
        assert extract_sip(payload).headers["Call-ID"] == "lf@host"

    def test_custom_header_list(self, invite_payload):
        sip = extract_sip(invite_payload, headers=("Contact", "Content-Type"))
        assert sip.headers == {
            "Contact": "<sip:bob@192.168.1.1:5060>",
            "Content-Type": "application/sdp",
        }

    def test_default_header_list(self):
        assert DEFAULT_SIP_HEADERS == ("Call-ID", "From", "To", "CSeq", "User-Agent")


class TestUsers:
    def test_from_and_to_users(self, invite_payload):
        sip = extract_sip(invite_payload)
        assert sip.users == {"from": "bob", "to": "alice"}

    @pytest.mark.parametrize("value, expected", [
        ("Bob <sip:bob@example.com>;tag=1", "bob"),
        ("<sips:secure@example.com>", "secure"),
        ("sip:+15551234@gw.example.com", "+15551234"),
        ("<tel:+15551234>", "tel:+15551234"),
        ("Anonymous", "Anonymous"),
        ("plain@host", "plain"),
    ])
    def test_sip_user(self, value, expected):
        assert sip_user(value) == expected
