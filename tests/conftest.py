"""Shared pytest fixtures for the HEP server test suite."""

import pytest

from src.envelope import AF_INET, CaptureHeader

INVITE = (
    "INVITE sip:alice@example.com SIP/2.0\r\n"
    "Via: SIP/2.0/UDP 192.168.1.1:5060;branch=z9hG4bK776asdhds\r\n"
    "From: Bob <sip:bob@example.com>;tag=1928301774\r\n"
    "To: Alice <sip:alice@example.com>\r\n"
    "Call-ID: a84b4c76e66710@example.com\r\n"
    "CSeq: 314159 INVITE\r\n"
    "Contact: <sip:bob@192.168.1.1:5060>\r\n"
    "Content-Type: application/sdp\r\n"
    "Content-Length: 0\r\n\r\n"
).encode("utf-8")

OK_RESPONSE = (
    "SIP/2.0 200 OK\r\n"
    "Via: SIP/2.0/UDP 192.168.1.1:5060;branch=z9hG4bK776asdhds\r\n"
    "From: Bob <sip:bob@example.com>;tag=1928301774\r\n"
    "To: Alice <sip:alice@example.com>;tag=a6c85cf\r\n"
    "Call-ID: a84b4c76e66710@example.com\r\n"
    "CSeq: 314159 INVITE\r\n"
    "Content-Length: 0\r\n\r\n"
).encode("utf-8")


@pytest.fixture()
def invite_payload() -> bytes:
    return INVITE


@pytest.fixture()
def ok_payload() -> bytes:
    return OK_RESPONSE


@pytest.fixture()
def sip_header() -> CaptureHeader:
    """Capture header matching a SIP INVITE sent from 192.168.1.1."""
    return CaptureHeader(
        ip_family=AF_INET,
        ip_protocol=17,
        src_ip="192.168.1.1",
        dst_ip="192.168.1.2",
        src_port=5060,
        dst_port=5060,
        time_sec=1700000000,
        time_usec=123456,
        payload_type=1,
        capture_id=2001,
        capture_pass="myHep",
    )
