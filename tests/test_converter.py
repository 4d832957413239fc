"""End-to-end conversion tests: raw HEP packet -> line protocol."""

from dataclasses import replace

import pytest

from src.converter import HepConverter
from src.envelope import DecodeError, encode


class TestSipPacket:
    def test_invite_line(self, sip_header, invite_payload):
        line = HepConverter().convert_packet(encode(sip_header, invite_payload))

        assert line.startswith("hep_1,capture_id=2001,")
        assert 'sip_method="INVITE"' in line
        assert 'sip_call-id="a84b4c76e66710@example.com"' in line
        assert f"payload_size={len(invite_payload)}i" in line
        assert line.endswith(" 1700000000123000000")

    def test_response_line(self, sip_header, ok_payload):
        line = HepConverter().convert_packet(encode(sip_header, ok_payload))
        assert "sip_status=200i" in line
        assert 'method="200"' in line

    def test_configured_headers(self, sip_header, invite_payload):
        converter = HepConverter(sip_headers=("Contact",))
        line = converter.convert_packet(encode(sip_header, invite_payload))
        assert 'sip_contact="<sip:bob@192.168.1.1:5060>"' in line
        assert "sip_call-id" not in line


class TestNonSipPacket:
    def test_only_base_fields(self, sip_header):
        header = replace(sip_header, payload_type=5)
        line = HepConverter().convert_packet(encode(header, b"RTCP-report"))

        assert line.startswith("hep_5,")
        _measurement_tags, field_set, _ts = line.split(" ")
        keys = [part.split("=", 1)[0] for part in field_set.split(",")]
        assert keys == ["create_date", "time_sec", "time_usec", "payload", "payload_size"]

    def test_spaces_in_payload_stay_quoted(self, sip_header):
        header = replace(sip_header, payload_type=100)
        line = HepConverter().convert_packet(encode(header, b"a b c"))
        assert 'payload="a b c"' in line


class TestErrors:
    def test_garbage_raises_decode_error(self):
        with pytest.raises(DecodeError):
            HepConverter().convert_packet(b"\xff" * 32)

    def test_convert_packets_joins_lines(self, sip_header, invite_payload):
        packet = encode(sip_header, invite_payload)
        output = HepConverter().convert_packets([packet, packet])
        lines = output.split("\n")
        assert len(lines) == 2
        assert lines[0] == lines[1]

    def test_debug_flag(self):
        converter = HepConverter(debug=True)
        assert converter.debug is True
        assert converter.sip_headers == ("Call-ID", "From", "To", "CSeq", "User-Agent")
