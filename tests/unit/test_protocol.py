"""
Unit tests for drsap.protocol packet framing.
"""

import pytest

from drsap.config import Config
from drsap.errors import ErrorCode, ProtocolError
from drsap.protocol import PacketType, Protocol

PUBLIC_KEY = "-----BEGIN PUBLIC KEY-----MFwwDQYJKoZIhvcNAQEBBQADSwAwSAJBAK/+ab==-----END PUBLIC KEY-----"


@pytest.fixture
def protocol():
    return Protocol()


class TestClassify:
    """Test packet classification by prefix."""

    def test_known_prefixes(self, protocol):
        assert protocol.classify(f"DRSAP:HANDSHAKE__1__bob__{PUBLIC_KEY}") is PacketType.HANDSHAKE
        assert protocol.classify("DRSAP:ACK__alice") is PacketType.ACKNOWLEDGMENT
        assert protocol.classify("DRSAP:MSG:abcdef") is PacketType.ENVELOPE

    def test_unknown(self, protocol):
        assert protocol.classify("hello") is PacketType.UNKNOWN
        assert protocol.classify("") is PacketType.UNKNOWN
        # Handshake prefix without its delimiter is not a handshake
        assert protocol.classify("DRSAP:HANDSHAKE") is PacketType.UNKNOWN

    def test_longest_marker_wins(self):
        protocol = Protocol(encrypt_prefix="X", handshake_prefix="XH", acknowledgment_prefix="XA")
        assert protocol.classify("XH__1__bob__key") is PacketType.HANDSHAKE
        assert protocol.classify("XA__bob") is PacketType.ACKNOWLEDGMENT
        assert protocol.classify("X" + "0" * 600) is PacketType.ENVELOPE


class TestHandshakePacket:
    """Test handshake creation and parsing."""

    def test_format(self, protocol):
        packet = protocol.create_handshake(1700000000000, "bob", PUBLIC_KEY)
        assert packet == f"DRSAP:HANDSHAKE__1700000000000__bob__{PUBLIC_KEY}"

    def test_parse(self, protocol):
        packet = protocol.parse_handshake(protocol.create_handshake(42, "bob", PUBLIC_KEY))
        assert packet.timestamp == 42
        assert packet.peer_id == "bob"
        assert packet.public_key == PUBLIC_KEY

    def test_bounded_split_keeps_rest_in_key(self, protocol):
        packet = protocol.parse_handshake("DRSAP:HANDSHAKE__5__bob__key__with__delims")
        assert packet.public_key == "key__with__delims"

    @pytest.mark.parametrize("packet", [
        "DRSAP:HANDSHAKE",
        "DRSAP:HANDSHAKE__1",
        "DRSAP:HANDSHAKE__1__bob",
        "DRSAP:HANDSHAKE__abc__bob__key",
        "DRSAP:HANDSHAKE__-1__bob__key",
        "DRSAP:HANDSHAKE__１２__bob__key",
        "DRSAP:HANDSHAKE__1____key",
        "DRSAP:HANDSHAKE__1__bob__",
        "OTHER__1__bob__key",
    ])
    def test_malformed(self, protocol, packet):
        with pytest.raises(ProtocolError):
            protocol.parse_handshake(packet)

    def test_rejects_fields_that_break_framing(self, protocol):
        with pytest.raises(ProtocolError) as exc_info:
            protocol.create_handshake(1, "bo__b", PUBLIC_KEY)
        assert exc_info.value.code is ErrorCode.E202_MALFORMED_HANDSHAKE

        with pytest.raises(ProtocolError):
            protocol.create_handshake(1, "", PUBLIC_KEY)


class TestAcknowledgmentPacket:
    """Test acknowledgment creation and parsing."""

    def test_format_and_parse(self, protocol):
        packet = protocol.create_acknowledgment("alice")
        assert packet == "DRSAP:ACK__alice"
        assert protocol.parse_acknowledgment(packet).peer_id == "alice"

    def test_malformed(self, protocol):
        for packet in ["DRSAP:ACK", "DRSAP:ACK__", "NOPE__alice"]:
            with pytest.raises(ProtocolError):
                protocol.parse_acknowledgment(packet)

    def test_rejects_empty_id(self, protocol):
        with pytest.raises(ProtocolError) as exc_info:
            protocol.create_acknowledgment("")
        assert exc_info.value.code is ErrorCode.E203_MALFORMED_ACKNOWLEDGMENT


class TestEnvelopePacket:
    """Test fixed-width envelope framing."""

    def test_slot_width_follows_key_size(self):
        assert Protocol().slot_width == 256
        assert Protocol(key_size=2048).slot_width == 512

    def test_pack_and_unpack(self, protocol):
        r1, r2, body = "a" * 256, "b" * 256, "c" * 64
        packet = protocol.pack_envelope(r1, r2, body)
        assert packet == "DRSAP:MSG:" + r1 + r2 + body

        envelope = protocol.unpack_envelope(packet)
        assert envelope.sender_slot == r1
        assert envelope.recipient_slot == r2
        assert envelope.ciphertext == body
        assert envelope.slots == (r1, r2)

    def test_pack_rejects_wrong_width(self, protocol):
        with pytest.raises(ProtocolError) as exc_info:
            protocol.pack_envelope("a" * 255, "b" * 256, "c")
        assert exc_info.value.code is ErrorCode.E204_MALFORMED_ENVELOPE

    @pytest.mark.parametrize("packet", [
        "DRSAP:MSG:",
        "DRSAP:MSG:" + "a" * 512,
        "DRSAP:MSG:" + "g" * 600,
        "DRSAP:ACK__alice",
    ])
    def test_unpack_malformed(self, protocol, packet):
        with pytest.raises(ProtocolError):
            protocol.unpack_envelope(packet)


class TestConstruction:
    """Test prefix and key size validation."""

    def test_prefix_with_delimiter(self):
        with pytest.raises(ValueError):
            Protocol(handshake_prefix="BAD__PREFIX")

    def test_bad_key_size(self):
        with pytest.raises(ValueError):
            Protocol(key_size=1001)

    def test_from_config(self, temp_dir):
        config = Config(temp_dir / "config.toml")
        config.set("protocol", "encrypt_prefix", "M:")
        config.set("crypto", "rsa_key_size", 2048)

        protocol = Protocol.from_config(config)
        assert protocol.encrypt_prefix == "M:"
        assert protocol.handshake_prefix == "DRSAP:HANDSHAKE"
        assert protocol.slot_width == 512

    def test_from_none(self):
        assert Protocol.from_config(None).encrypt_prefix == "DRSAP:MSG:"
