"""
DRSAP - Wire protocol definitions.

Three ASCII packet kinds travel between peers:

- Handshake:      <HANDSHAKE_PREFIX>__<unixTimeMillis>__<peerId>__<publicKeyPEMSingleLine>
- Acknowledgment: <ACK_PREFIX>__<peerId>
- Envelope:       <ENCRYPT_PREFIX><r1><r2><aesHex>

``__`` is a literal delimiter with no escaping; PEM text never contains it.
Handshakes and acknowledgments are parsed with a bounded split. Envelope
slots are fixed-width (one RSA modulus in hex, ``key_size // 4`` characters)
and consumed positionally.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .constants import (
    ACKNOWLEDGMENT_FIELD_COUNT,
    ACKNOWLEDGMENT_PREFIX,
    ENCRYPT_PREFIX,
    FIELD_DELIMITER,
    HANDSHAKE_FIELD_COUNT,
    HANDSHAKE_PREFIX,
    RSA_KEY_SIZE,
)
from .errors import ErrorCode, ProtocolError

_HEX = re.compile(r"\A[0-9a-fA-F]*\Z")
_DIGITS = re.compile(r"\A[0-9]+\Z")


class PacketType(Enum):
    """Packet kinds recognised by prefix."""

    HANDSHAKE = "handshake"
    ACKNOWLEDGMENT = "acknowledgment"
    ENVELOPE = "envelope"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HandshakePacket:
    timestamp: int
    peer_id: str
    public_key: str


@dataclass(frozen=True)
class AcknowledgmentPacket:
    peer_id: str


@dataclass(frozen=True)
class EnvelopePacket:
    """Parsed envelope. ``sender_slot`` is r1, ``recipient_slot`` is r2."""

    sender_slot: str
    recipient_slot: str
    ciphertext: str

    @property
    def slots(self) -> Tuple[str, str]:
        return self.sender_slot, self.recipient_slot


class Protocol:
    """Builds and parses packets for one set of prefixes and modulus size."""

    def __init__(self, encrypt_prefix: str = ENCRYPT_PREFIX,
                 handshake_prefix: str = HANDSHAKE_PREFIX,
                 acknowledgment_prefix: str = ACKNOWLEDGMENT_PREFIX,
                 key_size: int = RSA_KEY_SIZE):
        for prefix in (handshake_prefix, acknowledgment_prefix):
            if FIELD_DELIMITER in prefix:
                raise ValueError(f"Prefix may not contain {FIELD_DELIMITER!r}: {prefix!r}")
        if key_size <= 0 or key_size % 8:
            raise ValueError(f"Invalid RSA key size: {key_size}")

        self.encrypt_prefix = encrypt_prefix
        self.handshake_prefix = handshake_prefix
        self.acknowledgment_prefix = acknowledgment_prefix
        self.key_size = key_size

    @classmethod
    def from_config(cls, config) -> "Protocol":
        """Build from a ``Config``; None gives the defaults."""
        if config is None:
            return cls()
        return cls(
            encrypt_prefix=config.get("protocol", "encrypt_prefix", ENCRYPT_PREFIX),
            handshake_prefix=config.get("protocol", "handshake_prefix", HANDSHAKE_PREFIX),
            acknowledgment_prefix=config.get(
                "protocol", "acknowledgment_prefix", ACKNOWLEDGMENT_PREFIX
            ),
            key_size=config.get("crypto", "rsa_key_size", RSA_KEY_SIZE),
        )

    @property
    def slot_width(self) -> int:
        """Hex characters per envelope slot."""
        return self.key_size // 4

    def classify(self, packet: str) -> PacketType:
        """Packet kind by prefix; longest marker wins."""
        markers = sorted(
            [
                (self.handshake_prefix + FIELD_DELIMITER, PacketType.HANDSHAKE),
                (self.acknowledgment_prefix + FIELD_DELIMITER, PacketType.ACKNOWLEDGMENT),
                (self.encrypt_prefix, PacketType.ENVELOPE),
            ],
            key=lambda item: len(item[0]),
            reverse=True,
        )
        for marker, packet_type in markers:
            if packet.startswith(marker):
                return packet_type
        return PacketType.UNKNOWN

    # Handshake

    def create_handshake(self, timestamp: int, peer_id: str, public_key: str) -> str:
        """
        Build a handshake packet.

        ``public_key`` must already be in single-line form.

        Raises:
            ProtocolError: If a field would break the delimiter framing
        """
        self._check_field(peer_id, "peer_id", ErrorCode.E202_MALFORMED_HANDSHAKE)
        self._check_field(public_key, "public_key", ErrorCode.E202_MALFORMED_HANDSHAKE)
        return FIELD_DELIMITER.join(
            [self.handshake_prefix, str(int(timestamp)), peer_id, public_key]
        )

    def parse_handshake(self, packet: str) -> HandshakePacket:
        """
        Split a handshake packet into its four fields.

        Raises:
            ProtocolError: If the packet is not a well-formed handshake
        """
        fields = packet.split(FIELD_DELIMITER, HANDSHAKE_FIELD_COUNT - 1)
        if len(fields) != HANDSHAKE_FIELD_COUNT:
            raise ProtocolError(
                ErrorCode.E202_MALFORMED_HANDSHAKE,
                f"Handshake needs {HANDSHAKE_FIELD_COUNT} fields, got {len(fields)}",
            )

        prefix, timestamp, peer_id, public_key = fields
        if prefix != self.handshake_prefix:
            raise ProtocolError(
                ErrorCode.E201_UNKNOWN_PREFIX, "Not a handshake packet", {"prefix": prefix}
            )
        if not _DIGITS.match(timestamp):
            raise ProtocolError(
                ErrorCode.E202_MALFORMED_HANDSHAKE,
                "Handshake timestamp is not a non-negative integer",
                {"timestamp": timestamp},
            )
        if not peer_id or not public_key:
            raise ProtocolError(ErrorCode.E202_MALFORMED_HANDSHAKE, "Handshake has empty fields")

        return HandshakePacket(timestamp=int(timestamp), peer_id=peer_id, public_key=public_key)

    # Acknowledgment

    def create_acknowledgment(self, peer_id: str) -> str:
        self._check_field(peer_id, "peer_id", ErrorCode.E203_MALFORMED_ACKNOWLEDGMENT)
        return FIELD_DELIMITER.join([self.acknowledgment_prefix, peer_id])

    def parse_acknowledgment(self, packet: str) -> AcknowledgmentPacket:
        """
        Raises:
            ProtocolError: If the packet is not a well-formed acknowledgment
        """
        fields = packet.split(FIELD_DELIMITER, ACKNOWLEDGMENT_FIELD_COUNT - 1)
        if len(fields) != ACKNOWLEDGMENT_FIELD_COUNT:
            raise ProtocolError(
                ErrorCode.E203_MALFORMED_ACKNOWLEDGMENT, "Acknowledgment has no id field"
            )

        prefix, peer_id = fields
        if prefix != self.acknowledgment_prefix:
            raise ProtocolError(
                ErrorCode.E201_UNKNOWN_PREFIX, "Not an acknowledgment packet", {"prefix": prefix}
            )
        if not peer_id:
            raise ProtocolError(ErrorCode.E203_MALFORMED_ACKNOWLEDGMENT, "Empty acknowledgment id")

        return AcknowledgmentPacket(peer_id=peer_id)

    # Envelope

    def pack_envelope(self, sender_slot: str, recipient_slot: str, ciphertext: str) -> str:
        """
        Raises:
            ProtocolError: If a slot does not have the fixed width
        """
        for slot in (sender_slot, recipient_slot):
            if len(slot) != self.slot_width:
                raise ProtocolError(
                    ErrorCode.E204_MALFORMED_ENVELOPE,
                    f"Slot is {len(slot)} hex chars, expected {self.slot_width}",
                    {"key_size": self.key_size},
                )
        return self.encrypt_prefix + sender_slot + recipient_slot + ciphertext

    def unpack_envelope(self, packet: str) -> EnvelopePacket:
        """
        Slice an envelope into its two slots and the AES ciphertext.

        Raises:
            ProtocolError: If the prefix is missing, the packet is too short
                for two slots and a ciphertext, or a field is not hex
        """
        if not packet.startswith(self.encrypt_prefix):
            raise ProtocolError(ErrorCode.E201_UNKNOWN_PREFIX, "Not an envelope packet")

        body = packet[len(self.encrypt_prefix):]
        width = self.slot_width
        if len(body) <= 2 * width:
            raise ProtocolError(
                ErrorCode.E204_MALFORMED_ENVELOPE,
                "Envelope too short",
                {"length": len(body), "slot_width": width},
            )

        envelope = EnvelopePacket(
            sender_slot=body[:width],
            recipient_slot=body[width:2 * width],
            ciphertext=body[2 * width:],
        )
        if not _HEX.match(body):
            raise ProtocolError(ErrorCode.E204_MALFORMED_ENVELOPE, "Envelope is not hex")
        return envelope

    @staticmethod
    def _check_field(value: Optional[str], name: str, code: ErrorCode) -> None:
        if not value or FIELD_DELIMITER in value:
            raise ProtocolError(code, f"Invalid {name}", {name: value})
