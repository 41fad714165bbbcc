"""
DRSAP - Messenger facade.

Bundles one identity and one contact store with the handshake manager and
the envelope codec, and dispatches incoming packets by prefix. Transport is
left to the caller: every method takes or returns plain packet strings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .contact import ContactStore
from .envelope import EnvelopeCodec
from .handshake import HandshakeManager, HandshakeState
from .protocol import PacketType, Protocol

logger = logging.getLogger(__name__)


@dataclass
class ReceiveResult:
    """What an incoming packet turned out to be and what it produced.

    ``reply`` is a packet to send back to the sender (an acknowledgment),
    ``message`` the plaintext of a decrypted envelope, and ``accepted`` is
    False when the packet was dropped.
    """

    packet_type: PacketType
    accepted: bool = False
    reply: Optional[str] = None
    message: Optional[str] = None


class Messenger:
    """Protocol entry point for one local identity."""

    def __init__(self, identity, contacts: ContactStore, config=None):
        self.identity = identity
        self.contacts = contacts
        self.protocol = Protocol.from_config(config)
        self.handshakes = HandshakeManager(identity, contacts, protocol=self.protocol)
        self.codec = EnvelopeCodec(identity, contacts, config=config, protocol=self.protocol)

    def handshake(self, peer_id: str) -> str:
        return self.handshakes.initiate_handshake(peer_id)

    def acknowledge(self, peer_id: str) -> str:
        return self.handshakes.create_acknowledgment(peer_id)

    def encrypt(self, message: str, peer_id: str) -> Optional[str]:
        return self.codec.encode(message, peer_id)

    def decrypt(self, envelope: str) -> Optional[str]:
        return self.codec.decode(envelope)

    async def encrypt_async(self, message: str, peer_id: str) -> Optional[str]:
        return await self.codec.encode_async(message, peer_id)

    async def decrypt_async(self, envelope: str) -> Optional[str]:
        return await self.codec.decode_async(envelope)

    def state(self, peer_id: str) -> HandshakeState:
        return self.handshakes.state(peer_id)

    def is_trusted(self, peer_id: str) -> bool:
        """True once ``peer_id`` has acknowledged our handshake.

        The codec does not enforce this; callers that want to refuse
        sending before acknowledgment check it here.
        """
        return self.state(peer_id) is HandshakeState.ACKNOWLEDGED

    def receive(self, packet: str, from_id: str) -> ReceiveResult:
        """Dispatch an incoming packet from ``from_id`` by its prefix."""
        packet_type = self.protocol.classify(packet)

        if packet_type is PacketType.HANDSHAKE:
            before = self.contacts.get(from_id)
            reply = self.handshakes.resolve_handshake(packet, from_id)
            accepted = reply is not None or self.contacts.get(from_id) != before
            return ReceiveResult(packet_type, accepted=accepted, reply=reply)

        if packet_type is PacketType.ACKNOWLEDGMENT:
            accepted = self.handshakes.resolve_acknowledgment(packet, from_id)
            return ReceiveResult(packet_type, accepted=accepted)

        if packet_type is PacketType.ENVELOPE:
            message = self.codec.decode(packet)
            return ReceiveResult(packet_type, accepted=message is not None, message=message)

        logger.debug(f"Ignoring packet with unknown prefix from {from_id}")
        return ReceiveResult(packet_type)
