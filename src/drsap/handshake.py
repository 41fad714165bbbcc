"""
DRSAP - Handshake state machine.

Trust between two identities is established with two packets:

1. A handshake announces the sender's public key and a millisecond
   timestamp, addressed to a peer id.
2. The receiver stores the key and answers with an acknowledgment, which
   marks the receiver's record on the sender's side as acknowledged.

Per peer the state moves UNKNOWN -> PENDING -> ACKNOWLEDGED. There is no
failure state; a newer handshake supersedes an older one. Trust is
first-contact-wins: nothing here authenticates the key beyond that.

Malformed, stale and self-addressed packets are logged and dropped; no
exception leaves this module from the resolve methods.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from .contact import Contact, ContactStore
from .crypto import strip_pem
from .errors import ProtocolError
from .protocol import Protocol

logger = logging.getLogger(__name__)


def current_millis() -> int:
    return int(time.time() * 1000)


class HandshakeState(Enum):
    """Trust state of one peer."""

    UNKNOWN = "unknown"  # nothing stored
    PENDING = "pending"  # key stored, not acknowledged
    ACKNOWLEDGED = "acknowledged"


class HandshakeManager:
    """Initiates and resolves handshakes for one local identity.

    Callers must serialize calls that touch the same peer; the timestamp
    check is only monotonic under that discipline.
    """

    def __init__(self, identity, contacts: ContactStore, config=None,
                 protocol: Optional[Protocol] = None,
                 clock: Callable[[], int] = current_millis):
        self.identity = identity
        self.contacts = contacts
        self.protocol = protocol or Protocol.from_config(config)
        self.clock = clock

    def initiate_handshake(self, peer_id: str, timestamp: Optional[int] = None) -> str:
        """
        Build the handshake packet announcing our public key to ``peer_id``.

        Does not touch the contact store.

        Raises:
            ProtocolError: If ``peer_id`` is empty or contains the delimiter
        """
        if timestamp is None:
            timestamp = self.clock()
        return self.protocol.create_handshake(
            timestamp, peer_id, strip_pem(self.identity.public_key)
        )

    def resolve_handshake(self, packet: str, from_id: str) -> Optional[str]:
        """
        Apply a handshake received from ``from_id``.

        Returns:
            An acknowledgment packet to send back to ``from_id`` when a new
            key was registered, otherwise None.
        """
        try:
            handshake = self.protocol.parse_handshake(packet)
        except ProtocolError as e:
            logger.debug(f"Ignoring malformed handshake from {from_id}: {e}")
            return None

        if handshake.peer_id == from_id:
            logger.debug(f"Ignoring self-addressed handshake from {from_id}")
            return None

        old_contact = self.contacts.get(from_id)
        last_timestamp = old_contact.timestamp if old_contact else 0
        if handshake.timestamp <= last_timestamp:
            logger.debug(
                f"Handshake {handshake.peer_id} is old "
                f"({handshake.timestamp} <= {last_timestamp})"
            )
            return None

        public_key = strip_pem(handshake.public_key)
        holder = self._find_key_holder(public_key, exclude=from_id)
        if holder is not None:
            # Known key under another id: confirm, never overwrite key material.
            contact = old_contact or Contact()
            contact.acknowledged = True
            self.contacts.set(from_id, contact)
            logger.info(f"Already have Handshake {handshake.peer_id} (key held by {holder})")
            return None

        self.contacts.set(
            from_id,
            Contact(public_key=public_key, timestamp=handshake.timestamp, enable=True),
        )
        logger.info(f"New Handshake {handshake.peer_id} registered")

        try:
            return self.create_acknowledgment(from_id)
        except ProtocolError as e:
            logger.warning(f"Cannot acknowledge {from_id}: {e}")
            return None

    def create_acknowledgment(self, peer_id: str) -> str:
        """
        Raises:
            ProtocolError: If ``peer_id`` is empty or contains the delimiter
        """
        return self.protocol.create_acknowledgment(peer_id)

    def resolve_acknowledgment(self, packet: str, from_id: str) -> bool:
        """
        Apply an acknowledgment received from ``from_id``.

        Returns True if the contact was marked acknowledged.
        """
        try:
            acknowledgment = self.protocol.parse_acknowledgment(packet)
        except ProtocolError as e:
            logger.debug(f"Ignoring malformed acknowledgment from {from_id}: {e}")
            return False

        if acknowledgment.peer_id == from_id:
            logger.debug(f"Ignoring self-addressed acknowledgment from {from_id}")
            return False

        contact = self.contacts.get(from_id)
        if contact is None or not contact.public_key:
            logger.debug(f"Acknowledgment from {from_id} without a known handshake")
            return False

        contact.acknowledged = True
        self.contacts.set(from_id, contact)
        logger.info(f"Acknowledgment for {acknowledgment.peer_id} Handshake")
        return True

    def state(self, peer_id: str) -> HandshakeState:
        contact = self.contacts.get(peer_id)
        # A key-less record (key reuse under another id) is never trusted.
        if contact is None or not contact.public_key:
            return HandshakeState.UNKNOWN
        if contact.acknowledged:
            return HandshakeState.ACKNOWLEDGED
        return HandshakeState.PENDING

    def _find_key_holder(self, public_key: str, exclude: str) -> Optional[str]:
        for peer_id, contact in self.contacts.get_all().items():
            if peer_id == exclude or not contact.public_key:
                continue
            if strip_pem(contact.public_key) == public_key:
                return peer_id
        return None
