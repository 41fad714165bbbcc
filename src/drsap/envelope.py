"""
DRSAP - Envelope codec.

An envelope carries one message to one peer:

    ENCRYPT_PREFIX | E_self(K) | E_peer(K) | AES_K(message)

``K`` is 16 fresh random bytes per message. Wrapping it under the sender's
own public key as well as the recipient's lets the sender read their sent
messages later without keeping the plaintext. The recipient does not know
in advance which slot is theirs, so decoding tries both.
"""

import asyncio
import functools
import logging
from typing import Optional

from . import crypto
from .constants import SYMMETRIC_KEY_BYTES
from .contact import ContactStore
from .errors import CryptoError, ProtocolError
from .protocol import Protocol

logger = logging.getLogger(__name__)


class EnvelopeCodec:
    """Encodes and decodes envelopes for one local identity.

    Args:
        identity: object exposing ``public_key`` and ``private_key`` PEM text
        contacts: contact store used to look up recipients
        config: optional ``Config`` for prefixes, modulus and key length
        protocol: explicit ``Protocol``; overrides ``config``
    """

    def __init__(self, identity, contacts: ContactStore, config=None,
                 protocol: Optional[Protocol] = None):
        self.identity = identity
        self.contacts = contacts
        self.protocol = protocol or Protocol.from_config(config)
        self.key_bytes = (
            config.get("crypto", "symmetric_key_bytes", SYMMETRIC_KEY_BYTES)
            if config is not None else SYMMETRIC_KEY_BYTES
        )

    def encode(self, message: str, recipient_id: str) -> Optional[str]:
        """
        Encrypt ``message`` for ``recipient_id``.

        Returns:
            The envelope, ``""`` for an empty or whitespace-only message,
            or None when the recipient has no usable public key.
        """
        if not message.strip():
            return ""

        secret = crypto.generate_message_key(self.key_bytes)
        key_material = secret.hex()

        contact = self.contacts.get(recipient_id)
        if contact is None or not contact.public_key:
            logger.debug(f"No public key for {recipient_id}, cannot encrypt")
            return None

        try:
            sender_slot = crypto.rsa_encrypt(self.identity.public_key, secret).hex()
            recipient_slot = crypto.rsa_encrypt(contact.public_key, secret).hex()
            ciphertext = crypto.aes_encrypt(message, key_material)
            return self.protocol.pack_envelope(sender_slot, recipient_slot, ciphertext)
        except (CryptoError, ProtocolError) as e:
            logger.warning(f"Cannot encrypt for {recipient_id}: {e}")
            return None

    def decode(self, envelope: str) -> Optional[str]:
        """
        Decrypt an envelope with the local private key.

        Slot r1 is tried first (a message we sent), then r2 (a message we
        received). Returns None if neither slot yields a key that decrypts
        the body, or if the envelope is malformed.
        """
        try:
            packet = self.protocol.unpack_envelope(envelope)
        except ProtocolError as e:
            logger.debug(f"Ignoring malformed envelope: {e}")
            return None

        for index, slot in enumerate(packet.slots, start=1):
            key_material = crypto.unwrap_message_key(
                self.identity.private_key, slot, self.key_bytes
            )
            if key_material is None:
                continue
            try:
                message = crypto.aes_decrypt(packet.ciphertext, key_material)
            except CryptoError as e:
                logger.debug(f"Slot {index} key did not decrypt the body: {e}")
                continue
            logger.debug(f"Envelope decrypted via slot {index}")
            return message

        logger.debug("Envelope is not addressed to this identity")
        return None

    async def encode_async(self, message: str, recipient_id: str) -> Optional[str]:
        """:meth:`encode` on the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.encode, message, recipient_id)
        )

    async def decode_async(self, envelope: str) -> Optional[str]:
        """:meth:`decode` on the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.decode, envelope))
