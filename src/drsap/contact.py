"""
DRSAP - Contact storage.

A contact is the trust record kept per peer identifier: the peer's public
key, the timestamp of the last accepted handshake and the two handshake
flags. The protocol core talks to storage only through ``ContactStore``;
``MemoryContactStore`` and the file-backed ``ContactManager`` implement it.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiofiles

from .errors import ContactError, ErrorCode

logger = logging.getLogger(__name__)


class Contact:
    """Trust record for one peer."""

    def __init__(self, public_key: Optional[str] = None, timestamp: int = 0,
                 acknowledged: bool = False, enable: bool = False):
        self.public_key = public_key
        self.timestamp = timestamp
        self.acknowledged = acknowledged
        self.enable = enable

    def to_dict(self) -> Dict[str, Any]:
        """Convert contact to dictionary for storage."""
        return {
            'public_key': self.public_key,
            'timestamp': self.timestamp,
            'acknowledged': self.acknowledged,
            'enable': self.enable,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Contact':
        """Create contact from dictionary."""
        return Contact(
            public_key=data.get('public_key'),
            timestamp=int(data.get('timestamp') or 0),
            acknowledged=bool(data.get('acknowledged', False)),
            enable=bool(data.get('enable', False)),
        )

    def copy(self) -> 'Contact':
        return Contact.from_dict(self.to_dict())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Contact):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        key = 'set' if self.public_key else 'none'
        return (f"Contact(public_key={key}, timestamp={self.timestamp}, "
                f"acknowledged={self.acknowledged}, enable={self.enable})")


class ContactStore(ABC):
    """Key-value store of contacts keyed by peer identifier.

    Implementations return copies from ``get``/``get_all``; changes are only
    persisted through ``set``.
    """

    @abstractmethod
    def get(self, peer_id: str) -> Optional[Contact]:
        """Contact for ``peer_id``, or None if unknown."""

    @abstractmethod
    def get_all(self) -> Dict[str, Contact]:
        """All contacts keyed by peer identifier."""

    @abstractmethod
    def set(self, peer_id: str, contact: Contact) -> None:
        """Create or replace the contact for ``peer_id``."""


class MemoryContactStore(ContactStore):
    """In-process contact store."""

    def __init__(self, contacts: Optional[Dict[str, Contact]] = None):
        self.contacts: Dict[str, Contact] = dict(contacts or {})

    def get(self, peer_id: str) -> Optional[Contact]:
        contact = self.contacts.get(peer_id)
        return contact.copy() if contact else None

    def get_all(self) -> Dict[str, Contact]:
        return {peer_id: contact.copy() for peer_id, contact in self.contacts.items()}

    def set(self, peer_id: str, contact: Contact) -> None:
        self.contacts[peer_id] = contact.copy()


class ContactManager(ContactStore):
    """Contact store persisted as a JSON file."""

    def __init__(self, contacts_file: str):
        self.contacts_file = str(contacts_file)
        self.contacts: Dict[str, Contact] = {}
        self._load_contacts()

    def _load_contacts(self) -> None:
        """Load contacts from file."""
        if not os.path.exists(self.contacts_file):
            return

        try:
            with open(self.contacts_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            for peer_id, contact_data in data.items():
                self.contacts[peer_id] = Contact.from_dict(contact_data)
            logger.info(f"Loaded {len(self.contacts)} contacts from {self.contacts_file}")
        except OSError as e:
            logger.error(f"Failed to read contacts file: {e}")
            raise ContactError(
                ErrorCode.E403_CONTACT_LOAD_FAILED,
                f"Cannot load contacts: {e}",
                {"path": self.contacts_file},
            ) from e
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            # Start with empty contacts if file is corrupted
            logger.error(f"Corrupted contacts file: {e}")
            logger.warning("Starting with empty contacts due to corrupted file")
            self.contacts = {}

    def _serialize(self) -> str:
        data = {peer_id: contact.to_dict() for peer_id, contact in self.contacts.items()}
        return json.dumps(data, indent=2, ensure_ascii=False)

    def save_contacts(self) -> None:
        """Save contacts to file, atomically."""
        temp_file = f"{self.contacts_file}.tmp"
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                f.write(self._serialize())
            os.replace(temp_file, self.contacts_file)
            logger.debug(f"Saved {len(self.contacts)} contacts to {self.contacts_file}")
        except OSError as e:
            logger.error(f"Failed to save contacts: {e}")
            raise ContactError(
                ErrorCode.E404_CONTACT_SAVE_FAILED,
                f"Cannot save contacts: {e}",
                {"path": self.contacts_file},
            ) from e

    async def save_contacts_async(self) -> None:
        """Save contacts to file asynchronously."""
        temp_file = f"{self.contacts_file}.tmp"
        try:
            async with aiofiles.open(temp_file, 'w', encoding='utf-8') as f:
                await f.write(self._serialize())
            os.replace(temp_file, self.contacts_file)
            logger.debug(f"Saved {len(self.contacts)} contacts to {self.contacts_file}")
        except OSError as e:
            logger.error(f"Failed to save contacts: {e}")
            raise ContactError(
                ErrorCode.E404_CONTACT_SAVE_FAILED,
                f"Cannot save contacts: {e}",
                {"path": self.contacts_file},
            ) from e

    def get(self, peer_id: str) -> Optional[Contact]:
        contact = self.contacts.get(peer_id)
        return contact.copy() if contact else None

    def get_all(self) -> Dict[str, Contact]:
        return {peer_id: contact.copy() for peer_id, contact in self.contacts.items()}

    def set(self, peer_id: str, contact: Contact) -> None:
        self.contacts[peer_id] = contact.copy()
        self.save_contacts()

    async def set_async(self, peer_id: str, contact: Contact) -> None:
        self.contacts[peer_id] = contact.copy()
        await self.save_contacts_async()

    def remove_contact(self, peer_id: str) -> bool:
        """Remove a contact. Returns True if removed, False if not found."""
        if peer_id not in self.contacts:
            return False
        del self.contacts[peer_id]
        self.save_contacts()
        return True

    def delete_all_contacts(self) -> bool:
        """Delete all contacts and the contacts file."""
        self.contacts.clear()
        if os.path.exists(self.contacts_file):
            try:
                os.remove(self.contacts_file)
                logger.info("Deleted all contacts and contacts file")
            except OSError as e:
                logger.error(f"Failed to delete contacts file: {e}")
                return False
        return True
