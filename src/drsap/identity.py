"""
DRSAP - Identity management.

The identity is the local user's RSA key pair. It is created once at
account setup and stored on disk encrypted with the account password.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

import aiofiles

from . import crypto
from .constants import RSA_KEY_SIZE
from .errors import CryptoError, ErrorCode, IdentityError

logger = logging.getLogger(__name__)


class Identity:
    """Local user's identity: uid, username and RSA key pair (PEM)."""

    def __init__(self, uid: str, username: str, public_key: str, private_key: str):
        self.uid = uid
        self.username = username
        self.public_key = public_key
        self.private_key = private_key
        self.created_at = datetime.now(timezone.utc).isoformat()

    @property
    def fingerprint(self) -> str:
        return crypto.generate_fingerprint(self.public_key)

    @property
    def key_size(self) -> int:
        return crypto.get_key_size(self.private_key)

    def to_dict(self) -> Dict:
        """Export identity to dictionary."""
        return {
            'uid': self.uid,
            'username': self.username,
            'public_key': self.public_key,
            'private_key': self.private_key,
            'created_at': self.created_at,
        }

    @staticmethod
    def from_dict(data: Dict) -> 'Identity':
        """Import identity from dictionary."""
        identity = Identity(data['uid'], data['username'], data['public_key'], data['private_key'])
        identity.created_at = data.get('created_at', identity.created_at)
        return identity

    @staticmethod
    def generate(username: str, key_size: int = RSA_KEY_SIZE) -> 'Identity':
        """Create a fresh identity with a new key pair."""
        public_key, private_key = crypto.generate_key_pair(key_size)
        return Identity(crypto.generate_uid(), username, public_key, private_key)

    def get_shareable_info(self) -> Dict:
        """Identity information safe to hand to a peer. No private key."""
        return {
            'uid': self.uid,
            'username': self.username,
            'public_key': self.public_key,
            'fingerprint': self.fingerprint,
        }


class IdentityManager:
    """Manages the user identity with password-encrypted storage."""

    def __init__(self, identity_file: str):
        self.identity_file = str(identity_file)
        self.identity: Optional[Identity] = None

    def create_identity(self, username: str, password: str,
                        key_size: int = RSA_KEY_SIZE) -> Identity:
        """Generate a key pair, wrap it in a new identity and save it."""
        if self.identity_exists():
            raise IdentityError(
                ErrorCode.E302_IDENTITY_ALREADY_EXISTS,
                "Identity file already exists",
                {"path": self.identity_file},
            )

        try:
            self.identity = Identity.generate(username, key_size)
        except CryptoError as e:
            raise IdentityError(ErrorCode.E305_INVALID_IDENTITY, e.message) from e

        self.save_identity(password)
        logger.info(f"Identity created: {username} ({key_size}-bit)")
        return self.identity

    def import_identity(self, username: str, public_key: str, private_key: str,
                        password: str) -> Identity:
        """
        Adopt an existing key pair as the identity.

        Raises:
            IdentityError: If either PEM is invalid
        """
        if not crypto.validate_public_key(public_key):
            raise IdentityError(ErrorCode.E305_INVALID_IDENTITY, "Invalid public key")
        if not crypto.validate_private_key(private_key):
            raise IdentityError(ErrorCode.E305_INVALID_IDENTITY, "Invalid private key")

        self.identity = Identity(crypto.generate_uid(), username, public_key, private_key)
        self.save_identity(password)
        logger.info(f"Identity imported: {username}")
        return self.identity

    def load_identity(self, password: str) -> Optional[Identity]:
        """
        Load identity from the encrypted file.

        Returns None if the file doesn't exist or the password is incorrect.
        """
        if not os.path.exists(self.identity_file):
            logger.debug(f"Identity file does not exist: {self.identity_file}")
            return None

        try:
            with open(self.identity_file, 'r', encoding='utf-8') as f:
                encrypted_data = json.load(f)
            identity_data = crypto.decrypt_identity_file(encrypted_data, password)
            self.identity = Identity.from_dict(identity_data)
            logger.info(f"Identity loaded: {self.identity.username}")
            return self.identity
        except CryptoError as e:
            logger.warning(f"Failed to decrypt identity (incorrect password?): {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted identity file (invalid JSON): {e}")
            return None
        except KeyError as e:
            logger.error(f"Identity file missing field: {e}")
            return None

    def save_identity(self, password: str) -> None:
        """Save identity to the encrypted file."""
        if not self.identity:
            logger.warning("No identity to save")
            return

        encrypted_data = crypto.encrypt_identity_file(self.identity.to_dict(), password)
        temp_file = self.identity_file + '.tmp'
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(encrypted_data, f, indent=2, ensure_ascii=False)
            os.replace(temp_file, self.identity_file)
            logger.info(f"Identity saved: {self.identity.username}")
        except OSError as e:
            logger.error(f"Failed to save identity: {e}", exc_info=True)
            raise IdentityError(
                ErrorCode.E304_IDENTITY_SAVE_FAILED, f"Failed to save identity: {e}"
            ) from e

    async def save_identity_async(self, password: str) -> None:
        """Save identity to the encrypted file asynchronously."""
        if not self.identity:
            logger.warning("No identity to save")
            return

        encrypted_data = crypto.encrypt_identity_file(self.identity.to_dict(), password)
        json_data = json.dumps(encrypted_data, indent=2, ensure_ascii=False)
        temp_file = self.identity_file + '.tmp'
        try:
            async with aiofiles.open(temp_file, 'w', encoding='utf-8') as f:
                await f.write(json_data)
            os.replace(temp_file, self.identity_file)
            logger.info(f"Identity saved (async): {self.identity.username}")
        except OSError as e:
            logger.error(f"Failed to save identity (async): {e}", exc_info=True)
            raise IdentityError(
                ErrorCode.E304_IDENTITY_SAVE_FAILED, f"Failed to save identity: {e}"
            ) from e

    def identity_exists(self) -> bool:
        """Check if identity file exists."""
        return os.path.exists(self.identity_file)

    def change_password(self, old_password: str, new_password: str) -> bool:
        """
        Re-encrypt the identity under a new password.

        Returns False if the old password is incorrect.
        """
        if not self.load_identity(old_password):
            return False
        self.save_identity(new_password)
        return True
