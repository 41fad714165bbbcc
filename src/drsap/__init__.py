"""
DRSAP - Dual-RSA store-and-forward end-to-end encryption.

Two peers exchange public keys with a handshake/acknowledgment pair. After
that, every message is sealed in an envelope whose one-time AES key is
wrapped under both the sender's and the recipient's RSA public key, so
either of them can open it later. No key server is involved.

Dependencies:
- cryptography: RSA and AES primitives (Apache 2.0/BSD)
- argon2-cffi: identity file key derivation (MIT License)
- aiofiles: asynchronous persistence (Apache 2.0)
- rich: command line output and logging (MIT License)
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import Config
from .constants import APP_NAME, VERSION
from .contact import Contact, ContactManager, ContactStore, MemoryContactStore
from .envelope import EnvelopeCodec
from .errors import (
    ConfigError,
    ContactError,
    CryptoError,
    DrsapError,
    ErrorCode,
    IdentityError,
    ProtocolError,
)
from .handshake import HandshakeManager, HandshakeState
from .identity import Identity, IdentityManager
from .messenger import Messenger, ReceiveResult
from .protocol import PacketType, Protocol

__all__ = [
    "APP_NAME",
    "VERSION",
    "Config",
    "ConfigError",
    "Contact",
    "ContactError",
    "ContactManager",
    "ContactStore",
    "CryptoError",
    "DrsapError",
    "EnvelopeCodec",
    "ErrorCode",
    "HandshakeManager",
    "HandshakeState",
    "Identity",
    "IdentityError",
    "IdentityManager",
    "MemoryContactStore",
    "Messenger",
    "PacketType",
    "Protocol",
    "ProtocolError",
    "ReceiveResult",
    "__license__",
    "__version__",
]
