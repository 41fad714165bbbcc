"""
DRSAP - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
the package. Each error has a unique code for logging and debugging.

The protocol core (envelope codec and handshake manager) never lets these
escape to its caller; they are raised by the layers around it (wire parsing,
storage, configuration) and converted into sentinel values at the boundary.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all DRSAP error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"
    E003_FILE_NOT_FOUND = "E003"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E104_KEY_GENERATION_FAILED = "E104"

    # Protocol Errors (E200-E299)
    E200_PROTOCOL_ERROR = "E200"
    E201_UNKNOWN_PREFIX = "E201"
    E202_MALFORMED_HANDSHAKE = "E202"
    E203_MALFORMED_ACKNOWLEDGMENT = "E203"
    E204_MALFORMED_ENVELOPE = "E204"

    # Identity Errors (E300-E399)
    E300_IDENTITY_ERROR = "E300"
    E301_IDENTITY_NOT_FOUND = "E301"
    E302_IDENTITY_ALREADY_EXISTS = "E302"
    E303_IDENTITY_LOAD_FAILED = "E303"
    E304_IDENTITY_SAVE_FAILED = "E304"
    E305_INVALID_IDENTITY = "E305"

    # Contact Errors (E400-E499)
    E400_CONTACT_ERROR = "E400"
    E401_CONTACT_NOT_FOUND = "E401"
    E403_CONTACT_LOAD_FAILED = "E403"
    E404_CONTACT_SAVE_FAILED = "E404"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E704_CONFIG_PARSE_ERROR = "E704"


class DrsapError(Exception):
    """Base exception class for all DRSAP errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(DrsapError):
    """Exception raised for cryptographic operation failures.

    This includes symmetric decryption of malformed ciphertext, key
    generation, and identity file encryption or decryption.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ProtocolError(DrsapError):
    """Exception raised when a handshake, acknowledgment or envelope
    packet cannot be parsed."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_PROTOCOL_ERROR,
        message: str = "Malformed packet",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class IdentityError(DrsapError):
    """Exception raised for identity management failures.

    This includes loading, saving, and validation of user identities.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E300_IDENTITY_ERROR,
        message: str = "Identity operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ContactError(DrsapError):
    """Exception raised for contact storage failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E400_CONTACT_ERROR,
        message: str = "Contact operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(DrsapError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
