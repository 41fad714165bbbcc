"""
DRSAP - Global Constants and Configuration Values

This module defines all constants used throughout the DRSAP package.
All magic numbers and configuration defaults are centralized here.

Author: drsap contributors
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "DRSAP"

# Wire Protocol
ENCRYPT_PREFIX = "DRSAP:MSG:"
HANDSHAKE_PREFIX = "DRSAP:HANDSHAKE"
ACKNOWLEDGMENT_PREFIX = "DRSAP:ACK"
FIELD_DELIMITER = "__"
HANDSHAKE_FIELD_COUNT = 4
ACKNOWLEDGMENT_FIELD_COUNT = 2

# Cryptography Constants
# The wire slot width is RSA_KEY_SIZE // 4 hex characters; both peers must
# agree on the modulus size.
RSA_KEY_SIZE = 1024
RSA_PUBLIC_EXPONENT = 65537
SYMMETRIC_KEY_BYTES = 16  # random bytes per message, hex form is the AES key
AES_BLOCK_SIZE = 16  # bytes, also the IV length
PEM_LINE_LENGTH = 64

# Identity file protection (Argon2id + AES-256-GCM)
SALT_SIZE = 16
NONCE_SIZE = 12
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 1
ARGON2_HASH_LEN = 32
IDENTITY_FILE_VERSION = "1.0"

# File Paths
DEFAULT_DATA_DIR = "~/.drsap"
IDENTITY_FILENAME = "identity.json"
CONTACTS_FILENAME = "contacts.json"
CONFIG_FILENAME = "config.toml"

# Environment
ENV_PREFIX = "DRSAP"
PASSWORD_ENV_VAR = "DRSAP_PASSWORD"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
