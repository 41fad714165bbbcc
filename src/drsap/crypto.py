"""
DRSAP - Cryptographic primitives.

This module implements the two layers the protocol is built from:
- RSA with PKCS#1 v1.5 padding, used only to distribute a one-time
  16-byte message key to two independent key pairs
- AES-CBC with a random IV, used for the message body

Keys travel as PEM text. A handshake carries the public key with its line
breaks removed, so every loader here accepts single-line PEM and re-wraps it.

Weak point kept for wire compatibility: the AES key is the ASCII text of the
hex-encoded random bytes (32 characters, hence AES-256), not the bytes
themselves and not the output of a KDF. Changing this breaks every envelope
already in circulation.

Identity files are protected at rest with Argon2id + AES-256-GCM.

All cryptographic operations use well-tested, open-source libraries:
- cryptography library (Apache 2.0/BSD License)
- argon2-cffi (MIT License)
"""

import asyncio
import base64
import functools
import json
import logging
import os
import re
import secrets
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import (
    AES_BLOCK_SIZE,
    ARGON2_HASH_LEN,
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    IDENTITY_FILE_VERSION,
    NONCE_SIZE,
    PEM_LINE_LENGTH,
    RSA_KEY_SIZE,
    RSA_PUBLIC_EXPONENT,
    SALT_SIZE,
    SYMMETRIC_KEY_BYTES,
)
from .errors import CryptoError, ErrorCode

logger = logging.getLogger(__name__)

_PEM_BLOCK = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----(.*?)-----END \1-----", re.DOTALL)


@dataclass(frozen=True)
class DecryptResult:
    """Outcome of an RSA decryption attempt.

    A key that does not belong to the ciphertext is an expected outcome
    when probing envelope slots, so it is reported here instead of raised.
    """

    ok: bool
    plaintext: bytes = b""

    @classmethod
    def failed(cls) -> "DecryptResult":
        return cls(ok=False)


# PEM handling

def strip_pem(pem: str) -> str:
    """Remove line breaks, giving the single-line form used on the wire."""
    return pem.replace("\r", "").replace("\n", "")


def normalize_pem(text: str) -> str:
    """
    Re-wrap a PEM block so OpenSSL can parse it.

    Accepts both regular and single-line PEM. Text without a PEM block is
    returned unchanged and will fail to load.
    """
    match = _PEM_BLOCK.search(text)
    if not match:
        return text

    label = match.group(1)
    body = re.sub(r"\s+", "", match.group(2))
    lines = [body[i:i + PEM_LINE_LENGTH] for i in range(0, len(body), PEM_LINE_LENGTH)]
    return f"-----BEGIN {label}-----\n" + "\n".join(lines) + f"\n-----END {label}-----\n"


def load_public_key(pem: str) -> rsa.RSAPublicKey:
    """
    Load an RSA public key from PEM text.

    Raises:
        CryptoError: If the text is not an RSA public key
    """
    try:
        key = serialization.load_pem_public_key(normalize_pem(pem).encode("ascii"))
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm) as e:
        raise CryptoError(ErrorCode.E103_INVALID_KEY, f"Invalid public key: {e}") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise CryptoError(ErrorCode.E103_INVALID_KEY, "Public key is not an RSA key")
    return key


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    """
    Load an unencrypted RSA private key from PEM text.

    Raises:
        CryptoError: If the text is not an RSA private key
    """
    try:
        key = serialization.load_pem_private_key(
            normalize_pem(pem).encode("ascii"), password=None
        )
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm) as e:
        raise CryptoError(ErrorCode.E103_INVALID_KEY, f"Invalid private key: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise CryptoError(ErrorCode.E103_INVALID_KEY, "Private key is not an RSA key")
    return key


def validate_public_key(pem: str) -> bool:
    """Return True if ``pem`` parses as an RSA public key."""
    try:
        load_public_key(pem)
        return True
    except CryptoError:
        return False


def validate_private_key(pem: str) -> bool:
    """Return True if ``pem`` parses as an RSA private key."""
    try:
        load_private_key(pem)
        return True
    except CryptoError:
        return False


# Key pairs

def generate_key_pair(key_size: int = RSA_KEY_SIZE) -> Tuple[str, str]:
    """
    Generate an RSA key pair and return ``(public_pem, private_pem)``.

    The public key is SubjectPublicKeyInfo PEM and the private key is
    PKCS#1 ("RSA PRIVATE KEY") PEM. The caller is responsible for storing
    the private key securely.

    The modulus size fixes the envelope slot width (``key_size // 4`` hex
    characters), so peers must agree on it.

    Raises:
        CryptoError: If the key size is not supported
    """
    try:
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=key_size,
        )
    except ValueError as e:
        raise CryptoError(
            ErrorCode.E104_KEY_GENERATION_FAILED,
            f"Cannot generate {key_size}-bit RSA key: {e}",
            {"key_size": key_size},
        ) from e

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return public_pem, private_pem


async def generate_key_pair_async(key_size: int = RSA_KEY_SIZE) -> Tuple[str, str]:
    """Generate a key pair on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(generate_key_pair, key_size))


def get_key_size(pem: str) -> int:
    """Modulus size in bits of a public or private RSA key."""
    if "PRIVATE KEY" in pem:
        return load_private_key(pem).key_size
    return load_public_key(pem).key_size


# Asymmetric layer

def rsa_encrypt(public_key: str, data: bytes) -> bytes:
    """
    Encrypt ``data`` with PKCS#1 v1.5 padding.

    The ciphertext is exactly one modulus long.

    Raises:
        CryptoError: If the key is invalid or ``data`` is too long for it
    """
    key = load_public_key(public_key)
    try:
        return key.encrypt(data, padding.PKCS1v15())
    except ValueError as e:
        raise CryptoError(ErrorCode.E101_ENCRYPTION_FAILED, f"RSA encryption failed: {e}") from e


def rsa_decrypt(private_key: str, data: bytes) -> DecryptResult:
    """
    Decrypt PKCS#1 v1.5 ciphertext.

    Ciphertext produced for another key, invalid padding or a ciphertext of
    the wrong length all yield ``DecryptResult(ok=False)``.
    """
    try:
        key = load_private_key(private_key)
    except CryptoError as e:
        logger.debug(f"Cannot decrypt, private key unusable: {e}")
        return DecryptResult.failed()

    try:
        return DecryptResult(ok=True, plaintext=key.decrypt(data, padding.PKCS1v15()))
    except (ValueError, TypeError):
        return DecryptResult.failed()


# Symmetric layer

def generate_message_key(length: int = SYMMETRIC_KEY_BYTES) -> bytes:
    """Fresh random bytes for one message."""
    return os.urandom(length)


def aes_encrypt(message: str, key_material: str) -> str:
    """
    Encrypt ``message`` with AES-CBC under the ASCII bytes of ``key_material``.

    Returns hex of ``IV || ciphertext``; the IV is random per call.

    Raises:
        CryptoError: If the key material is not a valid AES key length
    """
    try:
        cipher_key = key_material.encode("ascii")
        iv = os.urandom(AES_BLOCK_SIZE)
        encryptor = Cipher(algorithms.AES(cipher_key), modes.CBC(iv)).encryptor()
    except (ValueError, UnicodeEncodeError) as e:
        raise CryptoError(ErrorCode.E101_ENCRYPTION_FAILED, f"Invalid AES key material: {e}") from e

    padder = sym_padding.PKCS7(AES_BLOCK_SIZE * 8).padder()
    padded = padder.update(message.encode("utf-8")) + padder.finalize()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return (iv + ciphertext).hex()


def aes_decrypt(ciphertext_hex: str, key_material: str) -> str:
    """
    Reverse :func:`aes_encrypt`.

    Raises:
        CryptoError: If the input is not hex, is truncated, was encrypted
            under another key, or does not decode as UTF-8
    """
    try:
        data = bytes.fromhex(ciphertext_hex)
        cipher_key = key_material.encode("ascii")
    except (ValueError, UnicodeEncodeError) as e:
        raise CryptoError(ErrorCode.E102_DECRYPTION_FAILED, f"Malformed AES input: {e}") from e

    if len(data) < 2 * AES_BLOCK_SIZE or len(data) % AES_BLOCK_SIZE:
        raise CryptoError(
            ErrorCode.E102_DECRYPTION_FAILED,
            "AES ciphertext has invalid length",
            {"length": len(data)},
        )

    iv, body = data[:AES_BLOCK_SIZE], data[AES_BLOCK_SIZE:]
    try:
        decryptor = Cipher(algorithms.AES(cipher_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = sym_padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise CryptoError(ErrorCode.E102_DECRYPTION_FAILED, f"AES decryption failed: {e}") from e


# Identity helpers

def generate_fingerprint(public_key: str) -> str:
    """
    SHA-256 fingerprint of the DER encoding of a public key, as 64 hex chars.

    Users compare fingerprints out of band before trusting a contact.
    """
    der = load_public_key(public_key).public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashes.Hash(hashes.SHA256())
    digest.update(der)
    return digest.finalize().hex()


def generate_uid() -> str:
    """32 lowercase hex characters of cryptographically secure randomness."""
    return secrets.token_hex(16)


def _derive_file_key(password: str, salt: bytes) -> bytes:
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )


def encrypt_identity_file(identity_data: Dict, password: str) -> Dict[str, str]:
    """
    Encrypt identity data with a password using Argon2id and AES-256-GCM.

    Each call uses a fresh 16-byte salt and 12-byte nonce.
    """
    salt = os.urandom(SALT_SIZE)
    key = _derive_file_key(password, salt)

    aesgcm = AESGCM(key)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, json.dumps(identity_data).encode("utf-8"), None)

    return {
        "salt": base64.b64encode(salt).decode("utf-8"),
        "nonce": base64.b64encode(nonce).decode("utf-8"),
        "ciphertext": base64.b64encode(ciphertext).decode("utf-8"),
        "version": IDENTITY_FILE_VERSION,
    }


def decrypt_identity_file(encrypted_data: Dict[str, str], password: str) -> Dict:
    """
    Decrypt identity data produced by :func:`encrypt_identity_file`.

    Raises:
        CryptoError: If the password is wrong or the data is corrupted
    """
    try:
        salt = base64.b64decode(encrypted_data["salt"])
        nonce = base64.b64decode(encrypted_data["nonce"])
        ciphertext = base64.b64decode(encrypted_data["ciphertext"])
    except (KeyError, TypeError, ValueError) as e:
        raise CryptoError(
            ErrorCode.E102_DECRYPTION_FAILED, f"Corrupted identity file: {e}"
        ) from e

    key = _derive_file_key(password, salt)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
        return json.loads(plaintext.decode("utf-8"))
    except (InvalidTag, ValueError) as e:
        raise CryptoError(
            ErrorCode.E102_DECRYPTION_FAILED,
            "Failed to decrypt identity. Incorrect password or corrupted file.",
        ) from e


def unwrap_message_key(
    private_key: str, slot_hex: str, key_bytes: int = SYMMETRIC_KEY_BYTES
) -> Optional[str]:
    """
    Recover the hex key material from one envelope slot, or None.

    Only a recovered key of exactly ``key_bytes`` bytes counts as success.
    """
    try:
        data = bytes.fromhex(slot_hex)
    except ValueError:
        return None

    result = rsa_decrypt(private_key, data)
    if not result.ok or len(result.plaintext) != key_bytes:
        return None
    return result.plaintext.hex()
