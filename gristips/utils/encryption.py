"""Encryption of third-party API keys at rest.

Blobs are ``base64(salt || iv || ciphertext || tag)``:

- salt: 64 random bytes, fed to PBKDF2-HMAC-SHA512 (100 000 iterations)
  together with the master key; the 64 derived bytes are split into an
  AES-256 key and an HMAC-SHA256 key.
- iv: 16 random bytes for AES-256-CBC (PKCS7 padding).
- tag: HMAC-SHA256 over everything before it, checked before decrypting so a
  tampered blob is rejected instead of decrypting to garbage.

Security Note:
    Never log plaintext secrets; use ``mask_secret`` when a key must appear
    in a log line.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import secrets

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from gristips.constants import (
    ENCRYPTION_KEY_MIN_LENGTH,
    IV_LENGTH,
    KEY_LENGTH,
    MAC_LENGTH,
    PBKDF2_ITERATIONS,
    SALT_LENGTH,
)
from gristips.exceptions import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

_BLOCK_SIZE = 16
_MIN_BLOB_LENGTH = SALT_LENGTH + IV_LENGTH + _BLOCK_SIZE + MAC_LENGTH


def _derive_keys(master_key: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """Derive the (encryption key, MAC key) pair for one blob."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH + MAC_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    derived = kdf.derive(master_key)
    return derived[:KEY_LENGTH], derived[KEY_LENGTH:]


class SecretCipher:
    """Encrypts and decrypts secrets with a process-wide master key.

    Built once from validated settings and shared by the request handlers.

    Usage:
        cipher = SecretCipher(settings.encryption_key)
        blob = cipher.encrypt("grist-api-key")
        cipher.decrypt(blob)  # "grist-api-key"
    """

    def __init__(self, master_key: str | None):
        if not master_key:
            raise ConfigurationError("ENCRYPTION_KEY environment variable is required")
        if len(master_key) < ENCRYPTION_KEY_MIN_LENGTH:
            raise ConfigurationError(
                f"ENCRYPTION_KEY must be at least {ENCRYPTION_KEY_MIN_LENGTH} characters long"
            )
        self._master_key = master_key.encode("utf-8")

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string.

        Args:
            plaintext: Text to encrypt (may be empty)

        Returns:
            Base64 blob; a fresh salt and IV make every call return a different value
        """
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        enc_key, mac_key = _derive_keys(self._master_key, salt)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        body = salt + iv + ciphertext
        tag = hmac.new(mac_key, body, hashlib.sha256).digest()
        return base64.b64encode(body + tag).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by ``encrypt``.

        Raises:
            DecryptionError: If the blob is malformed, truncated, tampered with,
                or was encrypted under another master key
        """
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionError(f"Decryption failed: invalid base64 ({e})") from e

        if len(raw) < _MIN_BLOB_LENGTH:
            raise DecryptionError("Decryption failed: data is truncated")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        ciphertext = raw[SALT_LENGTH + IV_LENGTH:-MAC_LENGTH]
        tag = raw[-MAC_LENGTH:]

        if len(ciphertext) % _BLOCK_SIZE:
            raise DecryptionError("Decryption failed: ciphertext is not block aligned")

        enc_key, mac_key = _derive_keys(self._master_key, salt)
        expected = hmac.new(mac_key, raw[:-MAC_LENGTH], hashlib.sha256).digest()
        if not hmac.compare_digest(expected, tag):
            raise DecryptionError("Decryption failed: integrity check failed")

        decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise DecryptionError(f"Decryption failed: {e}") from e


def hash_secret(plaintext: str) -> str:
    """SHA-256 hex digest of a secret, stored next to its encrypted blob."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def verify_secret_hash(plaintext: str, secret_hash: str) -> bool:
    """Check a secret against a stored ``hash_secret`` digest in constant time."""
    if not isinstance(secret_hash, str):
        return False
    computed = hash_secret(plaintext)
    try:
        return hmac.compare_digest(computed, secret_hash)
    except TypeError:
        # Non-ASCII input cannot be a hex digest
        return False


def generate_encryption_key(length: int = 48) -> str:
    """Generate a random master key suitable for ENCRYPTION_KEY.

    Args:
        length: Number of random bytes (the encoded key is longer)

    Returns:
        URL-safe base64-encoded random string
    """
    return secrets.token_urlsafe(length)


def mask_secret(secret: str, visible_chars: int = 4) -> str:
    """Mask a secret for logging purposes.

    Args:
        secret: Secret to mask
        visible_chars: Number of characters to show at start and end

    Returns:
        Masked secret like "abcd...wxyz"
    """
    if len(secret) <= visible_chars * 2:
        return "*" * len(secret)
    return f"{secret[:visible_chars]}...{secret[-visible_chars:]}"
