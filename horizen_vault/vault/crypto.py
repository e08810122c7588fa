"""Core cryptographic primitives for the secrets vault.

Uses the cryptography library for:
- PBKDF2-HMAC-SHA256 key derivation (600,000 iterations per OWASP 2023)
- AES-256-GCM authenticated encryption for the vault blob, the password
  verification token and export sections
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DecryptionError, EncryptionError, VaultCorruptedError

# Key derivation parameters (OWASP 2023 recommendations)
PBKDF2_ITERATIONS = 600_000
SALT_SIZE = 32  # 256 bits
KEY_SIZE = 32  # 256 bits for AES-256

NONCE_SIZE = 12  # 96 bits for AES-GCM
TAG_SIZE = 16  # 128-bit authentication tag

# Known plaintext encrypted under a new password key
VERIFICATION_PLAINTEXT = b"password_verification_token"


def _zero(buffer: bytearray) -> None:
    """Overwrite a mutable buffer in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


class KeyDerivation:
    """Derives encryption keys from passwords using PBKDF2."""

    @staticmethod
    def generate_salt(size: int = SALT_SIZE) -> bytes:
        """Generate cryptographically secure random salt."""
        return os.urandom(size)

    @staticmethod
    def generate_device_key() -> bytes:
        """Generate a random 256-bit device key."""
        return AESGCM.generate_key(bit_length=KEY_SIZE * 8)

    @staticmethod
    def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
        """
        Derive a 256-bit key from password using PBKDF2-HMAC-SHA256.

        The UTF-8 password bytes live in a bytearray that is zeroed once
        derivation finishes. Python offers no stronger guarantee than this.

        Args:
            password: User password
            salt: Random salt (stored alongside the encrypted data)
            iterations: PBKDF2 iteration count

        Returns:
            32-byte derived key

        Raises:
            ValueError: If salt is empty or iterations is not positive
        """
        if not salt:
            raise ValueError("Salt must not be empty")
        if iterations <= 0:
            raise ValueError("Iterations must be a positive integer")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=iterations,
        )
        password_buffer = bytearray(password.encode("utf-8"))
        try:
            return kdf.derive(password_buffer)
        finally:
            _zero(password_buffer)


class AEADCipher:
    """
    AES-256-GCM encryption bound to one key.

    Every encryption draws a fresh random 96-bit nonce.

    Blob format: [nonce (12 bytes)] [ciphertext] [tag (16 bytes)]
    """

    def __init__(self, key: bytes):
        """
        Initialize with a 256-bit key.

        Args:
            key: 32-byte encryption key (raw, not base64 encoded)
        """
        if len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        self.aesgcm = AESGCM(key)

    def encrypt_parts(self, plaintext: bytes) -> tuple[bytes, bytes]:
        """Encrypt and return (nonce, ciphertext_with_tag)."""
        nonce = os.urandom(NONCE_SIZE)
        try:
            ciphertext = self.aesgcm.encrypt(nonce, plaintext, None)
        except Exception as e:
            raise EncryptionError(f"AES-GCM encryption failed: {e}")
        return nonce, ciphertext

    def decrypt_parts(self, nonce: bytes, ciphertext: bytes) -> bytes:
        """Decrypt a (nonce, ciphertext_with_tag) pair."""
        if len(nonce) != NONCE_SIZE or len(ciphertext) < TAG_SIZE:
            raise DecryptionError()
        try:
            return self.aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise DecryptionError()

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt data.

        Args:
            plaintext: Data to encrypt

        Returns:
            nonce || ciphertext || tag
        """
        nonce, ciphertext = self.encrypt_parts(plaintext)
        return nonce + ciphertext

    def decrypt(self, blob: bytes) -> bytes:
        """
        Decrypt a nonce-prefixed blob.

        Raises:
            DecryptionError: On a wrong key, tampering or a truncated blob
        """
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError()
        return self.decrypt_parts(blob[:NONCE_SIZE], blob[NONCE_SIZE:])


def encode_b64(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_b64(text: str) -> bytes:
    """
    Decode standard base64 text.

    Raises:
        VaultCorruptedError: If the text is not valid base64
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise VaultCorruptedError(f"Invalid base64 data: {e}")
