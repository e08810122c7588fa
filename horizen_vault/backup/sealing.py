"""Per-section encryption and integrity hashing for backup bundles.

Every sealed section in one bundle shares a random 32-byte salt and a key
derived from the export password. The salt is independent of the live
vault's salt. Each section gets its own nonce.
"""

import json
from typing import Any

from ..utils.hash import digests_match, hash_json
from ..vault.crypto import PBKDF2_ITERATIONS, AEADCipher, KeyDerivation, decode_b64, encode_b64
from ..vault.exceptions import DecryptionError, ExportError, ImportValidationError, VaultCorruptedError
from .models import EncryptedSection

HASHED_FIELDS = ("contents", "encryptedSections")

INVALID_TEXT_MESSAGE = "Backup data contains text that is not valid Unicode."


def derive_section_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Derive the key shared by all sections of one bundle."""
    return KeyDerivation.derive_key(password, salt, iterations)


def seal_with_key(value: Any, key: bytes) -> EncryptedSection:
    """
    Encrypt a JSON-compatible value under an already derived key.

    Raises:
        ExportError: The value holds text UTF-8 cannot encode
    """
    try:
        payload = json.dumps(value, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as e:
        raise ExportError(INVALID_TEXT_MESSAGE) from e
    nonce, ciphertext = AEADCipher(key).encrypt_parts(payload)
    return EncryptedSection(data=encode_b64(ciphertext), iv=encode_b64(nonce))


def open_with_key(section: EncryptedSection, key: bytes) -> Any:
    """
    Decrypt a sealed section under an already derived key.

    Raises:
        DecryptionError: Wrong password or tampered section
        ImportValidationError: Decrypted payload is not JSON
    """
    try:
        nonce = decode_b64(section.iv)
        ciphertext = decode_b64(section.data)
    except VaultCorruptedError:
        raise DecryptionError()

    plaintext = AEADCipher(key).decrypt_parts(nonce, ciphertext)
    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ImportValidationError("Decrypted section is not valid JSON.")


def seal_section(
    value: Any,
    password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> EncryptedSection:
    """
    Encrypt one section of a bundle.

    Args:
        value: JSON-compatible section value
        password: Export password
        salt: Bundle salt
        iterations: PBKDF2 iteration count

    Returns:
        EncryptedSection with base64 ciphertext and nonce
    """
    return seal_with_key(value, derive_section_key(password, salt, iterations))


def open_section(
    section: EncryptedSection,
    password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> Any:
    """
    Decrypt one section of a bundle.

    Raises:
        DecryptionError: Wrong password or tampered section
    """
    return open_with_key(section, derive_section_key(password, salt, iterations))


def compute_hash(bundle: dict[str, Any]) -> str:
    """
    Compute a bundle's integrity hash.

    Covers the ``contents`` and ``encryptedSections`` fields that are
    present, in that order.

    Returns:
        Digest in the form "sha256:<hex>"
    """
    payload = {name: bundle[name] for name in HASHED_FIELDS if bundle.get(name) is not None}
    return hash_json(payload)


def verify_hash(bundle: dict[str, Any]) -> bool:
    """
    Check a bundle against its recorded hash.

    Bundles written before hashing was introduced carry no hash and are
    accepted.
    """
    expected = bundle.get("hash")
    if not expected:
        return True
    if not isinstance(expected, str):
        return False
    return digests_match(expected, compute_hash(bundle))
