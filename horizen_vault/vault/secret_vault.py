"""Encrypted at-rest storage for provider API keys.

The whole secret record (provider -> credential) is stored as one AES-GCM
blob, base64(nonce || ciphertext), under ``secrets-vault-encrypted``. The
plaintext only ever exists in memory.
"""

import json
from typing import Any, Optional

from ..storage import LEGACY_PLAINTEXT_KEY, SECRETS_VAULT_KEY, KeyValueStore
from ..utils.logging import get_logger
from .crypto import AEADCipher, decode_b64, encode_b64
from .exceptions import DecryptionError, VaultCorruptedError, VaultError, VaultLockedError
from .keys import DeviceKeyStore, KeySource, resolve_key_source
from .session import SessionManager

logger = get_logger(__name__)

PROVIDERS = ("openai", "anthropic", "gemini")

PROVIDER_LABELS = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "gemini": "Google Gemini",
}


def validate_record(record: Any) -> dict[str, str]:
    """
    Check a secret record is a mapping of strings to strings.

    Raises:
        ValueError: If the shape is wrong
    """
    if not isinstance(record, dict):
        raise ValueError("Secret record must be a mapping")
    for provider, value in record.items():
        if not isinstance(provider, str) or not isinstance(value, str):
            raise ValueError(f"Secret for {provider!r} must be a string")
    return dict(record)


def encrypt_record(record: dict[str, str], key: bytes) -> bytes:
    """Encrypt a secret record under a key with a fresh nonce."""
    payload = json.dumps(validate_record(record)).encode("utf-8")
    return AEADCipher(key).encrypt(payload)


def decrypt_record(blob: bytes, key: bytes) -> dict[str, str]:
    """
    Decrypt a secret record.

    Raises:
        DecryptionError: Wrong key or corrupted ciphertext
        VaultCorruptedError: Decrypted payload is not a secret record
    """
    plaintext = AEADCipher(key).decrypt(blob)
    try:
        return validate_record(json.loads(plaintext.decode("utf-8")))
    except (UnicodeDecodeError, ValueError) as e:
        raise VaultCorruptedError(f"Decrypted secrets are malformed: {e}")


class SecretVault:
    """
    Reads and writes the encrypted secret record.

    Usage:
        vault = SecretVault(store, session)
        vault.write({"openai": "sk-..."})
        secrets = vault.read()
    """

    def __init__(
        self,
        store: KeyValueStore,
        session: SessionManager,
        device_keys: Optional[DeviceKeyStore] = None,
    ):
        self.store = store
        self.session = session
        self.device_keys = device_keys or DeviceKeyStore(store)

    def key_source(self) -> KeySource:
        """Resolve the key source for the current protection setting."""
        return resolve_key_source(self.session, self.device_keys)

    def get_active_key(self) -> bytes:
        """
        Get the key the vault is currently encrypted under.

        Raises:
            VaultLockedError: If protection is enabled and the session is locked
        """
        return self.key_source().resolve()

    def _ensure_accessible(self) -> None:
        if self.session.is_protection_enabled() and not self.session.is_unlocked():
            raise VaultLockedError()

    def has_blob(self) -> bool:
        """Check whether an encrypted record exists."""
        return self.store.get(SECRETS_VAULT_KEY) is not None

    def read_raw(self) -> Optional[bytes]:
        """Return the stored blob bytes, or None."""
        raw = self.store.get(SECRETS_VAULT_KEY)
        if raw is None:
            return None
        try:
            return decode_b64(raw)
        except VaultCorruptedError:
            raise DecryptionError()

    def write_raw(self, blob: bytes) -> None:
        """Replace the stored blob."""
        self.store.set(SECRETS_VAULT_KEY, encode_b64(blob))

    def delete(self) -> None:
        """Remove the encrypted record."""
        self.store.delete(SECRETS_VAULT_KEY)

    def read(self) -> dict[str, str]:
        """
        Decrypt and return the secret record.

        Returns:
            Provider -> credential mapping ({} if nothing is stored)

        Raises:
            VaultLockedError: If the session is locked
            DecryptionError: If the blob fails verification under the active key
        """
        self._ensure_accessible()

        blob = self.read_raw()
        if blob is None:
            return {}

        return decrypt_record(blob, self.get_active_key())

    def write(self, record: dict[str, str]) -> None:
        """
        Encrypt and store the secret record.

        Raises:
            VaultLockedError: If the session is locked
            ValueError: If the record is not a mapping of strings
        """
        self._ensure_accessible()
        self.write_raw(encrypt_record(record, self.get_active_key()))
        logger.debug(f"Secrets saved ({len(record)} provider(s))")

    def update_secret(self, provider: str, value: str) -> None:
        """Set one provider's credential."""
        current = self.read()
        current[provider] = value
        self.write(current)

    def clear_secret(self, provider: str) -> None:
        """Remove one provider's credential."""
        current = self.read()
        current.pop(provider, None)
        self.write(current)

    def has_secrets(self) -> bool:
        """Check for any known provider credential, treating errors as none."""
        try:
            secrets = self.read()
        except VaultError:
            return False
        return any(secrets.get(provider) for provider in PROVIDERS)

    def migrate_from_plaintext(self) -> bool:
        """
        Move a legacy cleartext record into the encrypted vault.

        Safe to run on every startup. If the encrypted vault already exists
        the cleartext copy is simply removed. While the session is locked
        the cleartext copy is kept so a later run can finish the job.

        Returns:
            True if a legacy record was encrypted

        Raises:
            VaultCorruptedError: If the legacy record is not a secret mapping
        """
        raw = self.store.get(LEGACY_PLAINTEXT_KEY)
        if raw is None:
            return False

        if self.has_blob():
            self.store.delete(LEGACY_PLAINTEXT_KEY)
            logger.info("Removed legacy plaintext secrets; encrypted vault already present")
            return False

        try:
            record = validate_record(json.loads(raw))
        except ValueError as e:
            raise VaultCorruptedError(f"Legacy secrets record is malformed: {e}")

        try:
            self.write(record)
        except VaultLockedError:
            logger.warning("Legacy secrets migration deferred: session is locked")
            return False

        self.store.delete(LEGACY_PLAINTEXT_KEY)
        logger.info(f"Migrated {len(record)} legacy secret(s) to encrypted storage")
        return True
