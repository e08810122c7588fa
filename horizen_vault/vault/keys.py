"""Key sources for the secrets vault.

Two regimes share one vault format:
- DeviceKeySource: a random key kept in clear storage, used while password
  protection is disabled
- PasswordKeySource: the session's password-derived key

The active source is resolved on every vault access.
"""

from dataclasses import dataclass
from typing import Optional

from ..storage import DEVICE_KEY_KEY, KeyValueStore
from ..utils.logging import get_logger
from .crypto import KEY_SIZE, KeyDerivation, decode_b64, encode_b64
from .exceptions import VaultCorruptedError, VaultLockedError
from .session import SessionManager

logger = get_logger(__name__)


class DeviceKeyStore:
    """Persists the single device key."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> Optional[bytes]:
        """
        Load the stored device key.

        Returns:
            32-byte key, or None if absent or unreadable
        """
        raw = self.store.get(DEVICE_KEY_KEY)
        if raw is None:
            return None
        try:
            key = decode_b64(raw)
        except VaultCorruptedError:
            logger.warning("Stored device key is not valid base64")
            return None
        if len(key) != KEY_SIZE:
            logger.warning(f"Stored device key has wrong length ({len(key)} bytes)")
            return None
        return key

    def save(self, key: bytes) -> None:
        """Persist a device key, replacing any existing one."""
        if len(key) != KEY_SIZE:
            raise ValueError(f"Device key must be {KEY_SIZE} bytes, got {len(key)}")
        self.store.set(DEVICE_KEY_KEY, encode_b64(key))

    def get_or_create(self) -> bytes:
        """Return the device key, generating and persisting one on first use."""
        key = self.load()
        if key is None:
            key = KeyDerivation.generate_device_key()
            self.save(key)
            logger.info("Generated new device key")
        return key

    def clear(self) -> None:
        """Remove the device key."""
        if self.store.delete(DEVICE_KEY_KEY):
            logger.debug("Device key removed")


class KeySource:
    """Resolves the key used to encrypt the vault."""

    name = "abstract"

    def resolve(self) -> bytes:
        raise NotImplementedError


@dataclass
class DeviceKeySource(KeySource):
    """Device-bound key regime."""

    device_keys: DeviceKeyStore
    name = "device"

    def resolve(self) -> bytes:
        return self.device_keys.get_or_create()


@dataclass
class PasswordKeySource(KeySource):
    """Password-derived key regime."""

    session: SessionManager
    name = "password"

    def resolve(self) -> bytes:
        key = self.session.get_derived_key()
        if key is None:
            raise VaultLockedError()
        return key


def resolve_key_source(session: SessionManager, device_keys: DeviceKeyStore) -> KeySource:
    """Pick the key source for the current protection setting."""
    if session.is_protection_enabled():
        return PasswordKeySource(session)
    return DeviceKeySource(device_keys)
