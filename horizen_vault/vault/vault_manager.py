"""Vault manager: the operation surface used by the rest of the application.

Owns the session, the device key store and the secret vault for one
storage backend.
"""

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from ..storage import JsonFileStore, KeyValueStore
from ..utils.logging import get_logger
from . import migration
from .config import VaultConfig, get_vault_config
from .keys import DeviceKeyStore
from .password import PasswordValidation, validate_password_strength
from .secret_vault import SecretVault
from .session import SessionManager

logger = get_logger(__name__)


@dataclass
class VaultStatus:
    """Snapshot of protection and session state."""

    protection_enabled: bool
    unlocked: bool
    has_encrypted_secrets: bool
    time_remaining: Optional[timedelta] = None


class VaultManager:
    """
    Manages password protection and encrypted secrets for one store.

    Usage:
        vm = VaultManager(JsonFileStore(path))
        vm.startup()

        if not vm.is_session_unlocked():
            vm.unlock_with_password(password)

        secrets = vm.get_secrets()
        vm.save_secrets({**secrets, "openai": "sk-..."})
    """

    def __init__(self, store: KeyValueStore, config: Optional[VaultConfig] = None):
        """
        Initialize vault manager.

        Args:
            store: Storage backend for all vault records
            config: Vault configuration (uses global if not provided)
        """
        self.store = store
        self.config = config or get_vault_config()
        self.session = SessionManager(store, self.config)
        self.device_keys = DeviceKeyStore(store)
        self.vault = SecretVault(store, self.session, self.device_keys)

    @classmethod
    def open(cls, path: Path, config: Optional[VaultConfig] = None) -> "VaultManager":
        """Create a manager backed by a JSON store file."""
        return cls(JsonFileStore(path), config)

    def startup(self) -> bool:
        """
        Run one-time maintenance at application start.

        Returns:
            True if legacy plaintext secrets were migrated
        """
        return self.migrate_legacy_secrets()

    # Status

    def is_password_protection_enabled(self) -> bool:
        """Check whether password protection is enabled."""
        return self.session.is_protection_enabled()

    def is_session_unlocked(self) -> bool:
        """Check whether secrets are accessible right now."""
        return self.session.is_unlocked()

    def get_derived_key(self) -> Optional[bytes]:
        """Get the session's password-derived key (None when locked or disabled)."""
        return self.session.get_derived_key()

    def status(self) -> VaultStatus:
        """Get protection and session state."""
        return VaultStatus(
            protection_enabled=self.is_password_protection_enabled(),
            unlocked=self.is_session_unlocked(),
            has_encrypted_secrets=self.vault.has_blob(),
            time_remaining=self.session.time_remaining(),
        )

    # Session lifecycle

    def lock_session(self) -> None:
        """Lock the session."""
        self.session.lock()

    def unlock_with_password(self, password: str) -> bool:
        """Unlock the session. Returns False on a wrong password."""
        return self.session.unlock(password)

    def refresh_session(self) -> None:
        """Extend the session on user activity."""
        self.session.refresh()

    # Protection changes

    def setup_password(self, password: str) -> None:
        """Enable password protection, re-encrypting existing secrets."""
        migration.enable_password_protection(self.session, self.vault, password)

    def change_password(self, old_password: str, new_password: str) -> bool:
        """Change the password. Returns False if old_password is wrong."""
        return migration.change_password(self.session, self.vault, old_password, new_password)

    def disable_password_protection(self) -> None:
        """Disable password protection, re-encrypting secrets under a device key."""
        migration.disable_password_protection(self.session, self.vault)

    def reset_protection(self) -> None:
        """Forgotten-password recovery. Discards stored secrets."""
        migration.reset_protection(self.session, self.vault)

    def validate_password_strength(self, password: str) -> PasswordValidation:
        """Check a candidate password's strength."""
        return validate_password_strength(password, self.config.min_password_length)

    # Secrets

    def get_secrets(self) -> dict[str, str]:
        """Get all stored secrets."""
        return self.vault.read()

    def save_secrets(self, secrets: dict[str, str]) -> None:
        """Replace all stored secrets."""
        self.vault.write(secrets)

    def update_secret(self, provider: str, value: str) -> None:
        """Set one provider's secret."""
        self.vault.update_secret(provider, value)

    def clear_secret(self, provider: str) -> None:
        """Remove one provider's secret."""
        self.vault.clear_secret(provider)

    def has_secrets(self) -> bool:
        """Check whether any provider secret is stored and readable."""
        return self.vault.has_secrets()

    def reencrypt_secrets(self, old_key: bytes, new_key: bytes) -> bool:
        """Re-encrypt stored secrets from one key to another."""
        return migration.reencrypt_secrets(self.vault, old_key, new_key)

    def migrate_legacy_secrets(self) -> bool:
        """Encrypt any legacy plaintext secrets."""
        return self.vault.migrate_from_plaintext()


def get_vault_manager(store_path: Optional[Path] = None) -> VaultManager:
    """Get a vault manager for a store file (defaults to the configured path)."""
    if store_path is None:
        from ..config.settings import get_settings

        store_path = get_settings().store_path
    return VaultManager.open(store_path)
