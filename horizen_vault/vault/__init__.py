"""Secrets vault for the Horizen start page.

Protects provider API keys at rest with AES-256-GCM. The key is either a
random device key or, once password protection is enabled, derived from the
user's password with PBKDF2-HMAC-SHA256.

Usage:
    from horizen_vault.vault import VaultManager

    vm = VaultManager.open(store_path)
    vm.startup()

    if vm.is_password_protection_enabled() and not vm.is_session_unlocked():
        vm.unlock_with_password(password)

    secrets = vm.get_secrets()
"""

# Exceptions
from .exceptions import (
    DecryptionError,
    EncryptionError,
    ExportError,
    ImportValidationError,
    IntegrityError,
    KeyRotationError,
    PasswordRequiredError,
    VaultCorruptedError,
    VaultError,
    VaultLockedError,
)

# Configuration
from .config import (
    VaultConfig,
    get_vault_config,
    set_vault_config,
)

# Primitives
from .crypto import AEADCipher, KeyDerivation

# Session management
from .security_config import SecurityConfig, SecurityConfigStore
from .session import SessionManager, SessionState

# Secrets
from .keys import DeviceKeySource, DeviceKeyStore, KeySource, PasswordKeySource
from .password import PasswordValidation, validate_password_strength
from .secret_vault import PROVIDER_LABELS, PROVIDERS, SecretVault

# Vault operations
from .vault_manager import VaultManager, VaultStatus, get_vault_manager

# Migration tools
from .migration import (
    change_password,
    disable_password_protection,
    enable_password_protection,
    reencrypt_secrets,
    reset_protection,
)

__all__ = [
    # Exceptions
    "VaultError",
    "VaultLockedError",
    "DecryptionError",
    "EncryptionError",
    "VaultCorruptedError",
    "KeyRotationError",
    "ExportError",
    "ImportValidationError",
    "IntegrityError",
    "PasswordRequiredError",
    # Configuration
    "VaultConfig",
    "get_vault_config",
    "set_vault_config",
    # Primitives
    "AEADCipher",
    "KeyDerivation",
    # Session
    "SecurityConfig",
    "SecurityConfigStore",
    "SessionManager",
    "SessionState",
    # Secrets
    "KeySource",
    "DeviceKeySource",
    "PasswordKeySource",
    "DeviceKeyStore",
    "SecretVault",
    "PROVIDERS",
    "PROVIDER_LABELS",
    "PasswordValidation",
    "validate_password_strength",
    # Vault manager
    "VaultManager",
    "VaultStatus",
    "get_vault_manager",
    # Migration
    "reencrypt_secrets",
    "enable_password_protection",
    "disable_password_protection",
    "change_password",
    "reset_protection",
]
