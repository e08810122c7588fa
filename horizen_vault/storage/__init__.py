"""Persistent key-value storage for vault records."""

from .store import JsonFileStore, KeyValueStore, MemoryStore

# Record names
SECURITY_CONFIG_KEY = "security-config"
VERIFICATION_TOKEN_KEY = "security-verification-token"
SECRETS_VAULT_KEY = "secrets-vault-encrypted"
DEVICE_KEY_KEY = "device-key"
LEGACY_PLAINTEXT_KEY = "secrets-vault-plaintext"
SNAPSHOT_PREFIX = "horizen:backup:"

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "SECURITY_CONFIG_KEY",
    "VERIFICATION_TOKEN_KEY",
    "SECRETS_VAULT_KEY",
    "DEVICE_KEY_KEY",
    "LEGACY_PLAINTEXT_KEY",
    "SNAPSHOT_PREFIX",
]
