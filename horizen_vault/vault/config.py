"""Vault configuration for the Horizen secrets vault."""

import os
from dataclasses import dataclass


@dataclass
class VaultConfig:
    """Configuration for vault encryption operations."""

    # Key derivation
    pbkdf2_iterations: int = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256
    salt_size: int = 32  # 256 bits

    # Session management
    session_timeout_minutes: int = 30

    # Passwords
    min_password_length: int = 6

    # Pre-import snapshots kept in storage
    snapshot_limit: int = 5

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            VAULT_SESSION_TIMEOUT: Session timeout in minutes (default: 30)
            VAULT_PBKDF2_ITERATIONS: PBKDF2 iteration count for new passwords
        """
        config = cls()

        if timeout := os.getenv("VAULT_SESSION_TIMEOUT"):
            config.session_timeout_minutes = int(timeout)

        if iterations := os.getenv("VAULT_PBKDF2_ITERATIONS"):
            config.pbkdf2_iterations = int(iterations)

        return config


# Global configuration instance
_config: VaultConfig | None = None


def get_vault_config() -> VaultConfig:
    """Get the global vault configuration."""
    global _config
    if _config is None:
        _config = VaultConfig.from_env()
    return _config


def set_vault_config(config: VaultConfig) -> None:
    """Set the global vault configuration."""
    global _config
    _config = config
