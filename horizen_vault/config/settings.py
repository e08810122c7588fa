"""Configuration settings for the Horizen vault."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..vault.config import VaultConfig

# NOTE: load_dotenv() is called in CLI main.py for faster module imports
# from dotenv import load_dotenv
# load_dotenv()


def _default_store_path() -> Path:
    return Path.home() / ".local" / "share" / "horizen_vault" / "store.json"


@dataclass
class Settings:
    """Main settings container."""

    vault: VaultConfig = field(default_factory=VaultConfig.from_env)

    # Paths
    store_path: Path = field(default_factory=_default_store_path)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        settings = cls()

        if store_path := os.getenv("HORIZEN_VAULT_STORE"):
            settings.store_path = Path(store_path).expanduser()

        if log_level := os.getenv("LOG_LEVEL"):
            settings.log_level = log_level

        if log_file := os.getenv("HORIZEN_VAULT_LOG_FILE"):
            settings.log_file = Path(log_file).expanduser()

        return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Settings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings
