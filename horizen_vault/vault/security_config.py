"""Persisted password-protection settings.

The record is NOT encrypted - it contains only:
- Whether password protection is enabled
- Salt and iteration count for key derivation
- Session inactivity timeout
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from ..storage import SECURITY_CONFIG_KEY, KeyValueStore
from ..utils.logging import get_logger
from .crypto import PBKDF2_ITERATIONS, decode_b64, encode_b64
from .exceptions import VaultCorruptedError

logger = get_logger(__name__)


@dataclass
class SecurityConfig:
    """Password protection state stored under ``security-config``."""

    enabled: bool = False
    salt: bytes = field(default_factory=bytes)
    iterations: int = PBKDF2_ITERATIONS
    session_timeout_minutes: int = 30

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "enabled": self.enabled,
            "salt": encode_b64(self.salt),
            "iterations": self.iterations,
            "sessionTimeout": self.session_timeout_minutes,
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SecurityConfig":
        """Create from dictionary."""
        timeout = data.get("sessionTimeout", data.get("sessionTimeoutMinutes", 30))
        return cls(
            enabled=bool(data.get("enabled", False)),
            salt=decode_b64(data["salt"]),
            iterations=int(data.get("iterations", PBKDF2_ITERATIONS)),
            session_timeout_minutes=int(timeout),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "SecurityConfig":
        """Deserialize from JSON string."""
        try:
            data = json.loads(json_str)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return cls.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise VaultCorruptedError(f"Invalid security config: {e}")


class SecurityConfigStore:
    """Loads and saves the SecurityConfig record."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> Optional[SecurityConfig]:
        """
        Load the security config.

        Returns:
            SecurityConfig, or None if absent or unreadable
        """
        raw = self.store.get(SECURITY_CONFIG_KEY)
        if raw is None:
            return None
        try:
            return SecurityConfig.from_json(raw)
        except VaultCorruptedError as e:
            logger.error(f"Failed to load security config: {e}")
            return None

    def save(self, config: SecurityConfig) -> None:
        """Persist the security config."""
        self.store.set(SECURITY_CONFIG_KEY, config.to_json())
        logger.debug(f"Security config saved (enabled={config.enabled})")

    def is_enabled(self) -> bool:
        """Password protection is opt-in; an absent record means disabled."""
        config = self.load()
        return config is not None and config.enabled
