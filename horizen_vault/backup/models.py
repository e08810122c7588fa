"""Backup bundle data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

EXPORT_VERSION = "2.0.0"
APP_VERSION = "1.5.0"


class Section(str, Enum):
    """Exportable sections of application data."""

    API_KEYS = "apiKeys"
    CHATS = "chats"
    SETTINGS = "settings"
    WIDGETS = "widgets"


SECTION_NAMES = tuple(s.value for s in Section)

# Items of the settings section
SETTING_ITEMS = ("searchEngine", "quickLinks", "keyboardShortcuts", "chatPreferences")


@dataclass
class EncryptedSection:
    """One AES-GCM sealed section: base64 ciphertext and base64 nonce."""

    data: str
    iv: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {"data": self.data, "iv": self.iv}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncryptedSection":
        """Create from dictionary."""
        return cls(data=data["data"], iv=data["iv"])


@dataclass
class ExportBundle:
    """A format 2.0.0 backup bundle."""

    exported_at: str
    encrypted: bool = False
    version: str = EXPORT_VERSION
    app_version: str = APP_VERSION
    contents: dict[str, Any] = field(default_factory=dict)
    salt: Optional[str] = None
    iterations: Optional[int] = None
    encrypted_sections: Optional[dict[str, EncryptedSection]] = None
    hash: Optional[str] = None

    @staticmethod
    def timestamp(now: Optional[datetime] = None) -> str:
        """Format an export time the way the web app does (UTC, milliseconds, Z)."""
        now = now or datetime.now(timezone.utc)
        now = now.astimezone(timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

    @property
    def section_names(self) -> list[str]:
        """Names of all sections present, sealed or not."""
        names = list(self.contents)
        if self.encrypted_sections:
            names.extend(n for n in self.encrypted_sections if n not in names)
        return names

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "version": self.version,
            "appVersion": self.app_version,
            "exportedAt": self.exported_at,
            "encrypted": self.encrypted,
            "contents": self.contents,
        }
        if self.salt is not None:
            data["salt"] = self.salt
        if self.iterations is not None:
            data["iterations"] = self.iterations
        if self.encrypted_sections is not None:
            data["encryptedSections"] = {
                name: section.to_dict() for name, section in self.encrypted_sections.items()
            }
        if self.hash is not None:
            data["hash"] = self.hash
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExportBundle":
        """Create from dictionary. Shape must already be validated."""
        sections = data.get("encryptedSections")
        return cls(
            version=data["version"],
            app_version=data.get("appVersion", APP_VERSION),
            exported_at=data["exportedAt"],
            encrypted=data["encrypted"],
            contents=data.get("contents") or {},
            salt=data.get("salt"),
            iterations=data.get("iterations"),
            encrypted_sections=(
                {name: EncryptedSection.from_dict(s) for name, s in sections.items()}
                if sections is not None
                else None
            ),
            hash=data.get("hash"),
        )


@dataclass
class ExportSelection:
    """
    What to include in an export.

    Each field is None when the section is not selected. Otherwise it holds
    the chosen items: provider names, chat ids, setting names or widget ids.
    """

    api_keys: Optional[set[str]] = None
    chats: Optional[set[str]] = None
    settings: Optional[set[str]] = None
    widgets: Optional[set[str]] = None

    @classmethod
    def everything(cls, app_data: dict[str, Any], providers: Optional[set[str]] = None) -> "ExportSelection":
        """
        Select every item in app_data.

        Args:
            app_data: Application data ({"chats": [...], "settings": {...}, "widgets": [...]})
            providers: Providers to export secrets for (None skips secrets)
        """
        return cls(
            api_keys=providers,
            chats={c["id"] for c in app_data.get("chats", [])},
            settings=set(app_data.get("settings", {})),
            widgets={w["id"] for w in app_data.get("widgets", [])},
        )


@dataclass
class MergeStrategies:
    """How imported non-secret sections combine with current data."""

    chats: str = "append"  # append, replace
    quick_links: str = "merge"  # merge, replace
    widgets: str = "merge"  # merge, replace


@dataclass
class ImportResult:
    """Outcome of an import."""

    format_version: str
    api_keys: list[str] = field(default_factory=list)
    sections: dict[str, Any] = field(default_factory=dict)
    snapshot_key: Optional[str] = None

    @property
    def imported_sections(self) -> list[str]:
        """Names of everything the bundle delivered."""
        names = [Section.API_KEYS.value] if self.api_keys else []
        return names + list(self.sections)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "format_version": self.format_version,
            "api_keys": self.api_keys,
            "sections": self.sections,
            "snapshot_key": self.snapshot_key,
        }
