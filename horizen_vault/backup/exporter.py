"""Backup export.

Builds a format 2.0.0 bundle from the vault's secrets and the application
data handed in by the caller. With a password every section is sealed;
without one, non-secret sections are written in cleartext and secrets are
refused.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..utils.hash import is_utf8_encodable
from ..utils.logging import get_logger
from ..vault.crypto import KeyDerivation, encode_b64
from ..vault.exceptions import ExportError
from ..vault.secret_vault import PROVIDERS
from ..vault.vault_manager import VaultManager
from .models import SETTING_ITEMS, ExportBundle, ExportSelection, Section
from .sealing import INVALID_TEXT_MESSAGE, compute_hash, derive_section_key, seal_with_key

logger = get_logger(__name__)


def collect_api_keys(secrets: dict[str, str], providers: set[str]) -> dict[str, str]:
    """Pick the selected providers' non-empty secrets."""
    return {p: secrets[p] for p in PROVIDERS if p in providers and secrets.get(p)}


def collect_chats(app_data: dict[str, Any], chat_ids: set[str]) -> list[dict[str, Any]]:
    """Pick selected conversations, never ghost-mode ones."""
    return [
        chat for chat in app_data.get("chats", [])
        if not chat.get("isGhostMode") and chat.get("id") in chat_ids
    ]


def collect_settings(app_data: dict[str, Any], items: set[str]) -> dict[str, Any]:
    """Pick selected settings items."""
    settings = app_data.get("settings", {})
    known = [name for name in SETTING_ITEMS if name in items and name in settings]
    extra = sorted(name for name in items if name not in SETTING_ITEMS and name in settings)
    return {name: settings[name] for name in known + extra}


def collect_widgets(app_data: dict[str, Any], widget_ids: set[str]) -> list[dict[str, Any]]:
    """Pick selected widgets."""
    return [w for w in app_data.get("widgets", []) if w.get("id") in widget_ids]


def export_bundle(
    vault_manager: VaultManager,
    app_data: dict[str, Any],
    selection: ExportSelection,
    password: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExportBundle:
    """
    Build a backup bundle.

    Args:
        vault_manager: Vault holding the secrets
        app_data: Non-secret application data ({"chats", "settings", "widgets"})
        selection: Sections and items to include
        password: Export password (required when secrets are selected)
        now: Export time (defaults to the current time)

    Returns:
        ExportBundle with its integrity hash set

    Raises:
        ExportError: If secrets are selected without a password, or the data
            holds text that is not valid Unicode
        VaultLockedError: If secrets are selected and the session is locked
    """
    if selection.api_keys and not password:
        raise ExportError("API keys must be exported with encryption")

    values: dict[str, Any] = {}

    if selection.api_keys:
        values[Section.API_KEYS.value] = collect_api_keys(vault_manager.get_secrets(), selection.api_keys)
    if selection.chats is not None:
        values[Section.CHATS.value] = collect_chats(app_data, selection.chats)
    if selection.settings is not None:
        values[Section.SETTINGS.value] = collect_settings(app_data, selection.settings)
    if selection.widgets is not None:
        values[Section.WIDGETS.value] = collect_widgets(app_data, selection.widgets)

    if not is_utf8_encodable(values):
        raise ExportError(INVALID_TEXT_MESSAGE)

    bundle = ExportBundle(
        exported_at=ExportBundle.timestamp(now),
        encrypted=bool(password),
    )

    if password:
        config = vault_manager.config
        salt = KeyDerivation.generate_salt(config.salt_size)
        key = derive_section_key(password, salt, config.pbkdf2_iterations)
        bundle.salt = encode_b64(salt)
        bundle.iterations = config.pbkdf2_iterations
        bundle.encrypted_sections = {
            name: seal_with_key(value, key) for name, value in values.items() if value
        }
    else:
        bundle.contents = {name: value for name, value in values.items() if value}

    bundle.hash = compute_hash(bundle.to_dict())

    sections = ", ".join(bundle.section_names) or "no sections"
    state = "encrypted" if bundle.encrypted else "unencrypted"
    logger.info(f"Exported {sections} ({state})")
    return bundle


def bundle_to_json(bundle: ExportBundle) -> str:
    """Serialize a bundle as indented JSON."""
    return json.dumps(bundle.to_dict(), indent=2, ensure_ascii=False)


def export_filename(now: Optional[datetime] = None) -> str:
    """Default file name for a bundle exported at ``now``."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"horizen-backup-v2-{now.strftime('%Y-%m-%dT%H-%M-%S')}.json"


def write_export(path: Path, bundle: ExportBundle) -> Path:
    """
    Write a bundle to disk.

    Args:
        path: Target file, or a directory to place a default-named file in
        bundle: Bundle to write

    Returns:
        Path of the written file
    """
    if path.is_dir():
        path = path / export_filename()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(bundle_to_json(bundle) + "\n", encoding="utf-8")
    logger.info(f"Wrote backup to {path}")
    return path
