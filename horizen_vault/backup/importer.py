"""Backup import.

Reads format 2.0.0 bundles (per-section encryption) and legacy 1.0.0
bundles (whole-file encryption). Nothing is applied until the bundle's
shape, its integrity hash and every sealed section have been checked.
"""

import json
import time
from typing import Any, Optional

from ..utils.hash import is_utf8_encodable
from ..utils.logging import get_logger
from ..vault.crypto import PBKDF2_ITERATIONS, AEADCipher, KeyDerivation, decode_b64
from ..vault.exceptions import (
    DecryptionError,
    ImportValidationError,
    IntegrityError,
    PasswordRequiredError,
    VaultCorruptedError,
)
from ..vault.secret_vault import PROVIDER_LABELS, PROVIDERS
from ..vault.vault_manager import VaultManager
from .models import (
    SECTION_NAMES,
    ExportBundle,
    ImportResult,
    MergeStrategies,
    Section,
)
from .sealing import derive_section_key, open_with_key, verify_hash
from .snapshots import SnapshotStore

logger = get_logger(__name__)

FORMAT_V2 = "v2"
FORMAT_V1 = "v1"

IMPORT_MODES = ("merge", "replace")

PASSWORD_REQUIRED_MESSAGE = "This backup is password-protected. Please provide the password."
INVALID_TEXT_MESSAGE = "Import file contains text that is not valid Unicode."


def parse_bundle(text: str) -> dict[str, Any]:
    """
    Parse bundle text into a JSON object.

    Raises:
        ImportValidationError: Not JSON, not an object, or no string version
    """
    try:
        data = json.loads(text)
    except ValueError:
        raise ImportValidationError("Import file is not valid JSON.")

    if not isinstance(data, dict) or not isinstance(data.get("version"), str):
        raise ImportValidationError()
    if not is_utf8_encodable(data):
        raise ImportValidationError(INVALID_TEXT_MESSAGE)
    return data


def detect_format(data: dict[str, Any]) -> str:
    """
    Tell a 2.0.0 bundle from a legacy one.

    Raises:
        ImportValidationError: Neither format matches
    """
    if "encryptedSections" in data or "exportedAt" in data:
        return FORMAT_V2
    if "timestamp" in data:
        return FORMAT_V1
    raise ImportValidationError()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_v2(data: dict[str, Any]) -> None:
    """
    Check the shape of a 2.0.0 bundle.

    Raises:
        ImportValidationError: On any shape problem
    """
    if not isinstance(data.get("exportedAt"), str) or not isinstance(data.get("encrypted"), bool):
        raise ImportValidationError()

    contents = data.get("contents")
    if contents is not None and not isinstance(contents, dict):
        raise ImportValidationError("Bundle contents must be an object.")

    sections = data.get("encryptedSections")
    if sections is None:
        return
    if not isinstance(sections, dict):
        raise ImportValidationError("Encrypted sections must be an object.")
    for name, section in sections.items():
        if not (
            isinstance(section, dict)
            and isinstance(section.get("data"), str)
            and isinstance(section.get("iv"), str)
        ):
            raise ImportValidationError(f"Encrypted section {name!r} is malformed.")
        if contents and name in contents:
            raise ImportValidationError(f"Section {name!r} is both encrypted and in cleartext.")


def validate_v1(data: dict[str, Any]) -> None:
    """
    Check the shape of a legacy 1.0.0 bundle.

    Raises:
        ImportValidationError: On any shape problem
    """
    if not _is_number(data.get("timestamp")):
        raise ImportValidationError()

    preferences = data.get("preferences")
    if preferences is not None and not isinstance(preferences, dict):
        raise ImportValidationError()

    api_keys = data.get("apiKeys")
    if api_keys is not None:
        if not isinstance(api_keys, dict):
            raise ImportValidationError()
        if any(value is not None and not isinstance(value, str) for value in api_keys.values()):
            raise ImportValidationError()

    conversations = data.get("conversations")
    if conversations is not None:
        if not isinstance(conversations, list):
            raise ImportValidationError()
        for conv in conversations:
            if not (
                isinstance(conv, dict)
                and isinstance(conv.get("id"), str)
                and isinstance(conv.get("title"), str)
                and isinstance(conv.get("messages"), list)
            ):
                raise ImportValidationError()

    location = data.get("weatherLocation")
    if location is not None:
        if not (
            isinstance(location, dict)
            and isinstance(location.get("name"), str)
            and _is_number(location.get("lat"))
            and _is_number(location.get("lon"))
        ):
            raise ImportValidationError()

    shortcuts = data.get("shortcuts")
    if shortcuts is not None and not isinstance(shortcuts, list):
        raise ImportValidationError()


def _decode_salt(data: dict[str, Any]) -> bytes:
    salt = data.get("salt")
    if not isinstance(salt, str):
        raise ImportValidationError("Encrypted bundle has no salt.")
    try:
        return decode_b64(salt)
    except VaultCorruptedError:
        raise ImportValidationError("Encrypted bundle has an invalid salt.")


def _iterations(data: dict[str, Any]) -> int:
    iterations = data.get("iterations", PBKDF2_ITERATIONS)
    if not isinstance(iterations, int) or isinstance(iterations, bool) or iterations <= 0:
        raise ImportValidationError("Encrypted bundle has an invalid iteration count.")
    return iterations


def open_v2(data: dict[str, Any], password: Optional[str] = None) -> dict[str, Any]:
    """
    Verify and decrypt a 2.0.0 bundle.

    Returns:
        Section name -> value, sealed sections opened

    Raises:
        ImportValidationError: Malformed bundle
        IntegrityError: Hash mismatch
        PasswordRequiredError: Sealed sections but no password
        DecryptionError: Wrong password or tampered section
    """
    validate_v2(data)

    if not verify_hash(data):
        logger.error("Backup integrity check failed")
        raise IntegrityError()

    bundle = ExportBundle.from_dict(data)
    sections: dict[str, Any] = dict(bundle.contents)

    if bundle.encrypted_sections:
        if not password:
            raise PasswordRequiredError(PASSWORD_REQUIRED_MESSAGE)
        key = derive_section_key(password, _decode_salt(data), _iterations(data))
        opened = {name: open_with_key(section, key) for name, section in bundle.encrypted_sections.items()}
        sections.update(opened)

    unknown = [name for name in sections if name not in SECTION_NAMES]
    for name in unknown:
        logger.warning(f"Ignoring unknown backup section {name!r}")
        del sections[name]

    return sections


def _legacy_settings(data: dict[str, Any]) -> dict[str, Any]:
    preferences = data.get("preferences") or {}
    settings: dict[str, Any] = {}

    if "searchEngineId" in preferences:
        settings["searchEngine"] = {
            "engineId": preferences["searchEngineId"],
            "customEngines": preferences.get("customSearchEngines", []),
        }
    if "links" in preferences:
        settings["quickLinks"] = preferences["links"]
    if data.get("shortcuts") is not None:
        settings["keyboardShortcuts"] = data["shortcuts"]

    chat_preferences = {
        name: preferences[name]
        for name in ("showChat", "showVerifiedOrgModels", "chatModel")
        if name in preferences
    }
    if chat_preferences:
        settings["chatPreferences"] = chat_preferences
    if data.get("weatherLocation") is not None:
        settings["weatherLocation"] = data["weatherLocation"]

    return settings


def open_v1(data: dict[str, Any], password: Optional[str] = None) -> dict[str, Any]:
    """
    Decrypt a legacy bundle and map it onto 2.0.0 section names.

    Raises:
        ImportValidationError: Malformed bundle
        PasswordRequiredError: Encrypted bundle but no password
        DecryptionError: Wrong password or corrupted data
    """
    validate_v1(data)

    if data.get("encrypted"):
        if not (isinstance(data.get("iv"), str) and isinstance(data.get("data"), str)):
            raise ImportValidationError("Invalid encrypted export data.")
        if not password:
            raise PasswordRequiredError(PASSWORD_REQUIRED_MESSAGE)

        key = KeyDerivation.derive_key(password, _decode_salt(data), _iterations(data))
        try:
            nonce = decode_b64(data["iv"])
            ciphertext = decode_b64(data["data"])
        except VaultCorruptedError:
            raise DecryptionError()
        plaintext = AEADCipher(key).decrypt_parts(nonce, ciphertext)

        try:
            data = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise ImportValidationError()
        if not isinstance(data, dict) or not isinstance(data.get("version"), str):
            raise ImportValidationError()
        validate_v1(data)

    sections: dict[str, Any] = {}
    if data.get("apiKeys"):
        sections[Section.API_KEYS.value] = {k: v for k, v in data["apiKeys"].items() if v is not None}
    if data.get("conversations"):
        sections[Section.CHATS.value] = data["conversations"]

    settings = _legacy_settings(data)
    if settings:
        sections[Section.SETTINGS.value] = settings

    widgets = (data.get("preferences") or {}).get("widgets")
    if isinstance(widgets, list) and widgets:
        sections[Section.WIDGETS.value] = widgets

    return sections


def _is_list_of_records(value: Any, *id_fields: str) -> bool:
    return isinstance(value, list) and all(
        isinstance(item, dict) and all(isinstance(item.get(f), str) for f in id_fields)
        for item in value
    )


def validate_sections(sections: dict[str, Any]) -> None:
    """
    Check the shape of opened non-secret sections.

    Sealed sections can only be checked after decryption, so this runs on
    the opened result rather than on the raw bundle.

    Raises:
        ImportValidationError: On any shape problem
    """
    chats = sections.get(Section.CHATS.value)
    if chats is not None and not _is_list_of_records(chats, "id"):
        raise ImportValidationError("Chats section must be a list of conversations with ids.")

    settings = sections.get(Section.SETTINGS.value)
    if settings is not None:
        if not isinstance(settings, dict):
            raise ImportValidationError("Settings section must be an object.")
        links = settings.get("quickLinks")
        if links is not None and not _is_list_of_records(links):
            raise ImportValidationError("Quick links must be a list of objects.")

    widgets = sections.get(Section.WIDGETS.value)
    if widgets is not None and not _is_list_of_records(widgets, "id", "type"):
        raise ImportValidationError("Widgets section must be a list of widgets with id and type.")

    if not is_utf8_encodable(sections):
        raise ImportValidationError(INVALID_TEXT_MESSAGE)


def open_bundle(data: dict[str, Any], password: Optional[str] = None) -> dict[str, Any]:
    """Validate, verify and decrypt a parsed bundle of either format."""
    if detect_format(data) == FORMAT_V2:
        sections = open_v2(data, password)
    else:
        sections = open_v1(data, password)
    validate_sections(sections)
    return sections


def available_sections(bundle: dict[str, Any]) -> dict[str, Optional[list[str]]]:
    """
    Preview what a parsed bundle contains without decrypting it.

    Returns:
        Section name -> item names. Sealed sections map to None because
        their items are unknown until decrypted.
    """
    if detect_format(bundle) == FORMAT_V1:
        if bundle.get("encrypted"):
            return {name: None for name in SECTION_NAMES}
        preview: dict[str, Optional[list[str]]] = {}
        if isinstance(bundle.get("apiKeys"), dict):
            preview[Section.API_KEYS.value] = [p for p, v in bundle["apiKeys"].items() if v]
        if isinstance(bundle.get("conversations"), list):
            preview[Section.CHATS.value] = [c.get("id") for c in bundle["conversations"] if isinstance(c, dict)]
        settings = _legacy_settings(bundle) if isinstance(bundle.get("preferences", {}), dict) else {}
        if settings:
            preview[Section.SETTINGS.value] = list(settings)
        return preview

    preview = {}
    sealed = bundle.get("encryptedSections") or {}
    contents = bundle.get("contents") or {}
    for name in SECTION_NAMES:
        if name in sealed:
            preview[name] = None
        elif name in contents:
            value = contents[name]
            if isinstance(value, dict):
                preview[name] = [k for k, v in value.items() if v]
            elif isinstance(value, list):
                preview[name] = [item.get("id") for item in value if isinstance(item, dict)]
    return preview


def _validate_api_keys(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        raise ImportValidationError("API keys section must be an object.")
    keys = {}
    for provider, secret in value.items():
        if secret is None:
            continue
        if not isinstance(secret, str):
            raise ImportValidationError(f"API key for {provider!r} must be a string.")
        keys[provider] = secret
    return keys


def import_bundle(
    vault_manager: VaultManager,
    text: str,
    password: Optional[str] = None,
    providers: Optional[set[str]] = None,
    mode: str = "merge",
    snapshot_store: Optional[SnapshotStore] = None,
    app_data: Optional[dict[str, Any]] = None,
) -> ImportResult:
    """
    Import a backup bundle.

    Secrets go straight into the vault. Non-secret sections are returned in
    ``ImportResult.sections`` for the caller to apply (see apply_sections).

    Args:
        vault_manager: Vault to import secrets into
        text: Bundle file contents
        password: Bundle password (needed for encrypted bundles)
        providers: Providers to import secrets for (None = all known)
        mode: "merge" keeps other stored secrets, "replace" discards them
        snapshot_store: Where to snapshot app_data before applying
        app_data: Current application data to snapshot

    Returns:
        ImportResult

    Raises:
        ImportValidationError: Malformed bundle
        IntegrityError: Hash mismatch
        PasswordRequiredError: Encrypted bundle but no password
        DecryptionError: Wrong password or tampered section
        VaultLockedError: Secrets to import but the session is locked
    """
    if mode not in IMPORT_MODES:
        raise ValueError(f"Import mode must be one of {', '.join(IMPORT_MODES)}")

    data = parse_bundle(text)
    sections = open_bundle(data, password)

    imported: dict[str, str] = {}
    if Section.API_KEYS.value in sections:
        keys = _validate_api_keys(sections.pop(Section.API_KEYS.value))
        imported = {
            p: keys[p] for p in PROVIDERS
            if keys.get(p) and (providers is None or p in providers)
        }

    # Reading first surfaces a locked session before anything changes
    current = vault_manager.get_secrets() if imported else {}

    snapshot_key = None
    if snapshot_store is not None and app_data is not None:
        snapshot_key = snapshot_store.create(app_data)

    if imported:
        record = {**current, **imported} if mode == "merge" else imported
        vault_manager.save_secrets(record)

    result = ImportResult(
        format_version=data["version"],
        api_keys=[PROVIDER_LABELS[p] for p in imported],
        sections=sections,
        snapshot_key=snapshot_key,
    )
    imported_names = ", ".join(result.imported_sections) or "nothing"
    logger.info(f"Imported {imported_names} from {result.format_version} bundle")
    return result


def merge_chats(
    current: list[dict[str, Any]],
    imported: list[dict[str, Any]],
    mode: str = "append",
    now_ms: Optional[int] = None,
) -> list[dict[str, Any]]:
    """
    Combine conversations.

    "replace" keeps only the imported ones. "append" adds them after the
    current ones, renaming any imported id that is already taken.
    """
    if mode == "replace":
        return list(imported)

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    existing = {chat.get("id") for chat in current}
    appended = []
    for chat in imported:
        if chat.get("id") in existing:
            chat = {**chat, "id": f"{chat['id']}-imported-{now_ms}"}
        appended.append(chat)
    return list(current) + appended


def merge_quick_links(
    current: list[dict[str, Any]],
    imported: list[dict[str, Any]],
    mode: str = "merge",
) -> list[dict[str, Any]]:
    """Combine quick links; "merge" adds only links with new ids."""
    if mode == "replace":
        return list(imported)
    existing = {link.get("id") for link in current}
    return list(current) + [link for link in imported if link.get("id") not in existing]


def merge_widgets(
    current: list[dict[str, Any]],
    imported: list[dict[str, Any]],
    mode: str = "merge",
) -> list[dict[str, Any]]:
    """
    Combine widgets.

    "replace" swaps out the current widget of the same type. "merge"
    updates the widget with the same id. Anything unmatched is added.
    """
    widgets = list(current)
    match_on = "type" if mode == "replace" else "id"
    for widget in imported:
        index = next(
            (i for i, w in enumerate(widgets) if w.get(match_on) == widget.get(match_on)),
            None,
        )
        if index is None:
            widgets.append(widget)
        else:
            widgets[index] = widget
    return widgets


def apply_sections(
    app_data: dict[str, Any],
    sections: dict[str, Any],
    strategies: Optional[MergeStrategies] = None,
) -> dict[str, Any]:
    """
    Apply imported non-secret sections to application data.

    Returns:
        New application data; app_data itself is not modified
    """
    strategies = strategies or MergeStrategies()
    updated = dict(app_data)

    if Section.CHATS.value in sections:
        updated["chats"] = merge_chats(
            app_data.get("chats", []), sections[Section.CHATS.value], strategies.chats
        )

    if Section.SETTINGS.value in sections:
        settings = dict(app_data.get("settings", {}))
        for name, value in sections[Section.SETTINGS.value].items():
            if name == "quickLinks":
                settings[name] = merge_quick_links(settings.get(name, []), value, strategies.quick_links)
            else:
                settings[name] = value
        updated["settings"] = settings

    if Section.WIDGETS.value in sections:
        updated["widgets"] = merge_widgets(
            app_data.get("widgets", []), sections[Section.WIDGETS.value], strategies.widgets
        )

    return updated

