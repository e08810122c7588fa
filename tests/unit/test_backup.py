"""Unit tests for backup export and import."""

import hashlib
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

TEST_ITERATIONS = 1_000
BACKUP_PASSWORD = "backup-pass-1"


def make_bundle(vault_manager, app_data, password=BACKUP_PASSWORD, providers=None):
    """Export everything in app_data and return the parsed JSON bundle."""
    from horizen_vault.backup import ExportSelection, bundle_to_json, export_bundle

    selection = ExportSelection.everything(app_data, providers)
    bundle = export_bundle(vault_manager, app_data, selection, password)
    return json.loads(bundle_to_json(bundle))


@pytest.fixture
def target_vault(vault_config):
    """A second, empty vault to import into."""
    from horizen_vault.storage import MemoryStore
    from horizen_vault.vault import VaultManager

    return VaultManager(MemoryStore(), vault_config)


class TestSealing:
    """Tests for per-section encryption."""

    def test_seal_open_roundtrip(self):
        """Test a sealed section opens to the same value."""
        from horizen_vault.backup.sealing import open_section, seal_section

        salt = b"\x07" * 32
        value = {"openai": "sk-1", "nested": [1, 2, {"x": "é"}]}

        section = seal_section(value, BACKUP_PASSWORD, salt, TEST_ITERATIONS)

        assert open_section(section, BACKUP_PASSWORD, salt, TEST_ITERATIONS) == value
        assert "sk-1" not in section.data

    def test_wrong_password(self):
        """Test the wrong password fails to open a section."""
        from horizen_vault.backup.sealing import open_section, seal_section
        from horizen_vault.vault.exceptions import DecryptionError

        salt = b"\x07" * 32
        section = seal_section(["chat"], BACKUP_PASSWORD, salt, TEST_ITERATIONS)

        with pytest.raises(DecryptionError):
            open_section(section, "not-the-password", salt, TEST_ITERATIONS)

    def test_sections_use_distinct_nonces(self):
        """Test each sealed section gets its own nonce."""
        from horizen_vault.backup.sealing import derive_section_key, seal_with_key

        key = derive_section_key(BACKUP_PASSWORD, b"\x07" * 32, TEST_ITERATIONS)

        ivs = {seal_with_key({"n": i}, key).iv for i in range(10)}

        assert len(ivs) == 10

    def test_hash_matches_web_app_form(self):
        """Test the hash covers compact JSON of contents then encryptedSections."""
        from horizen_vault.backup.sealing import compute_hash

        bundle = {
            "version": "2.0.0",
            "contents": {},
            "encryptedSections": {"chats": {"data": "AAAA", "iv": "BBBB"}},
        }
        expected = hashlib.sha256(
            b'{"contents":{},"encryptedSections":{"chats":{"data":"AAAA","iv":"BBBB"}}}'
        ).hexdigest()

        assert compute_hash(bundle) == f"sha256:{expected}"

    def test_verify_hash(self):
        """Test hash verification detects edits and accepts hashless bundles."""
        from horizen_vault.backup.sealing import compute_hash, verify_hash

        bundle = {"contents": {"chats": [{"id": "c1"}]}}
        assert verify_hash(bundle)  # No hash recorded

        bundle["hash"] = compute_hash(bundle)
        assert verify_hash(bundle)

        bundle["contents"]["chats"][0]["id"] = "c2"
        assert not verify_hash(bundle)


class TestExport:
    """Tests for building backup bundles."""

    def test_api_keys_require_password(self):
        """Test secrets without a password are refused before the vault is touched."""
        from horizen_vault.backup import ExportSelection, export_bundle
        from horizen_vault.vault.exceptions import ExportError

        vault_manager = MagicMock()

        with pytest.raises(ExportError, match="encryption"):
            export_bundle(vault_manager, {}, ExportSelection(api_keys={"openai"}))

        assert vault_manager.mock_calls == []

    def test_unencrypted_export(self, vault_manager, sample_app_data):
        """Test a passwordless export puts sections in cleartext contents."""
        from horizen_vault.backup.sealing import verify_hash

        data = make_bundle(vault_manager, sample_app_data, password=None)

        assert data["version"] == "2.0.0"
        assert data["appVersion"] == "1.5.0"
        assert data["encrypted"] is False
        assert "encryptedSections" not in data
        assert set(data["contents"]) == {"chats", "settings", "widgets"}
        assert [c["id"] for c in data["contents"]["chats"]] == ["c1", "c2"]  # Ghost chat skipped
        assert data["hash"].startswith("sha256:")
        assert verify_hash(data)

    def test_encrypted_export(self, vault_manager, sample_app_data):
        """Test a password export seals every section under one salt."""
        vault_manager.save_secrets({"openai": "sk-1", "gemini": "g-2"})

        data = make_bundle(vault_manager, sample_app_data, providers={"openai"})
        text = json.dumps(data)

        assert data["encrypted"] is True
        assert data["contents"] == {}
        assert set(data["encryptedSections"]) == {"apiKeys", "chats", "settings", "widgets"}
        assert data["salt"]
        assert data["iterations"] == TEST_ITERATIONS
        assert "sk-1" not in text
        assert "Trip ideas" not in text

    def test_empty_sections_omitted(self, vault_manager):
        """Test selected but empty sections are left out."""
        from horizen_vault.backup import ExportSelection, export_bundle

        bundle = export_bundle(
            vault_manager,
            {"chats": []},
            ExportSelection(api_keys={"openai"}, chats=set()),
            BACKUP_PASSWORD,
        )

        assert bundle.encrypted_sections == {}

    @pytest.mark.parametrize("password", [None, BACKUP_PASSWORD])
    def test_lone_surrogate_refused(self, vault_manager, password):
        """Test text UTF-8 cannot encode is an export error, sealed or not."""
        from horizen_vault.vault.exceptions import ExportError

        app_data = {"chats": [{"id": "c1", "title": "Trip \ud83d", "messages": []}]}

        with pytest.raises(ExportError, match="Unicode"):
            make_bundle(vault_manager, app_data, password=password)

    def test_seal_lone_surrogate(self):
        """Test sealing a value with a lone surrogate raises ExportError."""
        from horizen_vault.backup.sealing import derive_section_key, seal_with_key
        from horizen_vault.vault.exceptions import ExportError

        key = derive_section_key(BACKUP_PASSWORD, b"\x07" * 32, TEST_ITERATIONS)

        with pytest.raises(ExportError):
            seal_with_key(["\udc00"], key)

    def test_locked_vault(self, protected_vault, sample_app_data):
        """Test exporting secrets from a locked vault raises."""
        from horizen_vault.vault.exceptions import VaultLockedError

        protected_vault.lock_session()

        with pytest.raises(VaultLockedError):
            make_bundle(protected_vault, sample_app_data, providers={"openai"})

    def test_export_filename(self):
        """Test the default file name."""
        from horizen_vault.backup import export_filename

        now = datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

        assert export_filename(now) == "horizen-backup-v2-2025-03-04T05-06-07.json"

    def test_exported_at_format(self):
        """Test export timestamps match the web app's ISO form."""
        from horizen_vault.backup import ExportBundle

        now = datetime(2025, 3, 4, 5, 6, 7, 89000, tzinfo=timezone.utc)

        assert ExportBundle.timestamp(now) == "2025-03-04T05:06:07.089Z"

    def test_write_export_to_directory(self, vault_manager, sample_app_data, tmp_path):
        """Test writing into a directory uses the default file name."""
        from horizen_vault.backup import ExportSelection, export_bundle, write_export

        bundle = export_bundle(vault_manager, sample_app_data, ExportSelection(chats={"c1"}))
        path = write_export(tmp_path, bundle)

        assert path.parent == tmp_path
        assert path.name.startswith("horizen-backup-v2-")
        assert json.loads(path.read_text())["contents"]["chats"][0]["id"] == "c1"


class TestImport:
    """Tests for importing backup bundles."""

    def test_encrypted_roundtrip(self, vault_manager, target_vault, sample_app_data):
        """Test secrets land in the vault and other sections come back."""
        from horizen_vault.backup import import_bundle

        vault_manager.save_secrets({"openai": "sk-1", "anthropic": "sk-2"})
        data = make_bundle(vault_manager, sample_app_data, providers={"openai", "anthropic"})

        result = import_bundle(target_vault, json.dumps(data), password=BACKUP_PASSWORD)

        assert target_vault.get_secrets() == {"openai": "sk-1", "anthropic": "sk-2"}
        assert result.api_keys == ["OpenAI", "Anthropic"]
        assert result.format_version == "2.0.0"
        assert set(result.sections) == {"chats", "settings", "widgets"}
        assert result.sections["settings"]["searchEngine"]["engineId"] == "duckduckgo"

    def test_merge_keeps_other_secrets(self, vault_manager, target_vault):
        """Test merge mode keeps secrets the bundle does not carry."""
        from horizen_vault.backup import import_bundle

        vault_manager.save_secrets({"openai": "sk-new"})
        target_vault.save_secrets({"openai": "sk-old", "gemini": "g-keep"})
        data = make_bundle(vault_manager, {}, providers={"openai"})

        import_bundle(target_vault, json.dumps(data), password=BACKUP_PASSWORD)

        assert target_vault.get_secrets() == {"openai": "sk-new", "gemini": "g-keep"}

    def test_replace_discards_other_secrets(self, vault_manager, target_vault):
        """Test replace mode stores only the imported secrets."""
        from horizen_vault.backup import import_bundle

        vault_manager.save_secrets({"openai": "sk-new"})
        target_vault.save_secrets({"gemini": "g-drop"})
        data = make_bundle(vault_manager, {}, providers={"openai"})

        import_bundle(target_vault, json.dumps(data), password=BACKUP_PASSWORD, mode="replace")

        assert target_vault.get_secrets() == {"openai": "sk-new"}

    def test_provider_filter(self, vault_manager, target_vault):
        """Test only the requested providers are imported."""
        from horizen_vault.backup import import_bundle

        vault_manager.save_secrets({"openai": "sk-1", "gemini": "g-2"})
        data = make_bundle(vault_manager, {}, providers={"openai", "gemini"})

        result = import_bundle(
            target_vault, json.dumps(data), password=BACKUP_PASSWORD, providers={"gemini"}
        )

        assert target_vault.get_secrets() == {"gemini": "g-2"}
        assert result.api_keys == ["Google Gemini"]

    def test_tampered_bundle_halts(self, vault_manager, target_vault, sample_app_data):
        """Test a hash mismatch stops the import before anything is applied."""
        from horizen_vault.backup import SnapshotStore, import_bundle
        from horizen_vault.vault.exceptions import IntegrityError

        data = make_bundle(vault_manager, sample_app_data, password=None)
        data["contents"]["chats"][0]["title"] = "Edited"
        snapshots = SnapshotStore(target_vault.store)

        with pytest.raises(IntegrityError):
            import_bundle(
                target_vault, json.dumps(data), snapshot_store=snapshots, app_data=sample_app_data
            )

        assert snapshots.recent() == []

    def test_tampered_sealed_section(self, vault_manager, target_vault):
        """Test editing a sealed section is caught by the hash."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import IntegrityError

        vault_manager.save_secrets({"openai": "sk-1"})
        data = make_bundle(vault_manager, {}, providers={"openai"})
        data["encryptedSections"]["apiKeys"]["iv"] = "AAAAAAAAAAAAAAAA"

        with pytest.raises(IntegrityError):
            import_bundle(target_vault, json.dumps(data), password=BACKUP_PASSWORD)

        assert target_vault.get_secrets() == {}

    def test_wrong_password_applies_nothing(self, vault_manager, target_vault, sample_app_data):
        """Test a wrong password fails before any section is applied."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import DecryptionError

        vault_manager.save_secrets({"openai": "sk-1"})
        data = make_bundle(vault_manager, sample_app_data, providers={"openai"})

        with pytest.raises(DecryptionError):
            import_bundle(target_vault, json.dumps(data), password="wrong-password")

        assert target_vault.get_secrets() == {}

    def test_password_required(self, vault_manager, target_vault, sample_app_data):
        """Test an encrypted bundle without a password is refused."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import PasswordRequiredError

        data = make_bundle(vault_manager, sample_app_data)

        with pytest.raises(PasswordRequiredError):
            import_bundle(target_vault, json.dumps(data))

    def test_locked_target_vault(self, target_vault, protected_vault):
        """Test importing secrets into a locked vault raises and changes nothing."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import VaultLockedError

        target_vault.save_secrets({"anthropic": "sk-ant"})
        data = make_bundle(target_vault, {}, providers={"anthropic"})
        protected_vault.lock_session()

        with pytest.raises(VaultLockedError):
            import_bundle(protected_vault, json.dumps(data), password=BACKUP_PASSWORD)

        assert protected_vault.unlock_with_password("Correct-Horse-9")
        assert protected_vault.get_secrets() == {"openai": "sk-test-openai"}

    def test_hashless_bundle_accepted(self, target_vault):
        """Test bundles written before hashing existed still import."""
        from horizen_vault.backup import import_bundle

        data = {
            "version": "2.0.0",
            "appVersion": "1.4.0",
            "exportedAt": "2024-12-01T10:00:00.000Z",
            "encrypted": False,
            "contents": {"chats": [{"id": "c9", "title": "Old", "messages": []}]},
        }

        result = import_bundle(target_vault, json.dumps(data))

        assert result.sections["chats"][0]["id"] == "c9"

    def test_snapshot_created(self, vault_manager, target_vault, sample_app_data):
        """Test a snapshot of the current data is taken before applying."""
        from horizen_vault.backup import SnapshotStore, import_bundle

        data = make_bundle(vault_manager, sample_app_data, password=None)
        snapshots = SnapshotStore(target_vault.store)

        result = import_bundle(
            target_vault, json.dumps(data), snapshot_store=snapshots, app_data=sample_app_data
        )

        assert result.snapshot_key is not None
        assert snapshots.restore(result.snapshot_key) == sample_app_data

    def test_invalid_mode(self, target_vault):
        """Test unknown import modes are rejected."""
        from horizen_vault.backup import import_bundle

        with pytest.raises(ValueError, match="merge"):
            import_bundle(target_vault, "{}", mode="overwrite")


class TestImportValidation:
    """Tests for bundle shape checks."""

    @pytest.mark.parametrize("text", [
        "not json",
        "[]",
        '{"timestamp": 1}',
        '{"version": 2, "exportedAt": "x", "encrypted": false}',
    ])
    def test_parse_rejects(self, text):
        """Test malformed files are rejected before decryption."""
        from horizen_vault.backup import parse_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        with pytest.raises(ImportValidationError):
            parse_bundle(text)

    def test_unknown_format(self, target_vault):
        """Test a file matching neither format is rejected."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        with pytest.raises(ImportValidationError):
            import_bundle(target_vault, '{"version": "9.9.9"}')

    def test_v2_requires_encrypted_flag(self, target_vault):
        """Test a 2.0.0 bundle needs a boolean encrypted flag."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        text = json.dumps({"version": "2.0.0", "exportedAt": "2025-01-01T00:00:00.000Z"})

        with pytest.raises(ImportValidationError):
            import_bundle(target_vault, text)

    def test_section_both_sealed_and_clear(self, target_vault):
        """Test a section may not be both encrypted and in cleartext."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        text = json.dumps({
            "version": "2.0.0",
            "exportedAt": "2025-01-01T00:00:00.000Z",
            "encrypted": True,
            "salt": "AAAA",
            "contents": {"chats": []},
            "encryptedSections": {"chats": {"data": "AAAA", "iv": "AAAA"}},
        })

        with pytest.raises(ImportValidationError, match="both"):
            import_bundle(target_vault, text, password=BACKUP_PASSWORD)

    def test_api_key_values_must_be_strings(self, target_vault):
        """Test cleartext secrets with non-string values are rejected."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        text = json.dumps({
            "version": "2.0.0",
            "exportedAt": "2025-01-01T00:00:00.000Z",
            "encrypted": False,
            "contents": {"apiKeys": {"openai": 42}},
        })

        with pytest.raises(ImportValidationError):
            import_bundle(target_vault, text)

    @pytest.mark.parametrize("contents", [
        {"chats": {"id": "c1"}},
        {"chats": ["c1", "c2"]},
        {"chats": [{"title": "No id"}]},
        {"settings": [{"searchEngine": "duckduckgo"}]},
        {"settings": {"quickLinks": "https://example.com"}},
        {"widgets": [{"id": "w1"}]},
        {"widgets": {"w1": {"type": "notes"}}},
    ])
    def test_malformed_sections_rejected(self, target_vault, contents):
        """Test non-secret sections of the wrong shape are rejected."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        text = json.dumps({
            "version": "2.0.0",
            "exportedAt": "2025-01-01T00:00:00.000Z",
            "encrypted": False,
            "contents": contents,
        })

        with pytest.raises(ImportValidationError):
            import_bundle(target_vault, text)

    def _with_secret(self, vault_manager):
        """Sealed bundle holding one API key, plus the key that sealed it."""
        from horizen_vault.backup.sealing import derive_section_key
        from horizen_vault.vault.crypto import decode_b64

        vault_manager.save_secrets({"openai": "sk-1"})
        data = make_bundle(vault_manager, {}, providers={"openai"})
        key = derive_section_key(BACKUP_PASSWORD, decode_b64(data["salt"]), data["iterations"])
        return data, key

    def test_malformed_clear_section_applies_nothing(self, vault_manager, target_vault):
        """Test a bad cleartext section stops the import before secrets are saved."""
        from horizen_vault.backup import SnapshotStore, import_bundle
        from horizen_vault.backup.sealing import compute_hash
        from horizen_vault.vault.exceptions import ImportValidationError

        data, _ = self._with_secret(vault_manager)
        data["contents"] = {"settings": [{"searchEngine": "duckduckgo"}]}
        data["hash"] = compute_hash(data)
        snapshots = SnapshotStore(target_vault.store)

        with pytest.raises(ImportValidationError, match="Settings"):
            import_bundle(
                target_vault, json.dumps(data), password=BACKUP_PASSWORD,
                snapshot_store=snapshots, app_data={"chats": []},
            )

        assert target_vault.get_secrets() == {}
        assert snapshots.recent() == []

    def test_malformed_sealed_section_applies_nothing(self, vault_manager, target_vault):
        """Test a bad sealed section is caught after decryption, before secrets are saved."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.backup.sealing import compute_hash, seal_with_key
        from horizen_vault.vault.exceptions import ImportValidationError

        data, key = self._with_secret(vault_manager)
        data["encryptedSections"]["chats"] = seal_with_key({"c1": "not a list"}, key).to_dict()
        data["hash"] = compute_hash(data)

        with pytest.raises(ImportValidationError, match="Chats"):
            import_bundle(target_vault, json.dumps(data), password=BACKUP_PASSWORD)

        assert target_vault.get_secrets() == {}

    def test_lone_surrogate_rejected(self, target_vault):
        """Test a truncated emoji escape is reported as invalid text."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        text = (
            '{"version":"2.0.0","exportedAt":"2025-01-01T00:00:00.000Z","encrypted":false,'
            '"contents":{"chats":[{"id":"c1","title":"\\ud83d","messages":[]}]},'
            '"hash":"sha256:00"}'
        )

        with pytest.raises(ImportValidationError, match="Unicode"):
            import_bundle(target_vault, text)

    def test_lone_surrogate_in_sealed_section(self, vault_manager, target_vault):
        """Test invalid text inside a decrypted section is rejected too."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.backup.sealing import compute_hash
        from horizen_vault.backup.models import EncryptedSection
        from horizen_vault.vault.crypto import AEADCipher, encode_b64
        from horizen_vault.vault.exceptions import ImportValidationError

        data, key = self._with_secret(vault_manager)
        payload = b'[{"id": "c1", "title": "\\ud83d", "messages": []}]'
        nonce, ciphertext = AEADCipher(key).encrypt_parts(payload)
        data["encryptedSections"]["chats"] = EncryptedSection(
            data=encode_b64(ciphertext), iv=encode_b64(nonce)
        ).to_dict()
        data["hash"] = compute_hash(data)

        with pytest.raises(ImportValidationError, match="Unicode"):
            import_bundle(target_vault, json.dumps(data), password=BACKUP_PASSWORD)

        assert target_vault.get_secrets() == {}

    def test_available_sections(self, vault_manager, sample_app_data):
        """Test the preview lists cleartext items and marks sealed sections."""
        from horizen_vault.backup import available_sections

        clear = make_bundle(vault_manager, sample_app_data, password=None)
        sealed = make_bundle(vault_manager, sample_app_data)

        preview = available_sections(clear)
        assert preview["chats"] == ["c1", "c2"]
        assert preview["widgets"] == ["w1", "w2"]
        assert "searchEngine" in preview["settings"]

        assert available_sections(sealed)["chats"] is None


class TestLegacyImport:
    """Tests for 1.0.0 bundles."""

    @pytest.fixture
    def legacy_data(self):
        """A legacy unencrypted bundle."""
        return {
            "version": "1.0.0",
            "timestamp": 1_700_000_000_000,
            "preferences": {
                "searchEngineId": "google",
                "customSearchEngines": [],
                "links": [{"id": "l9", "title": "Mail", "url": "https://mail.example.com"}],
                "showChat": True,
                "widgets": [{"type": "notes", "id": "w9", "enabled": True, "order": 0, "settings": {}}],
            },
            "apiKeys": {"openai": "sk-legacy", "anthropic": "sk-ant-legacy"},
            "conversations": [{"id": "c1", "title": "Hello", "messages": []}],
            "weatherLocation": {"name": "Oslo", "lat": 59.9, "lon": 10.7},
            "shortcuts": [{"action": "search", "key": "/"}],
        }

    def test_unencrypted(self, target_vault, legacy_data):
        """Test a legacy bundle maps onto current section names."""
        from horizen_vault.backup import import_bundle

        result = import_bundle(target_vault, json.dumps(legacy_data))

        assert result.format_version == "1.0.0"
        assert target_vault.get_secrets() == {"openai": "sk-legacy", "anthropic": "sk-ant-legacy"}
        assert result.sections["chats"][0]["id"] == "c1"
        settings = result.sections["settings"]
        assert settings["searchEngine"]["engineId"] == "google"
        assert settings["quickLinks"][0]["id"] == "l9"
        assert settings["keyboardShortcuts"] == legacy_data["shortcuts"]
        assert settings["weatherLocation"]["name"] == "Oslo"
        assert settings["chatPreferences"] == {"showChat": True}
        assert result.sections["widgets"][0]["id"] == "w9"

    def test_encrypted(self, target_vault, legacy_data):
        """Test a whole-file encrypted legacy bundle decrypts with its password."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.crypto import AEADCipher, KeyDerivation, encode_b64

        salt = KeyDerivation.generate_salt()
        key = KeyDerivation.derive_key(BACKUP_PASSWORD, salt, TEST_ITERATIONS)
        nonce, ciphertext = AEADCipher(key).encrypt_parts(json.dumps(legacy_data).encode("utf-8"))
        wrapper = {
            "version": "1.0.0",
            "timestamp": legacy_data["timestamp"],
            "encrypted": True,
            "salt": encode_b64(salt),
            "iv": encode_b64(nonce),
            "data": encode_b64(ciphertext),
            "iterations": TEST_ITERATIONS,
        }

        result = import_bundle(target_vault, json.dumps(wrapper), password=BACKUP_PASSWORD)

        assert target_vault.get_secrets()["openai"] == "sk-legacy"
        assert result.sections["chats"][0]["title"] == "Hello"

    def test_invalid_conversation(self, target_vault, legacy_data):
        """Test conversations need id, title and messages."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        legacy_data["conversations"] = [{"id": "c1", "title": "No messages"}]

        with pytest.raises(ImportValidationError):
            import_bundle(target_vault, json.dumps(legacy_data))

    def test_invalid_weather_location(self, target_vault, legacy_data):
        """Test the weather location needs numeric coordinates."""
        from horizen_vault.backup import import_bundle
        from horizen_vault.vault.exceptions import ImportValidationError

        legacy_data["weatherLocation"] = {"name": "Oslo", "lat": "59.9", "lon": 10.7}

        with pytest.raises(ImportValidationError):
            import_bundle(target_vault, json.dumps(legacy_data))


class TestApplySections:
    """Tests for merging imported sections into application data."""

    def test_chats_append_renames_conflicts(self):
        """Test appended chats with taken ids get a new id."""
        from horizen_vault.backup.importer import merge_chats

        current = [{"id": "c1", "title": "Mine"}]
        imported = [{"id": "c1", "title": "Theirs"}, {"id": "c2", "title": "New"}]

        merged = merge_chats(current, imported, now_ms=1234)

        assert [c["id"] for c in merged] == ["c1", "c1-imported-1234", "c2"]
        assert imported[0]["id"] == "c1"  # Input not mutated

    def test_chats_replace(self):
        """Test replace keeps only imported chats."""
        from horizen_vault.backup.importer import merge_chats

        assert merge_chats([{"id": "a"}], [{"id": "b"}], mode="replace") == [{"id": "b"}]

    def test_quick_links_merge(self):
        """Test merge adds only links with new ids."""
        from horizen_vault.backup.importer import merge_quick_links

        current = [{"id": "l1", "title": "Mine"}]
        imported = [{"id": "l1", "title": "Theirs"}, {"id": "l2", "title": "New"}]

        merged = merge_quick_links(current, imported)

        assert merged == [{"id": "l1", "title": "Mine"}, {"id": "l2", "title": "New"}]

    def test_widgets_replace_by_type(self):
        """Test replace swaps the widget of the same type."""
        from horizen_vault.backup.importer import merge_widgets

        current = [{"id": "w1", "type": "notes"}, {"id": "w2", "type": "weather"}]
        imported = [{"id": "w9", "type": "weather"}, {"id": "w3", "type": "quote"}]

        merged = merge_widgets(current, imported, mode="replace")

        assert [w["id"] for w in merged] == ["w1", "w9", "w3"]

    def test_widgets_merge_by_id(self):
        """Test merge updates the widget with the same id."""
        from horizen_vault.backup.importer import merge_widgets

        current = [{"id": "w1", "type": "notes", "enabled": False}]
        imported = [{"id": "w1", "type": "notes", "enabled": True}]

        assert merge_widgets(current, imported) == imported

    def test_apply_sections(self, sample_app_data):
        """Test applying sections returns new data and leaves the input alone."""
        from horizen_vault.backup import apply_sections

        sections = {
            "settings": {
                "quickLinks": [{"id": "l2", "title": "Docs", "url": "https://docs.example.com"}],
                "keyboardShortcuts": [{"action": "chat", "key": "c"}],
            },
        }

        updated = apply_sections(sample_app_data, sections)

        assert [link["id"] for link in updated["settings"]["quickLinks"]] == ["l1", "l2"]
        assert updated["settings"]["keyboardShortcuts"] == [{"action": "chat", "key": "c"}]
        assert updated["settings"]["searchEngine"] == sample_app_data["settings"]["searchEngine"]
        assert "keyboardShortcuts" not in sample_app_data["settings"]


class TestSnapshots:
    """Tests for pre-import snapshots."""

    def test_create_and_restore(self, memory_store):
        """Test a snapshot restores the saved data."""
        from horizen_vault.backup import SnapshotStore

        snapshots = SnapshotStore(memory_store)
        key = snapshots.create({"chats": [{"id": "c1"}]})

        assert key.startswith("horizen:backup:")
        assert snapshots.restore(key) == {"chats": [{"id": "c1"}]}

    def test_keeps_latest_five(self, memory_store):
        """Test old snapshots are pruned."""
        from horizen_vault.backup import SnapshotStore

        snapshots = SnapshotStore(memory_store)
        keys = [snapshots.create({"n": i}) for i in range(7)]

        recent = snapshots.recent()

        assert [s.key for s in recent] == list(reversed(keys[2:]))
        assert keys[0] not in memory_store
        assert keys[1] not in memory_store

    def test_restore_missing(self, memory_store):
        """Test restoring an unknown key returns None."""
        from horizen_vault.backup import SnapshotStore

        assert SnapshotStore(memory_store).restore("horizen:backup:1") is None

    def test_restore_unreadable(self, memory_store):
        """Test an unreadable snapshot returns None."""
        from horizen_vault.backup import SnapshotStore

        memory_store.set("horizen:backup:5", "garbage")

        assert SnapshotStore(memory_store).restore("horizen:backup:5") is None
