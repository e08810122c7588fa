"""Shared pytest fixtures for Horizen vault tests."""

import json
from pathlib import Path

import pytest

# Low iteration count keeps key derivation fast in tests
TEST_ITERATIONS = 1_000

TEST_PASSWORD = "Correct-Horse-9"


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a clean temporary directory for each test."""
    return tmp_path


@pytest.fixture
def vault_config():
    """Vault configuration with a fast key derivation."""
    from horizen_vault.vault.config import VaultConfig

    return VaultConfig(pbkdf2_iterations=TEST_ITERATIONS)


@pytest.fixture(autouse=True)
def fast_global_config(vault_config):
    """Install the fast configuration globally and restore it afterwards."""
    from horizen_vault.vault import config as config_module

    previous = config_module._config
    config_module.set_vault_config(vault_config)
    yield vault_config
    config_module._config = previous


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    from horizen_vault.storage import MemoryStore

    return MemoryStore()


@pytest.fixture
def vault_manager(memory_store, vault_config):
    """Vault manager over an in-memory store, protection disabled."""
    from horizen_vault.vault import VaultManager

    return VaultManager(memory_store, vault_config)


@pytest.fixture
def protected_vault(vault_manager):
    """Vault manager with password protection enabled and one secret stored."""
    vault_manager.save_secrets({"openai": "sk-test-openai"})
    vault_manager.setup_password(TEST_PASSWORD)
    return vault_manager


@pytest.fixture
def sample_app_data() -> dict:
    """Application data as the web app hands it to the exporter."""
    return {
        "chats": [
            {"id": "c1", "title": "Trip ideas", "messages": [{"role": "user", "content": "Hi"}]},
            {"id": "c2", "title": "Recipes", "messages": []},
            {"id": "ghost", "title": "Private", "messages": [], "isGhostMode": True},
        ],
        "settings": {
            "searchEngine": {"engineId": "duckduckgo", "customEngines": []},
            "quickLinks": [{"id": "l1", "title": "News", "url": "https://example.com"}],
            "chatPreferences": {"showChat": True, "showVerifiedOrgModels": False, "chatModel": None},
        },
        "widgets": [
            {"type": "notes", "id": "w1", "enabled": True, "order": 0, "settings": {}},
            {"type": "weather", "id": "w2", "enabled": True, "order": 1, "settings": {"units": "metric"}},
        ],
    }


@pytest.fixture
def store_file(tmp_path: Path) -> Path:
    """Path for a JSON store file (not created)."""
    return tmp_path / "store.json"


@pytest.fixture
def app_data_file(tmp_path: Path, sample_app_data) -> Path:
    """Application data written to a JSON file."""
    path = tmp_path / "app_data.json"
    path.write_text(json.dumps(sample_app_data))
    return path
