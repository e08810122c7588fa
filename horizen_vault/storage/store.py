"""Key-value storage backends for vault records.

All values are strings. Structured records are JSON-encoded by the caller
and binary records are base64 encoded.

The JSON file backend keeps every record in a single file:
    {"security-config": "{...}", "secrets-vault-encrypted": "..."}
"""

import json
import os
from pathlib import Path
from typing import Iterator, Optional

from ..utils.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore:
    """Minimal string key-value store interface."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self) -> Iterator[str]:
        raise NotImplementedError

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """In-process store, used for tests and embedding."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))

    def snapshot(self) -> dict[str, str]:
        """Return a copy of every stored record."""
        return dict(self._data)


class JsonFileStore(KeyValueStore):
    """Persists records as one JSON object on disk.

    Writes go to a temporary sibling file that is then renamed over the
    target, so a crash leaves either the old or the new file.
    """

    def __init__(self, path: Path):
        """Initialize store for a file path.

        Args:
            path: Path to the JSON file (created on first write)
        """
        self.path = Path(path)
        self._data: Optional[dict[str, str]] = None

    def _load(self) -> dict[str, str]:
        """Load and cache the record map."""
        if self._data is not None:
            return self._data

        if self.path.exists():
            content = self.path.read_text(encoding="utf-8")
            data = json.loads(content) if content.strip() else {}
            if not isinstance(data, dict):
                raise ValueError(f"Store file must contain a JSON object: {self.path}")
            self._data = {str(k): str(v) for k, v in data.items()}
        else:
            self._data = {}

        return self._data

    def _flush(self) -> None:
        """Write the record map to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(self._load(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug(f"Store flushed: {self.path}")

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def delete(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._flush()
        return True

    def keys(self) -> Iterator[str]:
        return iter(list(self._load()))

    def reload(self) -> None:
        """Drop the cached map so the next access re-reads the file."""
        self._data = None
