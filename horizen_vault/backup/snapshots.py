"""Pre-import snapshots of application data.

Snapshots live in the same store as the vault under
``horizen:backup:<epoch ms>``. Only the most recent few are kept.
"""

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..storage import SNAPSHOT_PREFIX, KeyValueStore
from ..utils.logging import get_logger
from ..vault.config import get_vault_config

logger = get_logger(__name__)


@dataclass
class SnapshotInfo:
    """A stored snapshot's key and creation time."""

    key: str
    timestamp: int  # epoch milliseconds

    @property
    def created_at(self) -> datetime:
        """Creation time as a local datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000)


def _timestamp_of(key: str) -> Optional[int]:
    try:
        return int(key[len(SNAPSHOT_PREFIX):])
    except ValueError:
        return None


class SnapshotStore:
    """
    Creates, lists and restores snapshots.

    Usage:
        snapshots = SnapshotStore(store)
        key = snapshots.create(app_data)
        ...
        app_data = snapshots.restore(key)
    """

    def __init__(self, store: KeyValueStore, limit: Optional[int] = None):
        self.store = store
        self.limit = limit if limit is not None else get_vault_config().snapshot_limit

    def _all(self) -> list[SnapshotInfo]:
        infos = []
        for key in self.store.keys():
            if not key.startswith(SNAPSHOT_PREFIX):
                continue
            timestamp = _timestamp_of(key)
            if timestamp is not None:
                infos.append(SnapshotInfo(key=key, timestamp=timestamp))
        return sorted(infos, key=lambda info: info.timestamp, reverse=True)

    def create(self, app_data: dict[str, Any]) -> str:
        """
        Store a snapshot and prune old ones.

        Returns:
            Key of the new snapshot
        """
        timestamp = int(time.time() * 1000)
        existing = self._all()
        if existing and existing[0].timestamp >= timestamp:
            # Keys must stay strictly increasing within one millisecond
            timestamp = existing[0].timestamp + 1
        key = f"{SNAPSHOT_PREFIX}{timestamp}"

        record = {"timestamp": timestamp, "prefs": json.dumps(app_data)}
        self.store.set(key, json.dumps(record))
        logger.info(f"Created snapshot {key}")

        for stale in self._all()[self.limit:]:
            self.store.delete(stale.key)
            logger.debug(f"Pruned snapshot {stale.key}")

        return key

    def restore(self, key: str) -> Optional[dict[str, Any]]:
        """
        Load a snapshot's application data.

        Returns:
            The saved data, or None if the snapshot is missing or unreadable
        """
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(json.loads(raw)["prefs"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Snapshot {key} is unreadable: {e}")
            return None

    def recent(self) -> list[SnapshotInfo]:
        """List kept snapshots, newest first."""
        return self._all()[: self.limit]
