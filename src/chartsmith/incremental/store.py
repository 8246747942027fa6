"""Bounded stores of snapshots and patch history.

Each store owns one lock and never calls into another store while holding
it.
"""

import itertools
import logging
import threading
import time
from collections import OrderedDict
from typing import Any

from chartsmith.models.patch import Patch
from chartsmith.models.render import Snapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Latest snapshot per document lineage.

    Beyond max_snapshots, the snapshot with the oldest timestamp is evicted;
    refreshing a snapshot gives it a new timestamp.
    """

    def __init__(self, max_snapshots: int = 50) -> None:
        self.max_snapshots = max_snapshots
        self._snapshots: dict[str, tuple[int, Snapshot]] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()
        self.evictions = 0

    def put(self, lineage: str, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshots[lineage] = (next(self._sequence), snapshot)
            while len(self._snapshots) > self.max_snapshots:
                oldest = min(
                    self._snapshots,
                    key=lambda key: (self._snapshots[key][1].timestamp, self._snapshots[key][0]),
                )
                del self._snapshots[oldest]
                self.evictions += 1
                logger.debug("Evicted snapshot %s", oldest)

    def get(self, lineage: str) -> Snapshot | None:
        with self._lock:
            entry = self._snapshots.get(lineage)
            return entry[1] if entry else None

    def delete(self, lineage: str) -> bool:
        with self._lock:
            return self._snapshots.pop(lineage, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._snapshots),
                "max_size": self.max_snapshots,
                "evictions": self.evictions,
            }


class PatchStore:
    """History of generated patches, oldest evicted first beyond max_patches."""

    def __init__(self, max_patches: int = 100) -> None:
        self.max_patches = max_patches
        self._patches: OrderedDict[str, Patch] = OrderedDict()
        self._lock = threading.Lock()
        self.evictions = 0

    def add(self, patch: Patch) -> None:
        with self._lock:
            if not patch.timestamp:
                patch.timestamp = time.time()
            self._patches[patch.id] = patch
            while len(self._patches) > self.max_patches:
                self._patches.popitem(last=False)
                self.evictions += 1

    def get(self, patch_id: str) -> Patch | None:
        with self._lock:
            return self._patches.get(patch_id)

    def recent(self, limit: int = 10) -> list[Patch]:
        """Newest patches first."""
        with self._lock:
            return list(reversed(self._patches.values()))[:limit]

    def for_key(self, cache_key: str) -> list[Patch]:
        with self._lock:
            return [patch for patch in self._patches.values() if patch.cache_key == cache_key]

    def clear(self) -> None:
        with self._lock:
            self._patches.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._patches)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._patches),
                "max_size": self.max_patches,
                "evictions": self.evictions,
            }
