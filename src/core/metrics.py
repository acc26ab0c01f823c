"""Moderation counters.

The in-memory counters are authoritative; the Config snapshot is refreshed
periodically and may lag behind by one flush interval.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.models import ConfigPatch
from core.ports import StoragePort

LOGGER = logging.getLogger(__name__)


class Metrics:
    def __init__(self) -> None:
        self.pending = 0
        self.approved = 0
        self.rejected = 0
        self.sources: set[str] = set()
        self._dirty = False

    def load(self, snapshot: Optional[dict]) -> None:
        snapshot = snapshot or {}
        self.pending = max(0, int(snapshot.get("pending", 0) or 0))
        self.approved = int(snapshot.get("approved", 0) or 0)
        self.rejected = int(snapshot.get("rejected", 0) or 0)
        self._dirty = False

    def snapshot(self) -> dict[str, int]:
        return {"pending": self.pending, "approved": self.approved, "rejected": self.rejected}

    def record_source(self, source_id: str) -> None:
        self.sources.add(source_id)

    def on_submitted(self) -> None:
        self.pending += 1
        self._dirty = True

    def on_approved(self) -> None:
        self._resolve()
        self.approved += 1

    def on_rejected(self) -> None:
        self._resolve()
        self.rejected += 1

    def on_expired(self) -> None:
        self._resolve()

    def _resolve(self) -> None:
        self.pending = max(0, self.pending - 1)
        self._dirty = True

    def flush(self, store: StoragePort) -> bool:
        """Write the snapshot into Config when counters changed."""

        if not self._dirty:
            return False
        store.set_config(ConfigPatch(metrics=self.snapshot()))
        self._dirty = False
        LOGGER.debug("Metrics flushed: %s", self.snapshot())
        return True
