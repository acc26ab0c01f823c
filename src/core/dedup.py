"""Deduplication and per-user cooldown helpers (core domain).

Both structures are in-memory and time-bounded; they are best-effort guards
against re-delivery and flooding, not a durable idempotency ledger.
"""

from __future__ import annotations

from typing import Hashable


class DedupCache:
    """Reject re-delivery of the same key within a short window."""

    def __init__(self, window_ms: int = 1000, retention_ms: int = 60_000) -> None:
        self._window_ms = window_ms
        self._retention_ms = max(retention_ms, window_ms)
        self._seen: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def check(self, key: Hashable, now_ms: int) -> bool:
        """Return True when the key is admitted, recording it."""

        self._purge(now_ms)
        last = self._seen.get(key)
        if last is not None and last + self._window_ms > now_ms:
            return False
        self._seen[key] = now_ms
        return True

    def _purge(self, now_ms: int) -> None:
        # Lazy cleanup bounded by event volume rather than a timer.
        stale = [key for key, ts in self._seen.items() if now_ms - ts > self._retention_ms]
        for key in stale:
            del self._seen[key]

    def clear(self) -> None:
        self._seen.clear()


class CooldownTracker:
    """Minimum spacing between admitted posts from one sender."""

    def __init__(self, cooldown_ms: int = 3000) -> None:
        self._cooldown_ms = cooldown_ms
        self._last: dict[int, int] = {}

    def remaining_ms(self, user_id: int, now_ms: int) -> int:
        last = self._last.get(user_id)
        if last is None:
            return 0
        return max(0, self._cooldown_ms - (now_ms - last))

    def check(self, user_id: int, now_ms: int) -> int:
        """Return 0 and record the post when admitted, else the wait in ms."""

        remaining = self.remaining_ms(user_id, now_ms)
        if remaining > 0:
            return remaining
        self._last[user_id] = now_ms
        return 0

    def touch(self, user_id: int, now_ms: int) -> None:
        self._last[user_id] = now_ms

    def clear(self) -> None:
        self._last.clear()
