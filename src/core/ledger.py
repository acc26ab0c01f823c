"""Pending-request ledger.

Requests move SUBMITTED -> APPROVED | REJECTED | EXPIRED and are deleted on
every exit. A request is claimed (deleted) before any awaitable work starts,
so a second resolution of the same id simply finds nothing.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Callable, Optional, Tuple

from core.metrics import Metrics
from core.models import InboundPost, PendingRequest, Suspected
from core.ports import StoragePort
from core.template_matcher import MatchVerdict

LOGGER = logging.getLogger(__name__)


class ClaimStatus(enum.Enum):
    CLAIMED = "claimed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_request(post: InboundPost, verdict: Optional[MatchVerdict], now_ms: int) -> PendingRequest:
    suspected = None
    if verdict is not None and verdict.matched:
        suspected = Suspected(template=verdict.name or "", score=verdict.score or 0.0)
    return PendingRequest(
        id=PendingRequest.make_id(now_ms, post.chat_id, post.message_id),
        source_chat_id=post.chat_id,
        message_id=post.message_id,
        from_id=post.from_id or 0,
        from_name=post.from_name or "unknown",
        created_at=now_ms,
        suspected=suspected,
    )


class PendingLedger:
    def __init__(
        self,
        store: StoragePort,
        metrics: Metrics,
        ttl_sec: int = 7 * 86400,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._metrics = metrics
        self._ttl_ms = max(0, ttl_sec) * 1000
        self._clock = clock

    def is_expired(self, request: PendingRequest, now_ms: int) -> bool:
        if not self._ttl_ms:
            return False
        return now_ms - request.created_at > self._ttl_ms

    def submit(self, post: InboundPost, verdict: Optional[MatchVerdict], now_ms: Optional[int] = None) -> PendingRequest:
        request = build_request(post, verdict, self._clock() if now_ms is None else now_ms)
        self._store.set_pending(request)
        self._metrics.on_submitted()
        LOGGER.info(
            "Queued %s from %s (suspected=%s)",
            request.id,
            request.from_id,
            request.suspected.template if request.suspected else None,
        )
        return request

    def claim(self, request_id: str, now_ms: Optional[int] = None) -> Tuple[ClaimStatus, Optional[PendingRequest]]:
        """Take ownership of a live request by removing it from the store."""

        request = self._store.get_pending(request_id)
        if request is None:
            return ClaimStatus.NOT_FOUND, None
        self._store.del_pending(request_id)
        if self.is_expired(request, self._clock() if now_ms is None else now_ms):
            self._metrics.on_expired()
            LOGGER.info("Request %s expired before resolution", request_id)
            return ClaimStatus.EXPIRED, request
        return ClaimStatus.CLAIMED, request

    def restore(self, request: PendingRequest) -> None:
        """Put a claimed request back, e.g. after a failed forward."""

        self._store.set_pending(request)

    def reap_expired(self, now_ms: Optional[int] = None) -> int:
        if not self._ttl_ms:
            return 0
        now = self._clock() if now_ms is None else now_ms
        removed = 0
        for request in self._store.list_pending():
            if self.is_expired(request, now):
                self._store.del_pending(request.id)
                self._metrics.on_expired()
                removed += 1
        if removed:
            LOGGER.info("Expired %s pending requests", removed)
        return removed
