"""Review cards, operator decisions and forwarding.

Forwarding is the highest-consequence operation: a forward that keeps
failing is escalated to every admin and reported back to the caller, and
the request goes back into the ledger so it can be approved again.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from core.formatting import (
    build_review_keyboard,
    build_traffic_keyboard,
    format_escalation,
    format_forward_annotation,
    format_review_card,
)
from core.ledger import ClaimStatus, PendingLedger
from core.models import ChatRef, PendingRequest, Suspected, coerce_chat_id
from core.ports import CallResult, TransportPort
from core.session import ModeratorSession

LOGGER = logging.getLogger(__name__)


class ReviewOutcome(enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    BANNED = "banned"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    FORWARD_FAILED = "forward_failed"
    INVALID = "invalid"


@dataclass(frozen=True)
class RetryPolicy:
    """Caller-level retry for forwards: total attempts and linear backoff."""

    attempts: int = 3
    backoff_sec: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.backoff_sec * attempt


class ReviewService:
    def __init__(
        self,
        session: ModeratorSession,
        ledger: PendingLedger,
        transport: TransportPort,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._session = session
        self._ledger = ledger
        self._transport = transport
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    def review_destinations(self) -> List[ChatRef]:
        config = self._session.config
        if config.review_target_id:
            return [coerce_chat_id(config.review_target_id)]
        return list(config.admin_ids)

    async def send_to_review(self, request: PendingRequest) -> int:
        """Show the original post plus a decision card; returns cards delivered."""

        card = format_review_card(request)
        keyboard = build_review_keyboard(request)
        delivered = 0
        for destination in self.review_destinations():
            await self._transport.forward_message(destination, request.source_chat_id, request.message_id)
            result = await self._transport.send_message(destination, card, buttons=keyboard)
            if result.ok:
                delivered += 1
        if not delivered:
            LOGGER.warning("Review card for %s reached no destination", request.id)
        return delivered

    async def forward(
        self,
        source_chat_id: Union[int, str],
        message_id: int,
        from_id: int,
        approved_by: int,
        suspected: Optional[Suspected] = None,
    ) -> CallResult:
        """Single forward attempt, followed by the optional annotation."""

        target = coerce_chat_id(self._session.config.forward_target_id)
        result = await self._transport.forward_message(target, source_chat_id, message_id)
        if not result.ok:
            return result
        if self._session.config.attach_buttons:
            annotation = format_forward_annotation(from_id, approved_by, suspected)
            keyboard = build_traffic_keyboard(self._session.buttons)
            await self._transport.send_message(target, annotation, buttons=keyboard)
        return result

    async def forward_with_retry(
        self,
        source_chat_id: Union[int, str],
        message_id: int,
        from_id: int,
        approved_by: int,
        suspected: Optional[Suspected] = None,
        request: Optional[PendingRequest] = None,
    ) -> CallResult:
        attempts = max(1, self._retry.attempts)
        result = CallResult.failure("forward was not attempted")
        for attempt in range(1, attempts + 1):
            result = await self.forward(source_chat_id, message_id, from_id, approved_by, suspected)
            if result.ok:
                return result
            LOGGER.warning(
                "Forward of %s:%s failed (attempt %s/%s): %s",
                source_chat_id,
                message_id,
                attempt,
                attempts,
                result.error,
            )
            if attempt < attempts:
                await self._sleep(self._retry.delay(attempt))
        await self.escalate(result.error or "unknown error", request)
        return result

    async def escalate(self, error: str, request: Optional[PendingRequest] = None) -> None:
        LOGGER.error("Forward escalated to admins: %s", error)
        message = format_escalation(error, request)
        for admin_id in self._session.config.admin_ids:
            await self._transport.send_message(admin_id, message)

    async def approve(self, request_id: str, approver_id: int) -> ReviewOutcome:
        status, request = self._ledger.claim(request_id)
        if status is ClaimStatus.NOT_FOUND:
            return ReviewOutcome.NOT_FOUND
        if status is ClaimStatus.EXPIRED:
            return ReviewOutcome.EXPIRED

        result = await self.forward_with_retry(
            request.source_chat_id,
            request.message_id,
            request.from_id,
            approver_id,
            request.suspected,
            request=request,
        )
        if not result.ok:
            self._ledger.restore(request)
            return ReviewOutcome.FORWARD_FAILED

        self._session.metrics.on_approved()
        LOGGER.info("Request %s approved by %s", request_id, approver_id)
        return ReviewOutcome.APPROVED

    def reject(self, request_id: str, operator_id: int) -> ReviewOutcome:
        status, _ = self._ledger.claim(request_id)
        if status is ClaimStatus.NOT_FOUND:
            return ReviewOutcome.NOT_FOUND
        if status is ClaimStatus.EXPIRED:
            return ReviewOutcome.EXPIRED
        self._session.metrics.on_rejected()
        LOGGER.info("Request %s rejected by %s", request_id, operator_id)
        return ReviewOutcome.REJECTED

    def ban(self, user_id: int, operator_id: int) -> ReviewOutcome:
        if not user_id:
            return ReviewOutcome.INVALID
        self._session.block(user_id)
        LOGGER.info("User %s banned by %s", user_id, operator_id)
        return ReviewOutcome.BANNED
