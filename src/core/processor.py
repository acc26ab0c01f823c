"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for storage and
transport, enabling future frontends or adapters without changes here.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.admin import AdminConsole
from core.admission import Action, AdmissionPipeline
from core.formatting import format_submission_ack
from core.ledger import PendingLedger
from core.models import InboundCallback, InboundPost
from core.ports import TransportPort
from core.review import ReviewOutcome, ReviewService
from core.session import ModeratorSession

LOGGER = logging.getLogger(__name__)

_OUTCOME_TEXT = {
    ReviewOutcome.APPROVED: "✅ Approved #{id} and forwarded",
    ReviewOutcome.REJECTED: "❌ Rejected #{id}",
    ReviewOutcome.EXPIRED: "⌛ Request #{id} expired before a decision",
    ReviewOutcome.BANNED: "⛔ Banned user {id}",
}

_OUTCOME_ANSWER = {
    ReviewOutcome.APPROVED: "Approved",
    ReviewOutcome.REJECTED: "Rejected",
    ReviewOutcome.EXPIRED: "Request expired",
    ReviewOutcome.BANNED: "Banned",
    ReviewOutcome.NOT_FOUND: "Request not found or already handled",
    ReviewOutcome.FORWARD_FAILED: "Forward failed; admins were alerted and the request is still pending",
    ReviewOutcome.INVALID: "Unknown user, nothing to ban",
}


class MessageProcessor:
    """Orchestrates admin input, admission, queuing and operator decisions."""

    def __init__(
        self,
        session: ModeratorSession,
        transport: TransportPort,
        admission: AdmissionPipeline,
        ledger: PendingLedger,
        review: ReviewService,
        console: Optional[AdminConsole] = None,
    ) -> None:
        self._session = session
        self._transport = transport
        self._admission = admission
        self._ledger = ledger
        self._review = review
        self._console = console or AdminConsole(session, transport)

    async def handle(self, post: InboundPost) -> None:
        """Process one inbound post through the moderation pipeline."""

        if await self._console.handle(post):
            return

        decision = self._admission.evaluate(post)
        if decision.action is Action.DROP:
            return

        if decision.action is Action.NOTICE:
            LOGGER.info("Notice for %s in %s (%s)", post.from_id, post.chat_id, decision.reason)
            if decision.notice:
                # Best-effort; a lost notice does not affect the decision.
                await self._transport.send_message(post.chat_id, decision.notice)
            return

        if decision.action is Action.FORWARD:
            await self._review.forward_with_retry(post.chat_id, post.message_id, post.from_id or 0, post.from_id or 0)
            return

        request = self._ledger.submit(post, decision.verdict)
        if post.from_id:
            await self._transport.send_message(post.chat_id, format_submission_ack(request))
        await self._review.send_to_review(request)

    async def handle_callback(self, callback: InboundCallback) -> Optional[ReviewOutcome]:
        """Apply an Approve/Reject/Ban button press from a review card."""

        action, _, argument = callback.data.partition(":")
        if action not in ("approve", "reject", "ban"):
            await self._transport.answer_callback(callback.query_id)
            return None

        if not self._session.is_admin(callback.from_id):
            await self._transport.answer_callback(callback.query_id, "Not authorized", alert=True)
            return None

        if action == "approve":
            outcome = await self._review.approve(argument, callback.from_id)
            subject = argument
        elif action == "reject":
            outcome = self._review.reject(argument, callback.from_id)
            subject = argument
        else:
            try:
                user_id = int(argument)
            except ValueError:
                user_id = 0
            outcome = self._review.ban(user_id, callback.from_id)
            subject = str(user_id)

        text = _OUTCOME_TEXT.get(outcome)
        if text:
            # Replacing the card text without buttons removes the controls.
            await self._transport.edit_message(callback.chat_id, callback.message_id, text.format(id=subject))
        alert = outcome in (ReviewOutcome.FORWARD_FAILED, ReviewOutcome.NOT_FOUND)
        await self._transport.answer_callback(callback.query_id, _OUTCOME_ANSWER[outcome], alert=alert)
        return outcome

    def maintenance(self) -> int:
        """Reap expired requests and flush metrics; returns requests reaped."""

        reaped = self._ledger.reap_expired()
        self._session.metrics.flush(self._session.store)
        return reaped
