"""Admission pipeline for inbound posts.

The pipeline enforces a strict order and stops at the first rejection:
1) Ignore the forward/review targets themselves (feedback loops)
2) Source allow-list, when configured
3) Block list (always before any allow rule)
4) Allow-list mode for non-admin senders
5) Message age
6) Short-window de-duplication per (chat, message)
7) Per-user cooldown for non-admin senders
8) Admin bypass straight to forwarding
9) Template matching, strict-mode gate, then the review queue

A dropped post is never re-evaluated.
"""

from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from core.models import InboundPost
from core.session import ModeratorSession
from core.template_matcher import MatchVerdict, detect_template

LOGGER = logging.getLogger(__name__)

NOTICE_NOT_ALLOWED = "🚫 You are not on the allow list; this post was not processed."
NOTICE_NO_TEMPLATE = "❌ This post did not match any accepted template and was not submitted."


class Action(enum.Enum):
    DROP = "drop"
    NOTICE = "notice"
    FORWARD = "forward"
    QUEUE = "queue"


@dataclass(frozen=True)
class AdmissionDecision:
    action: Action
    reason: str
    notice: Optional[str] = None
    verdict: Optional[MatchVerdict] = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def cooldown_notice(remaining_ms: int) -> str:
    seconds = max(1, math.ceil(remaining_ms / 1000))
    return f"⏳ You are posting too fast, please retry in {seconds}s."


def source_keys(post: InboundPost) -> set[str]:
    """Identifiers a source allow-list entry may use for this chat."""

    keys = {str(post.chat_id)}
    if post.chat_username:
        keys.add(f"@{post.chat_username.lower()}")
    return keys


def target_key(target: object) -> str:
    """Normalize a forward or review target to the form used by ``source_keys``."""

    key = str(target).strip()
    if key.startswith("@"):
        return key.lower()
    return key


class AdmissionPipeline:
    """Synchronous filter chain deciding the fate of an inbound post."""

    def __init__(self, session: ModeratorSession, clock: Callable[[], int] = _now_ms) -> None:
        self._session = session
        self._clock = clock

    def evaluate(self, post: InboundPost, now_ms: Optional[int] = None) -> AdmissionDecision:
        now = self._clock() if now_ms is None else now_ms
        session = self._session
        config = session.config
        limits = session.limits
        chat = str(post.chat_id)

        targets = {target_key(target) for target in (config.forward_target_id, config.review_target_id) if target}
        if targets & source_keys(post):
            return self._drop("target chat", post)

        allowed_sources = {entry.lower() for entry in config.sources_allow}
        if allowed_sources and not (source_keys(post) & allowed_sources):
            return self._drop("source not allowed", post)
        session.metrics.record_source(chat)

        sender = post.from_id
        is_admin = session.is_admin(sender)

        if sender and sender in session.blocklist:
            return self._drop("sender blocked", post)

        if sender and config.allowlist_mode and not is_admin and sender not in session.allowlist:
            return AdmissionDecision(Action.NOTICE, "sender not allow-listed", notice=NOTICE_NOT_ALLOWED)

        age_sec = now / 1000 - post.date.timestamp()
        if age_sec > limits.max_age_sec:
            return self._drop("too old", post)

        if not session.dedup.check((chat, post.message_id), now):
            return self._drop("duplicate delivery", post)

        if sender:
            if is_admin:
                session.cooldown.touch(sender, now)
            else:
                remaining = session.cooldown.check(sender, now)
                if remaining:
                    return AdmissionDecision(Action.NOTICE, "cooldown", notice=cooldown_notice(remaining))

        if is_admin:
            return AdmissionDecision(Action.FORWARD, "admin bypass")

        verdict = detect_template(
            post.text,
            session.templates,
            config.default_threshold,
            strategy=limits.match_strategy,
        )
        if session.strict_mode and not verdict.matched:
            if sender:
                return AdmissionDecision(Action.NOTICE, "strict mode, no template", notice=NOTICE_NO_TEMPLATE)
            return self._drop("strict mode, no template", post)

        return AdmissionDecision(Action.QUEUE, "queued for review", verdict=verdict)

    @staticmethod
    def _drop(reason: str, post: InboundPost) -> AdmissionDecision:
        LOGGER.debug("Drop %s:%s (%s)", post.chat_id, post.message_id, reason)
        return AdmissionDecision(Action.DROP, reason)
