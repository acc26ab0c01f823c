from __future__ import annotations

import asyncio

from core.ledger import PendingLedger
from core.review import RetryPolicy, ReviewOutcome, ReviewService
from core.template_matcher import MatchVerdict
from fakes import ADMIN, NOW, TARGET, USER, FakeTransport, make_post, make_session


class _Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _setup(fail_forwards: int = 0, ttl_sec: int = 3600, now: int = NOW, **overrides):
    session = make_session(**overrides)
    transport = FakeTransport(fail_forwards=fail_forwards)
    clock = {"now": now}
    ledger = PendingLedger(session.store, session.metrics, ttl_sec=ttl_sec, clock=lambda: clock["now"])
    sleeps = _Sleeps()
    review = ReviewService(session, ledger, transport, retry=RetryPolicy(attempts=3, backoff_sec=1.0), sleep=sleeps)
    return session, transport, ledger, review, sleeps, clock


def test_approve_forwards_and_resolves_request() -> None:
    session, transport, ledger, review, _, _ = _setup()
    request = ledger.submit(make_post(message_id=7), MatchVerdict(matched=False))

    outcome = asyncio.run(review.approve(request.id, ADMIN))

    assert outcome is ReviewOutcome.APPROVED
    assert transport.forwarded == [(int(TARGET), USER, 7)]
    assert session.metrics.approved == 1
    assert session.metrics.pending == 0
    assert session.store.get_pending(request.id) is None


def test_approve_attaches_annotation_with_traffic_buttons() -> None:
    session, transport, ledger, review, _, _ = _setup()
    request = ledger.submit(make_post(), MatchVerdict(matched=True, name="promo", score=0.8))

    asyncio.run(review.approve(request.id, ADMIN))

    annotations = transport.texts_to(int(TARGET))
    assert len(annotations) == 1
    assert "promo" in annotations[0]


def test_annotation_is_skipped_when_buttons_are_disabled() -> None:
    _, transport, ledger, review, _, _ = _setup(attach_buttons=False)
    request = ledger.submit(make_post(), None)

    asyncio.run(review.approve(request.id, ADMIN))

    assert transport.texts_to(int(TARGET)) == []
    assert len(transport.forwarded) == 1


def test_reject_resolves_without_forwarding() -> None:
    session, transport, ledger, review, _, _ = _setup()
    request = ledger.submit(make_post(), None)

    assert review.reject(request.id, ADMIN) is ReviewOutcome.REJECTED
    assert transport.forwarded == []
    assert session.metrics.rejected == 1
    assert session.store.get_pending(request.id) is None


def test_second_decision_on_same_request_is_not_found() -> None:
    session, transport, ledger, review, _, _ = _setup()
    request = ledger.submit(make_post(), None)

    assert asyncio.run(review.approve(request.id, ADMIN)) is ReviewOutcome.APPROVED
    assert review.reject(request.id, ADMIN) is ReviewOutcome.NOT_FOUND
    assert asyncio.run(review.approve(request.id, ADMIN)) is ReviewOutcome.NOT_FOUND
    assert len(transport.forwarded) == 1
    assert session.metrics.rejected == 0


def test_transient_forward_failure_is_retried() -> None:
    session, transport, ledger, review, sleeps, _ = _setup(fail_forwards=1)
    request = ledger.submit(make_post(), None)

    outcome = asyncio.run(review.approve(request.id, ADMIN))

    assert outcome is ReviewOutcome.APPROVED
    assert sleeps.calls == [1.0]
    assert transport.texts_to(ADMIN) == []


def test_persistent_forward_failure_escalates_and_keeps_request() -> None:
    session, transport, ledger, review, sleeps, _ = _setup(fail_forwards=3)
    request = ledger.submit(make_post(), None)

    outcome = asyncio.run(review.approve(request.id, ADMIN))

    assert outcome is ReviewOutcome.FORWARD_FAILED
    assert sleeps.calls == [1.0, 2.0]
    escalations = transport.texts_to(ADMIN)
    assert len(escalations) == 1
    assert "CHAT_WRITE_FORBIDDEN" in escalations[0]
    assert session.store.get_pending(request.id) == request
    assert session.metrics.approved == 0
    assert session.metrics.pending == 1

    # Once the target is writable again the same request can be approved.
    assert asyncio.run(review.approve(request.id, ADMIN)) is ReviewOutcome.APPROVED


def test_expired_request_cannot_be_approved() -> None:
    session, transport, ledger, review, _, clock = _setup(ttl_sec=10)
    request = ledger.submit(make_post(), None)
    clock["now"] = NOW + 11_000

    assert asyncio.run(review.approve(request.id, ADMIN)) is ReviewOutcome.EXPIRED
    assert transport.forwarded == []
    assert session.metrics.pending == 0
    assert session.store.get_pending(request.id) is None


def test_reaper_removes_only_expired_requests() -> None:
    session, _, ledger, _, _, clock = _setup(ttl_sec=10)
    old = ledger.submit(make_post(message_id=1), None)
    clock["now"] = NOW + 8_000
    fresh = ledger.submit(make_post(message_id=2), None)
    clock["now"] = NOW + 12_000

    assert ledger.reap_expired() == 1
    assert session.store.get_pending(old.id) is None
    assert session.store.get_pending(fresh.id) == fresh
    assert session.metrics.pending == 1


def test_ban_blocks_sender() -> None:
    session, _, _, review, _, _ = _setup()

    assert review.ban(USER, ADMIN) is ReviewOutcome.BANNED
    assert USER in session.blocklist
    assert session.store.list_block() == [USER]
    assert review.ban(0, ADMIN) is ReviewOutcome.INVALID


def test_review_cards_go_to_review_target_or_admins() -> None:
    _, transport, ledger, review, _, _ = _setup()
    request = ledger.submit(make_post(), None)

    assert asyncio.run(review.send_to_review(request)) == 1
    card = transport.sent[-1]
    assert card["chat_id"] == ADMIN
    assert card["buttons"][0][0].data == f"approve:{request.id}"

    _, transport, ledger, review, _, _ = _setup(review_target_id="-100300")
    request = ledger.submit(make_post(), None)
    asyncio.run(review.send_to_review(request))
    assert transport.forwarded == [(-100300, USER, 1)]
    assert transport.sent[-1]["chat_id"] == -100300
