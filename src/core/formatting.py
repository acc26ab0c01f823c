"""Shared message formatting helpers.

Keeping formatting here prevents drift between the review, admin and
forwarding paths. All bodies are Telegram HTML; user-controlled values are
escaped before interpolation.
"""

from __future__ import annotations

import html
from typing import Iterable, List, Optional

from core.models import MAX_BUTTONS, InlineButton, Keyboard, PendingRequest, Suspected, TrafficButton
from core.template_matcher import TemplateScore

DIVIDER = "──────────────"


def sorted_buttons(buttons: Iterable[TrafficButton]) -> List[TrafficButton]:
    return sorted(buttons, key=lambda button: button.order)


def build_traffic_keyboard(buttons: Iterable[TrafficButton]) -> Optional[Keyboard]:
    """Render link buttons two per row, capped at MAX_BUTTONS."""

    visible = sorted_buttons(buttons)[:MAX_BUTTONS]
    if not visible:
        return None
    cells = [InlineButton(text=button.text, url=button.url) for button in visible]
    return [cells[i : i + 2] for i in range(0, len(cells), 2)]


def build_review_keyboard(request: PendingRequest) -> Keyboard:
    return [
        [
            InlineButton(text="✅ Approve", data=f"approve:{request.id}"),
            InlineButton(text="❌ Reject", data=f"reject:{request.id}"),
        ],
        [InlineButton(text="⛔ Ban sender", data=f"ban:{request.from_id or 0}")],
    ]


def _suspected_line(suspected: Optional[Suspected]) -> Optional[str]:
    if suspected is None:
        return None
    return f"⚠️ <b>Suspected template:</b> {html.escape(suspected.template)} (score={suspected.score})"


def format_review_card(request: PendingRequest) -> str:
    sender = html.escape(request.from_name)
    if request.from_id:
        sender = f"{sender} (ID:{request.from_id})"
    lines = [
        f"🕵️ <b>Review request</b> #{html.escape(request.id)}",
        f"<b>From:</b> {sender}",
        f"<b>Source chat:</b> {html.escape(str(request.source_chat_id))}",
    ]
    suspected = _suspected_line(request.suspected)
    if suspected:
        lines.append(suspected)
    return "\n".join(lines)


def format_submission_ack(request: PendingRequest) -> str:
    if request.suspected:
        return (
            "📝 Submitted for review "
            f"(⚠️ suspected template: {html.escape(request.suspected.template)}, score={request.suspected.score})"
        )
    return "📝 Submitted for review, please wait for an admin."


def format_forward_annotation(from_id: int, approved_by: int, suspected: Optional[Suspected]) -> str:
    lines = [f"📨 From user ID:{from_id or 'unknown'}, approved by admin ID:{approved_by}"]
    suspected_line = _suspected_line(suspected)
    if suspected_line:
        lines.append(suspected_line)
    return "\n".join(lines)


def format_escalation(error: str, request: Optional[PendingRequest] = None) -> str:
    lines = ["⚠️ <b>Forward failed</b>"]
    if request is not None:
        lines.append(f"<b>Request:</b> #{html.escape(request.id)} (still pending)")
    lines.extend([DIVIDER, html.escape(error or "unknown error")])
    return "\n".join(lines)


def format_buttons(buttons: Iterable[TrafficButton]) -> str:
    ordered = sorted_buttons(buttons)
    if not ordered:
        return "(empty) no buttons configured"
    lines = [
        f"{index}. [{html.escape(button.text)}] {html.escape(button.url)} (order: {button.order})"
        for index, button in enumerate(ordered, start=1)
    ]
    return "<b>Buttons</b> (first {cap} are shown)\n{body}".format(cap=MAX_BUTTONS, body="\n".join(lines))


def format_templates(templates, default_threshold: float) -> str:
    if not templates:
        body = "(empty) no templates configured"
    else:
        body = "\n".join(
            f"{index}. {html.escape(template.name)}  thr="
            f"{template.threshold if template.threshold is not None else default_threshold}"
            for index, template in enumerate(templates, start=1)
        )
    return f"{body}\n\n<b>Global threshold:</b> {default_threshold}"


def format_template_test(scores: List[TemplateScore]) -> str:
    if not scores:
        return "No templates configured."
    lines = [
        f"{index}. {html.escape(score.name)}  ngram={score.ngram:.3f}  fields={score.fields:.3f}  thr={score.threshold}"
        for index, score in enumerate(scores, start=1)
    ]
    return "<b>Template scores</b> (best first)\n" + "\n".join(lines)


def format_stats(stats: dict) -> str:
    return "\n".join(
        [
            "📊 <b>Statistics</b>",
            f"- Sources seen: {stats['sources']}",
            f"- Buttons shown: {stats['buttons']} (cap {MAX_BUTTONS})",
            f"- Pending: {stats['pending']}",
            f"- Approved: {stats['approved']}",
            f"- Rejected: {stats['rejected']}",
            f"- Allow list: {stats['allow']}",
            f"- Block list: {stats['block']}",
            f"- Strict template mode: {'on' if stats['strict'] else 'off'}",
        ]
    )
