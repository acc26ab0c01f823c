"""Telethon transport adapter.

Implements the core TransportPort. Every call goes through the shared
OutboundLimiter so failures surface as CallResult values instead of
exceptions.
"""

from __future__ import annotations

from typing import Optional

from telethon import Button
from telethon.tl.functions.messages import SetBotCallbackAnswerRequest

from adapters.outbound_limiter import OutboundLimiter
from core.models import ChatRef, Keyboard
from core.ports import CallResult


def build_buttons(keyboard: Optional[Keyboard]) -> Optional[list]:
    """Translate core keyboards into Telethon button rows."""

    if not keyboard:
        return None
    rows = []
    for row in keyboard:
        cells = []
        for cell in row:
            if cell.url:
                cells.append(Button.url(cell.text, cell.url))
            else:
                cells.append(Button.inline(cell.text, data=(cell.data or "").encode("utf-8")))
        if cells:
            rows.append(cells)
    return rows or None


def _message_id(sent) -> Optional[int]:
    if isinstance(sent, list):
        sent = sent[0] if sent else None
    return getattr(sent, "id", None)


class TelethonTransport:
    """Bot-mode transport; messages use the HTML parse mode."""

    def __init__(self, client, limiter: OutboundLimiter) -> None:
        self._client = client
        self._limiter = limiter

    async def send_message(
        self,
        chat_id: ChatRef,
        text: str,
        buttons: Optional[Keyboard] = None,
        force_reply: bool = False,
    ) -> CallResult:
        markup = Button.force_reply() if force_reply else build_buttons(buttons)

        async def _send():
            sent = await self._client.send_message(
                chat_id,
                text,
                buttons=markup,
                parse_mode="html",
                link_preview=False,
            )
            return _message_id(sent)

        return await self._limiter.call(f"send_message to {chat_id}", _send)

    async def forward_message(self, to_chat_id: ChatRef, from_chat_id: ChatRef, message_id: int) -> CallResult:
        async def _forward():
            sent = await self._client.forward_messages(to_chat_id, messages=message_id, from_peer=from_chat_id)
            return _message_id(sent)

        return await self._limiter.call(f"forward {from_chat_id}:{message_id} to {to_chat_id}", _forward)

    async def edit_message(
        self,
        chat_id: ChatRef,
        message_id: int,
        text: str,
        buttons: Optional[Keyboard] = None,
    ) -> CallResult:
        # An edit without markup drops the inline keyboard.
        async def _edit():
            edited = await self._client.edit_message(
                chat_id,
                message_id,
                text,
                buttons=build_buttons(buttons),
                parse_mode="html",
                link_preview=False,
            )
            return _message_id(edited)

        return await self._limiter.call(f"edit_message {chat_id}:{message_id}", _edit)

    async def answer_callback(self, query_id: int, text: Optional[str] = None, alert: bool = False) -> CallResult:
        async def _answer():
            return await self._client(
                SetBotCallbackAnswerRequest(
                    query_id=query_id,
                    cache_time=0,
                    alert=alert or None,
                    message=text,
                )
            )

        return await self._limiter.call(f"answer_callback {query_id}", _answer)
